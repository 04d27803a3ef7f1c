from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class AggregationStrategy(str, Enum):
    """Chart shape a category's records are aggregated into."""

    BLOOD_PRESSURE = "blood_pressure"
    HEART_RATE = "heart_rate"
    FREQUENCY = "frequency"
    WEIGHTED = "weighted"
    GENERIC = "generic"


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    SELECT = "select"


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profiles"

    id: str = Field(primary_key=True)  # uuid4 hex string
    username: str = Field(index=True, unique=True)  # Normalized: lower(trim(username))
    display_name: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Category(SQLModel, table=True):
    __tablename__ = "record_categories"

    id: int | None = Field(default=None, primary_key=True)
    owner: str | None = Field(default=None, index=True)  # None for shared defaults
    name: str
    icon: str | None = Field(default=None)
    is_default: bool = Field(default=False, index=True)
    is_hidden: bool = Field(default=False)
    display_order: int = Field(default=0)
    aggregation_strategy: str = Field(default=AggregationStrategy.GENERIC.value)
    aggregation_field: str | None = Field(default=None)  # label/weight field for the strategy
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class FieldDefinition(SQLModel, table=True):
    __tablename__ = "category_fields"

    id: int | None = Field(default=None, primary_key=True)
    category_id: int = Field(index=True)
    field_name: str
    field_label: str
    field_type: str = Field(default=FieldType.TEXT.value)
    # Legacy rows hold a JSON-encoded string, newer rows a JSON list
    field_options: Any | None = Field(default=None, sa_column=Column(JSON(none_as_null=True)))
    is_required: bool = Field(default=False)
    unit: str | None = Field(default=None)
    display_order: int = Field(default=0)


class Record(SQLModel, table=True):
    __tablename__ = "health_records"

    id: int | None = Field(default=None, primary_key=True)
    owner: str = Field(index=True)
    category_id: int = Field(index=True)  # may dangle after the category is deleted
    record_date: str = Field(index=True)  # YYYY-MM-DD format
    record_time: str | None = Field(default=None)  # HH:MM, optional
    notes: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = Field(default=None)


class RecordFieldValue(SQLModel, table=True):
    __tablename__ = "record_data"

    id: int | None = Field(default=None, primary_key=True)
    record_id: int = Field(index=True)
    field_name: str
    # Exactly one of the two is set
    field_value: str | None = Field(default=None)
    field_value_json: Any | None = Field(default=None, sa_column=Column(JSON(none_as_null=True)))
