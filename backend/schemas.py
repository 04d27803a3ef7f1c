from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator
from sqlmodel import SQLModel

from models import AggregationStrategy, FieldType


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class UserResponse(BaseModel):
    id: str
    username: str
    display_name: str


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    user: UserResponse


class CategoryCreate(BaseModel):
    name: str | None = None
    icon: str | None = None
    aggregation_strategy: AggregationStrategy | None = None
    aggregation_field: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = None
    icon: str | None = None
    is_hidden: bool | None = None
    display_order: int | None = None
    aggregation_strategy: AggregationStrategy | None = None
    aggregation_field: str | None = None


class CategoryResponse(SQLModel):
    id: int
    name: str
    icon: str | None = None
    is_default: bool
    is_hidden: bool
    owner: str | None = None
    display_order: int
    aggregation_strategy: str
    aggregation_field: str | None = None


class FieldCreate(BaseModel):
    field_name: str = ""
    field_label: str | None = None
    field_type: FieldType = FieldType.TEXT
    field_options: list[str] | None = None
    is_required: bool = False
    unit: str | None = None
    display_order: int | None = None

    @field_validator("field_name")
    @classmethod
    def strip_field_name(cls, v):
        return v.strip()


class FieldResponse(BaseModel):
    id: int | None = None
    category_id: int
    field_name: str
    field_label: str
    field_type: str
    field_options: list[str] | None = None
    is_required: bool
    unit: str | None = None
    display_order: int


class RecordCreate(BaseModel):
    # Left loosely typed so the record store can reject bad ids with a clear message
    category_id: int | str | None = None
    record_date: str | None = None
    record_time: str | None = None
    notes: str | None = None
    data: dict[str, Any] | None = None


class RecordUpdate(BaseModel):
    category_id: int | str | None = None
    record_date: str | None = None
    record_time: str | None = None
    notes: str | None = None
    data: dict[str, Any] | None = None


class AssembledRecord(BaseModel):
    id: int
    category_id: int
    category_name: str | None = None
    category_icon: str | None = None
    record_date: str
    record_time: str | None = None
    notes: str | None = None
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime | None = None


class RecordListResponse(BaseModel):
    success: bool = True
    records: list[AssembledRecord]


class RecordResponse(BaseModel):
    success: bool = True
    record: AssembledRecord


class WeekDay(BaseModel):
    date: str
    records: list[AssembledRecord]


class WeekResponse(BaseModel):
    success: bool = True
    week_start: str
    week_end: str
    days: list[WeekDay]


class StatsResponse(BaseModel):
    success: bool = True
    start_date: str
    end_date: str
    stats: dict[str, dict[str, Any]]
