"""Turn a record's flat field-value rows back into a structured payload."""

import json
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from errors import ValidationError
from field_resolver import pick_canonical
from models import Category, Record, RecordFieldValue
from schemas import AssembledRecord

STRING = "string"
NUMBER = "number"
JSON_VALUE = "json"


@dataclass(frozen=True)
class TaggedValue:
    """A single field value: a string, a number, or structured JSON."""

    kind: str
    value: Any

    @classmethod
    def from_raw(cls, value: Any) -> "TaggedValue":
        if isinstance(value, str):
            return cls(STRING, value)
        # bool is an int subclass but is stored as structured JSON
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if isinstance(value, float) and not math.isfinite(value):
                raise ValidationError(f"Numeric value must be finite, got {value!r}")
            return cls(NUMBER, value)
        if isinstance(value, (bool, list, dict)):
            try:
                json.dumps(value)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Value is not JSON-serializable: {e}") from e
            return cls(JSON_VALUE, value)
        raise ValidationError(f"Unsupported field value type: {type(value).__name__}")

    @classmethod
    def from_row(cls, row: RecordFieldValue) -> "TaggedValue":
        value = row.field_value_json if row.field_value_json is not None else row.field_value
        if isinstance(value, str):
            return cls(STRING, value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return cls(NUMBER, value)
        return cls(JSON_VALUE, value)

    def to_columns(self) -> tuple[str | None, Any]:
        """Return the (field_value, field_value_json) pair for storage."""
        if self.kind == STRING:
            return self.value, None
        return None, self.value


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def display_value(value: Any) -> str:
    """Plain-text form of a field value, as shown in charts and exports."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def collect_values(rows: Iterable[RecordFieldValue]) -> dict[str, TaggedValue]:
    """Map field_name -> value, collapsing duplicate rows with the canonical tie-break."""
    kept = pick_canonical(rows, key=lambda row: row.field_name)
    return {name: TaggedValue.from_row(row) for name, row in kept.items()}


def assemble(
    record: Record,
    rows: Iterable[RecordFieldValue],
    category: Category | None = None,
) -> AssembledRecord:
    values = collect_values(rows)
    return AssembledRecord(
        id=record.id,
        category_id=record.category_id,
        category_name=category.name if category else None,
        category_icon=category.icon if category else None,
        record_date=record.record_date,
        record_time=record.record_time,
        notes=record.notes,
        data={name: tagged.value for name, tagged in values.items()},
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
