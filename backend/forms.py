"""Input-form descriptors for a category's field schema."""

from typing import Any, Iterable

from field_resolver import resolve_fields
from models import FieldType


def _widget(field: dict[str, Any]) -> dict[str, Any]:
    field_type = field.get("field_type")
    if field_type == FieldType.SELECT.value and field.get("field_options"):
        choices = list(field["field_options"])
        if not field.get("is_required"):
            choices.insert(0, "")
        return {"widget": "select", "choices": choices}
    if field_type == FieldType.NUMBER.value:
        return {"widget": "number", "step": "any"}
    if field_type == FieldType.TEXT.value and field.get("field_name") == "notes":
        return {"widget": "textarea", "rows": 3}
    if field_type in (FieldType.DATE.value, FieldType.TIME.value):
        return {"widget": field_type}
    return {"widget": "text"}


def build_form(fields: Iterable[Any]) -> list[dict[str, Any]]:
    """Resolve the raw field rows and describe one input per canonical field."""
    form = []
    for field in resolve_fields(fields):
        unit = field.get("unit")
        form.append({
            "name": field["field_name"],
            "label": field.get("field_label") or field["field_name"],
            "required": bool(field.get("is_required")),
            "placeholder": f"Unit: {unit}" if unit else None,
            **_widget(field),
        })
    return form
