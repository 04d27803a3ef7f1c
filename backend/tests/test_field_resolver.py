"""Tests for field deduplication and ordering."""
from field_resolver import decode_options, pick_canonical, resolve_fields
from forms import build_form
from models import FieldDefinition


def field(name, order, field_id=None, **extra):
    return {"field_name": name, "display_order": order, "id": field_id, **extra}


def test_duplicate_placement_does_not_change_result():
    later_lower = [field("a", 2, 5), field("a", 1, 3)]
    earlier_lower = [field("a", 1, 3), field("a", 2, 5)]

    for raw in (later_lower, earlier_lower):
        result = resolve_fields(raw)
        assert [(f["field_name"], f["display_order"], f["id"]) for f in result] == [("a", 1, 3)]


def test_resolver_is_idempotent():
    raw = [
        field("weight", 2, 9),
        field("unit", 1, 4, field_options='["g", "ml"]'),
        field("weight", 2, 7),
        field("notes", 3),
        field("notes", 3, 12),
    ]
    once = resolve_fields(raw)
    assert resolve_fields(once) == once


def test_order_tie_prefers_smaller_id():
    result = resolve_fields([field("a", 1, 8), field("a", 1, 2)])
    assert result[0]["id"] == 2


def test_order_tie_prefers_row_with_id():
    result = resolve_fields([field("a", 1, None, field_label="no id"), field("a", 1, 6, field_label="with id")])
    assert result[0]["field_label"] == "with id"


def test_order_tie_without_ids_keeps_first_seen():
    result = resolve_fields([field("a", 1, None, field_label="first"), field("a", 1, None, field_label="second")])
    assert len(result) == 1
    assert result[0]["field_label"] == "first"


def test_output_sorted_by_order_then_id():
    result = resolve_fields([field("c", 2, 1), field("b", 1, 9), field("a", 1, 3)])
    assert [f["field_name"] for f in result] == ["a", "b", "c"]


def test_input_rows_are_not_mutated():
    raw = [field("a", 1, 1, field_options='["x"]')]
    resolve_fields(raw)
    assert raw[0]["field_options"] == '["x"]'


def test_accepts_orm_rows():
    rows = [
        FieldDefinition(id=2, category_id=1, field_name="name", field_label="Food", display_order=1),
        FieldDefinition(id=1, category_id=1, field_name="name", field_label="Old food", display_order=1),
    ]
    result = resolve_fields(rows)
    assert len(result) == 1
    assert result[0]["field_label"] == "Old food"


def test_decode_options():
    assert decode_options('["Breakfast", "Lunch"]') == ["Breakfast", "Lunch"]
    assert decode_options(["Hard", "Soft"]) == ["Hard", "Soft"]
    assert decode_options(None) is None
    assert decode_options("not json") is None
    assert decode_options('{"a": 1}') is None


def test_pick_canonical_keeps_first_seen_key_order():
    kept = pick_canonical([field("b", 1, 4), field("a", 1, 2), field("b", 1, 1)], key=lambda f: f["field_name"])
    assert list(kept) == ["b", "a"]
    assert kept["b"]["id"] == 1


def test_form_and_listing_agree():
    raw = [
        field("meal", 2, 6, field_label="Meal", field_type="select", field_options='["Lunch", "Dinner"]'),
        field("name", 1, 5, field_label="Food", field_type="text", is_required=True),
        field("meal", 2, 3, field_label="Meal (old)", field_type="select", field_options='["Lunch"]'),
    ]
    listed = resolve_fields(raw)
    form = build_form(raw)

    assert [f["field_name"] for f in listed] == [f["name"] for f in form]
    assert form[1]["label"] == listed[1]["field_label"] == "Meal (old)"


def test_form_widgets():
    form = build_form([
        field("meal", 1, 1, field_type="select", field_options=["Lunch"], is_required=False),
        field("weight", 2, 2, field_type="number", unit="g"),
        field("notes", 3, 3, field_type="text"),
        field("taken_at", 4, 4, field_type="time"),
    ])
    assert form[0]["widget"] == "select"
    assert form[0]["choices"] == ["", "Lunch"]
    assert form[1]["widget"] == "number"
    assert form[1]["placeholder"] == "Unit: g"
    assert form[2]["widget"] == "textarea"
    assert form[3]["widget"] == "time"
