"""Collapse duplicated field definitions into one canonical, ordered field list.

Category field tables picked up duplicate ``field_name`` rows over several
schema migrations. Every consumer (the fields listing, the form renderer and
record assembly) goes through :func:`pick_canonical` so they all agree on which
duplicate survives:

1. the candidate with the strictly smaller ``display_order`` wins;
2. on an order tie, the smaller id wins, and a row with an id beats one without;
3. otherwise the first row seen is kept.
"""

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

logger = logging.getLogger(__name__)


def _get(row: Any, attr: str, default: Any = None) -> Any:
    if isinstance(row, Mapping):
        return row.get(attr, default)
    return getattr(row, attr, default)


def _order(row: Any) -> int:
    order = _get(row, "display_order")
    return order if order is not None else 0


def _candidate_wins(candidate: Any, kept: Any) -> bool:
    if _order(candidate) != _order(kept):
        return _order(candidate) < _order(kept)

    candidate_id = _get(candidate, "id")
    kept_id = _get(kept, "id")
    if candidate_id is not None and kept_id is not None:
        return candidate_id < kept_id
    if candidate_id is not None and kept_id is None:
        return True
    return False


def pick_canonical(rows: Iterable[Any], key: Callable[[Any], str]) -> dict[str, Any]:
    """Return one row per key, applying the canonical tie-break.

    The returned mapping preserves the order in which each key was first seen.
    """
    kept: dict[str, Any] = {}
    for row in rows:
        name = key(row)
        if name not in kept:
            kept[name] = row
            continue
        if _candidate_wins(row, kept[name]):
            logger.debug(f"Replacing duplicate {name!r}: id={_get(kept[name], 'id')} -> id={_get(row, 'id')}")
            kept[name] = row
    return kept


def decode_options(raw: Any) -> list[str] | None:
    """Decode a field's options from a JSON-encoded string when needed."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Could not decode field options: {raw!r}")
            return None
    if isinstance(raw, (list, tuple)):
        return [str(option) for option in raw]
    logger.warning(f"Ignoring non-list field options: {raw!r}")
    return None


def _as_view(row: Any) -> dict[str, Any]:
    if isinstance(row, Mapping):
        view = dict(row)
    else:
        view = row.model_dump()
    if "field_options" in view:
        view["field_options"] = decode_options(view["field_options"])
    return view


def _sort_key(view: dict[str, Any]) -> tuple:
    field_id = view.get("id")
    # Rows without an id keep their relative position after the id'd rows
    return (_order(view), field_id is None, field_id if field_id is not None else 0)


def resolve_fields(fields: Iterable[Any]) -> list[dict[str, Any]]:
    """Return one field per distinct ``field_name``, sorted by (display_order, id).

    Accepts ORM rows or plain mappings and never mutates its input. Running it
    on its own output is a no-op.
    """
    fields = list(fields)
    kept = pick_canonical(fields, key=lambda f: _get(f, "field_name"))
    if len(kept) != len(fields):
        logger.warning(f"Collapsed {len(fields) - len(kept)} duplicate field definition(s)")
    return sorted((_as_view(row) for row in kept.values()), key=_sort_key)
