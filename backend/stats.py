"""Aggregate a user's records over a date window into chart-ready series.

Each visible category is aggregated according to its stored
``aggregation_strategy``:

* ``blood_pressure`` / ``heart_rate``: one time-series point per record. A
  point needs every one of its values; an unparseable value counts as 0 and a
  zero/missing value drops the whole point.
* ``frequency``: occurrence counts of a label field (``name`` by default).
* ``weighted``: one bar per record with a parseable weight, plus total/count/unit.
  Unparseable weights are left out of both the total and the count.
* ``generic``: occurrence counts of each record's first non-empty value.

Records whose category no longer exists, or belongs to another user, are
aggregated generically under the ``"unknown"`` key. Malformed per-record data
never aborts the batch.
"""

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from sqlmodel import Session, select

from assembly import TaggedValue, collect_values, display_value, is_empty
from errors import ValidationError
from models import AggregationStrategy, Category, Record, UserProfile
from records import load_value_rows, parse_date
from registry import accessible_to, get_fields, list_visible_categories

logger = logging.getLogger(__name__)

TIME_SERIES = "time-series"
FREQUENCY = "frequency"
WEIGHTED_BAR = "weighted-bar"

UNKNOWN_BUCKET = "unknown"

# Values every point of a vital-sign series must carry
SERIES_FIELDS = {
    AggregationStrategy.BLOOD_PRESSURE.value: ("systolic", "diastolic"),
    AggregationStrategy.HEART_RATE.value: ("heart_rate",),
}

DEFAULT_LABEL_FIELD = "name"
DEFAULT_WEIGHT_FIELD = "weight"

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


@dataclass(frozen=True)
class StatsWindow:
    """Inclusive calendar-date window; dates are zero-padded YYYY-MM-DD strings."""

    start: str
    end: str

    @property
    def single_day(self) -> bool:
        return self.start == self.end

    @classmethod
    def day(cls, value: str) -> "StatsWindow":
        value = parse_date(value)
        return cls(value, value)

    @classmethod
    def between(cls, start: str, end: str) -> "StatsWindow":
        start = parse_date(start, "Start date")
        end = parse_date(end, "End date")
        if start > end:
            raise ValidationError("Start date must not be after end date")
        return cls(start, end)

    @classmethod
    def from_period(cls, period_days: int, end: str | None = None) -> "StatsWindow":
        """The ``period_days`` calendar days ending on ``end`` (today by default)."""
        if period_days < 1:
            raise ValidationError("Period must be at least one day")
        end_day = datetime.strptime(parse_date(end, "End date"), "%Y-%m-%d").date() if end else date.today()
        start_day = end_day - timedelta(days=period_days - 1)
        return cls(start_day.isoformat(), end_day.isoformat())


def parse_number(value: Any) -> float | None:
    """Parse a numeric value leniently; returns None when nothing numeric is found."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match:
            number = float(match.group(0))
            return number if math.isfinite(number) else None
    return None


def coerce_number(value: Any) -> float:
    number = parse_number(value)
    return number if number is not None else 0.0


def _label(record: Record, with_time: bool) -> str:
    if with_time and record.record_time:
        return f"{record.record_date} {record.record_time}"
    return record.record_date


def _raw(values: dict[str, TaggedValue], name: str) -> Any:
    tagged = values.get(name)
    return tagged.value if tagged else None


def _time_series(entries, fields: tuple[str, ...], window: StatsWindow) -> list[dict[str, Any]]:
    points = []
    for record, values in entries:
        point = {name: coerce_number(_raw(values, name)) for name in fields}
        if not all(point.values()):
            continue
        points.append({"date": record.record_date, "label": _label(record, window.single_day), **point})
    return points


def _frequency(labels) -> list[dict[str, Any]]:
    counts: dict[str, int] = defaultdict(int)
    for label in labels:
        if label:
            counts[label] += 1
    return [{"name": name, "count": count} for name, count in counts.items()]


def _weighted(entries, weight_field: str) -> tuple[list[dict[str, Any]], float, int]:
    points = []
    total = 0.0
    count = 0
    for record, values in entries:
        weight = parse_number(_raw(values, weight_field))
        if weight is None:
            continue
        total += weight
        count += 1
        points.append({
            "label": _label(record, True),
            "date": record.record_date,
            "time": record.record_time,
            "weight": weight,
        })
    return points, total, count


def _first_value(values: dict[str, TaggedValue], field_order: list[str], only: bool = False) -> str | None:
    """Display form of the first non-empty value, scanning ``field_order`` first.

    With ``only`` set, fields outside ``field_order`` are not considered.
    """
    names = field_order if only else field_order + [name for name in values if name not in field_order]
    for name in names:
        value = _raw(values, name)
        if not is_empty(value):
            return display_value(value)
    return None


def aggregate_category(
    strategy: str,
    entries: list[tuple[Record, dict[str, TaggedValue]]],
    window: StatsWindow,
    fields: list[dict[str, Any]],
    aggregation_field: str | None = None,
) -> dict[str, Any]:
    """Aggregate one category's (record, values) pairs, already in (date, time) order."""
    if strategy in SERIES_FIELDS:
        return {"type": TIME_SERIES, "data": _time_series(entries, SERIES_FIELDS[strategy], window)}

    if strategy == AggregationStrategy.FREQUENCY.value:
        label_field = aggregation_field or DEFAULT_LABEL_FIELD
        return {"type": FREQUENCY, "data": _frequency(_first_value(values, [label_field], only=True)
                                                      for _, values in entries)}

    if strategy == AggregationStrategy.WEIGHTED.value:
        weight_field = aggregation_field or DEFAULT_WEIGHT_FIELD
        points, total, count = _weighted(entries, weight_field)
        unit = next((f.get("unit") for f in fields if f.get("field_name") == weight_field), None)
        return {"type": WEIGHTED_BAR, "data": points, "total": total, "count": count, "unit": unit}

    field_order = [f["field_name"] for f in fields]
    return {"type": FREQUENCY, "data": _frequency(_first_value(values, field_order) for _, values in entries)}


def _load_entries(session: Session, records: list[Record]) -> list[tuple[Record, dict[str, TaggedValue]]]:
    records = sorted(records, key=lambda r: (r.record_date, r.record_time or "", r.id))
    rows_by_record = load_value_rows(session, [r.id for r in records])
    return [(record, collect_values(rows_by_record.get(record.id, []))) for record in records]


def _window_query(user: UserProfile, window: StatsWindow):
    return (
        select(Record)
        .where(Record.owner == user.id)
        .where(Record.record_date >= window.start)
        .where(Record.record_date <= window.end)
    )


def compute_stats(session: Session, user: UserProfile, window: StatsWindow) -> dict[str, dict[str, Any]]:
    """Per-category chart series keyed by category id (as a string)."""
    logger.info(f"Computing stats for user {user.id} from {window.start} to {window.end}")
    stats: dict[str, dict[str, Any]] = {}

    for category in list_visible_categories(session, user):
        records = session.exec(_window_query(user, window).where(Record.category_id == category.id)).all()
        entries = _load_entries(session, list(records))
        result = aggregate_category(
            category.aggregation_strategy,
            entries,
            window,
            get_fields(session, category.id),
            category.aggregation_field,
        )
        stats[str(category.id)] = {"name": category.name, "icon": category.icon, **result}

    orphans = session.exec(
        _window_query(user, window).where(
            Record.category_id.not_in(select(Category.id).where(accessible_to(user)))
        )
    ).all()
    if orphans:
        logger.info(f"Aggregating {len(orphans)} record(s) without a readable category")
        result = aggregate_category(AggregationStrategy.GENERIC.value, _load_entries(session, list(orphans)), window, [])
        stats[UNKNOWN_BUCKET] = {"name": None, "icon": None, **result}

    return stats
