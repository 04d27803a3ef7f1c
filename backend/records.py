"""Record store: a record and its field-value rows are written as one unit.

Every query here is filtered by ``owner``; another user's record is
indistinguishable from a record that does not exist.
"""

import logging
import re
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, delete, select

from assembly import TaggedValue, assemble, is_empty
from errors import NotFoundError, UpstreamError, ValidationError
from models import Category, Record, RecordFieldValue, UserProfile
from registry import accessible_to
from schemas import AssembledRecord

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")


def parse_category_id(value: Any) -> int:
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Category is required")
    try:
        category_id = int(value.strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid category id: {value!r}") from e
    if isinstance(value, float) and value != category_id:
        raise ValidationError(f"Invalid category id: {value!r}")
    if category_id <= 0:
        raise ValidationError(f"Invalid category id: {value!r}")
    return category_id


def parse_date(value: Any, label: str = "Date") -> str:
    """Validate a zero-padded YYYY-MM-DD calendar date."""
    if not value or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    value = value.strip()
    try:
        if not DATE_RE.match(value):
            raise ValueError(value)
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"Invalid {label.lower()} format. Use YYYY-MM-DD") from e
    return value


def parse_time(value: Any) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str) or not TIME_RE.match(value.strip()):
        raise ValidationError("Invalid time format. Use HH:MM")
    return value.strip()


def _check_category(session: Session, user: UserProfile, category_id: int) -> int:
    """Reject another user's private category; ids of deleted categories are let through."""
    category = session.get(Category, category_id)
    if category is not None and not category.is_default and category.owner != user.id:
        raise NotFoundError("Category not found")
    return category_id


def _clean_notes(notes: str | None) -> str | None:
    if notes is None or not notes.strip():
        return None
    return notes.strip()


def _tag_values(values: dict[str, Any] | None) -> dict[str, TaggedValue]:
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ValidationError("Record data must be an object")
    return {
        name: TaggedValue.from_raw(value)
        for name, value in values.items()
        if name and not is_empty(value)
    }


def _insert_values(session: Session, record_id: int, values: dict[str, TaggedValue]) -> None:
    for field_name, tagged in values.items():
        field_value, field_value_json = tagged.to_columns()
        session.add(
            RecordFieldValue(
                record_id=record_id,
                field_name=field_name,
                field_value=field_value,
                field_value_json=field_value_json,
            )
        )
    session.flush()


def _discard_orphan(session: Session, owner: str, record_id: int) -> None:
    """Compensating delete for a record whose values failed to save.

    Only has work to do when the backend did not roll the parent row back.
    """
    try:
        orphan = session.exec(
            select(Record).where(Record.id == record_id).where(Record.owner == owner)
        ).first()
        if orphan is None:
            return
        logger.warning(f"Removing orphaned record {record_id} after failed value insert")
        session.exec(delete(RecordFieldValue).where(RecordFieldValue.record_id == record_id))
        session.delete(orphan)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Compensating delete for record {record_id} failed: {str(e)}")


def create_record(
    session: Session,
    user: UserProfile,
    category_id: Any,
    record_date: Any,
    record_time: Any = None,
    notes: str | None = None,
    values: dict[str, Any] | None = None,
) -> int:
    category_id = _check_category(session, user, parse_category_id(category_id))
    record_date = parse_date(record_date)
    record_time = parse_time(record_time)
    tagged = _tag_values(values)

    now = datetime.now(UTC)
    record = Record(
        owner=user.id,
        category_id=category_id,
        record_date=record_date,
        record_time=record_time,
        notes=_clean_notes(notes),
        created_at=now,
        updated_at=now,
    )

    record_id = None
    try:
        session.add(record)
        session.flush()
        record_id = record.id
        _insert_values(session, record_id, tagged)
        session.commit()
    except Exception as e:
        session.rollback()
        if record_id is not None:
            _discard_orphan(session, user.id, record_id)
        logger.error(f"Error creating record: {str(e)}")
        if isinstance(e, SQLAlchemyError):
            raise UpstreamError(f"Failed to save record: {str(e)}") from e
        raise

    logger.info(f"Created record {record_id} ({len(tagged)} values) for user {user.id}")
    return record_id


def _get_owned_record(session: Session, user: UserProfile, record_id: int) -> Record:
    record = session.exec(
        select(Record).where(Record.id == record_id).where(Record.owner == user.id)
    ).first()
    if not record:
        raise NotFoundError("Record not found")
    return record


def update_record(session: Session, user: UserProfile, record_id: int, patch: dict[str, Any]) -> None:
    """Update the provided columns; a provided ``values`` mapping replaces all field values."""
    record = _get_owned_record(session, user, record_id)

    if "category_id" in patch:
        record.category_id = _check_category(session, user, parse_category_id(patch["category_id"]))
    if "record_date" in patch:
        record.record_date = parse_date(patch["record_date"])
    if "record_time" in patch:
        record.record_time = parse_time(patch["record_time"])
    if "notes" in patch:
        record.notes = _clean_notes(patch["notes"])

    replace_values = patch.get("values") is not None
    tagged = _tag_values(patch["values"]) if replace_values else {}
    record.updated_at = datetime.now(UTC)

    try:
        session.add(record)
        if replace_values:
            session.exec(delete(RecordFieldValue).where(RecordFieldValue.record_id == record_id))
            _insert_values(session, record_id, tagged)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error updating record {record_id}: {str(e)}")
        raise UpstreamError(f"Failed to update record: {str(e)}") from e

    logger.info(f"Updated record {record_id} for user {user.id} (values replaced: {replace_values})")


def delete_record(session: Session, user: UserProfile, record_id: int) -> None:
    record = _get_owned_record(session, user, record_id)
    try:
        session.exec(delete(RecordFieldValue).where(RecordFieldValue.record_id == record_id))
        session.delete(record)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error deleting record {record_id}: {str(e)}")
        raise UpstreamError(f"Failed to delete record: {str(e)}") from e
    logger.info(f"Deleted record {record_id} for user {user.id}")


def load_value_rows(session: Session, record_ids: list[int]) -> dict[int, list[RecordFieldValue]]:
    """Field-value rows grouped by record id, each group in insertion order."""
    rows_by_record: dict[int, list[RecordFieldValue]] = defaultdict(list)
    if not record_ids:
        return rows_by_record
    rows = session.exec(
        select(RecordFieldValue)
        .where(RecordFieldValue.record_id.in_(record_ids))
        .order_by(RecordFieldValue.id)
    ).all()
    for row in rows:
        rows_by_record[row.record_id].append(row)
    return rows_by_record


def assemble_records(session: Session, user: UserProfile, records: list[Record]) -> list[AssembledRecord]:
    rows_by_record = load_value_rows(session, [r.id for r in records])
    category_ids = {r.category_id for r in records}
    categories = {
        c.id: c
        for c in session.exec(
            select(Category).where(Category.id.in_(category_ids)).where(accessible_to(user))
        ).all()
    } if category_ids else {}
    return [
        assemble(record, rows_by_record.get(record.id, []), categories.get(record.category_id))
        for record in records
    ]


def get_record(session: Session, user: UserProfile, record_id: int) -> AssembledRecord:
    record = _get_owned_record(session, user, record_id)
    return assemble_records(session, user, [record])[0]


def list_records(
    session: Session,
    user: UserProfile,
    start_date: str | None = None,
    end_date: str | None = None,
    category_id: int | None = None,
) -> list[AssembledRecord]:
    """Owned records, newest first (date desc, then time desc; untimed last within a day)."""
    stmt = select(Record).where(Record.owner == user.id)
    if start_date:
        stmt = stmt.where(Record.record_date >= parse_date(start_date, "Start date"))
    if end_date:
        stmt = stmt.where(Record.record_date <= parse_date(end_date, "End date"))
    if category_id is not None:
        stmt = stmt.where(Record.category_id == category_id)

    records = list(session.exec(stmt).all())
    records.sort(key=lambda r: (r.record_date, r.record_time or "", r.id), reverse=True)
    return assemble_records(session, user, records)


def week_records(session: Session, user: UserProfile, week_start: str) -> tuple[str, list[dict[str, Any]]]:
    """Seven day buckets starting at ``week_start``, each in time order."""
    start = datetime.strptime(parse_date(week_start, "Week start"), "%Y-%m-%d").date()
    days = [(start + timedelta(days=offset)).isoformat() for offset in range(7)]

    buckets: dict[str, list[AssembledRecord]] = {day: [] for day in days}
    for record in list_records(session, user, start_date=days[0], end_date=days[-1]):
        buckets[record.record_date].append(record)
    for day_records in buckets.values():
        day_records.sort(key=lambda r: (r.record_time or "", r.id))

    return days[-1], [{"date": day, "records": buckets[day]} for day in days]
