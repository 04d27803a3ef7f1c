"""Category and field-definition registry."""

import logging
from typing import Any

from sqlalchemy import func, or_
from sqlmodel import Session, select

import config
from errors import ForbiddenError, NotFoundError, ValidationError
from field_resolver import resolve_fields
from models import AggregationStrategy, Category, FieldDefinition, FieldType, UserProfile

logger = logging.getLogger(__name__)

CATEGORY_PATCH_KEYS = (
    "name",
    "icon",
    "is_hidden",
    "display_order",
    "aggregation_strategy",
    "aggregation_field",
)


def accessible_to(user: UserProfile):
    """Filter for the categories a user may read: shared defaults and their own."""
    return or_(Category.is_default == True, Category.owner == user.id)  # noqa: E712


def get_accessible_category(session: Session, user: UserProfile, category_id: int) -> Category:
    category = session.exec(select(Category).where(Category.id == category_id).where(accessible_to(user))).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def list_visible_categories(session: Session, user: UserProfile) -> list[Category]:
    """Shared defaults plus the user's own categories, minus hidden and reserved names."""
    stmt = (
        select(Category)
        .where(accessible_to(user))
        .order_by(Category.is_default.desc(), Category.display_order, Category.id)
    )
    categories = []
    seen_ids = set()
    for category in session.exec(stmt).all():
        if category.name in config.EXCLUDED_CATEGORY_NAMES or category.is_hidden:
            continue
        if category.id in seen_ids:
            continue
        seen_ids.add(category.id)
        categories.append(category)
    return categories


def list_fields(session: Session, category_id: int) -> list[FieldDefinition]:
    """Raw field rows in storage order; may contain duplicate field names."""
    stmt = (
        select(FieldDefinition)
        .where(FieldDefinition.category_id == category_id)
        .order_by(FieldDefinition.display_order, FieldDefinition.id)
    )
    return list(session.exec(stmt).all())


def get_fields(session: Session, category_id: int) -> list[dict[str, Any]]:
    """Canonical, deduplicated field list for a category."""
    return resolve_fields(list_fields(session, category_id))


def _normalize_strategy(value: Any) -> str:
    try:
        return AggregationStrategy(value).value
    except ValueError as e:
        raise ValidationError(f"Unknown aggregation strategy: {value!r}") from e


def create_category(
    session: Session,
    user: UserProfile,
    name: str | None,
    icon: str | None = None,
    aggregation_strategy: Any = None,
    aggregation_field: str | None = None,
) -> Category:
    if not name or not name.strip():
        raise ValidationError("Category name is required")

    max_order = session.exec(
        select(func.max(Category.display_order)).where(Category.owner == user.id)
    ).one()

    category = Category(
        owner=user.id,
        name=name.strip(),
        icon=icon or config.DEFAULT_CATEGORY_ICON,
        is_default=False,
        display_order=(max_order or 0) + 1,
        aggregation_strategy=_normalize_strategy(aggregation_strategy or AggregationStrategy.GENERIC),
        aggregation_field=aggregation_field or None,
    )
    session.add(category)
    session.commit()
    session.refresh(category)
    logger.info(f"Created category {category.id} ({category.name!r}) for user {user.id}")
    return category


def _get_owned_category(session: Session, user: UserProfile, category_id: int, action: str) -> Category:
    category = session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    if category.is_default:
        raise ForbiddenError(f"Cannot {action} a default category")
    if category.owner != user.id:
        raise ForbiddenError(f"Not allowed to {action} this category")
    return category


def update_category(session: Session, user: UserProfile, category_id: int, patch: dict[str, Any]) -> Category:
    category = _get_owned_category(session, user, category_id, "modify")

    for key in CATEGORY_PATCH_KEYS:
        if key not in patch:
            continue
        value = patch[key]
        if key == "name":
            if not value or not value.strip():
                raise ValidationError("Category name is required")
            value = value.strip()
        elif key == "icon":
            value = value or config.DEFAULT_CATEGORY_ICON
        elif key == "aggregation_strategy":
            value = _normalize_strategy(value or AggregationStrategy.GENERIC)
        elif key in ("is_hidden", "display_order") and value is None:
            continue
        setattr(category, key, value)

    session.add(category)
    session.commit()
    session.refresh(category)
    logger.info(f"Updated category {category_id} for user {user.id}")
    return category


def delete_category(session: Session, user: UserProfile, category_id: int) -> None:
    """Delete a user category. Its fields go with it; its records are left orphaned."""
    category = _get_owned_category(session, user, category_id, "delete")

    for field in list_fields(session, category_id):
        session.delete(field)
    session.delete(category)
    session.commit()
    logger.info(f"Deleted category {category_id} for user {user.id}")


def create_field(
    session: Session,
    user: UserProfile,
    category_id: int,
    field_name: str,
    field_label: str | None = None,
    field_type: Any = FieldType.TEXT,
    field_options: list[str] | None = None,
    is_required: bool = False,
    unit: str | None = None,
    display_order: int | None = None,
) -> FieldDefinition:
    _get_owned_category(session, user, category_id, "modify")

    field_name = (field_name or "").strip()
    if not field_name:
        raise ValidationError("Field name is required")
    try:
        field_type = FieldType(field_type).value
    except ValueError as e:
        raise ValidationError(f"Unknown field type: {field_type!r}") from e
    if field_type == FieldType.SELECT.value and not field_options:
        raise ValidationError("Select fields need at least one option")

    existing = get_fields(session, category_id)
    if any(f["field_name"] == field_name for f in existing):
        raise ValidationError(f"Field {field_name!r} already exists in this category")

    if display_order is None:
        display_order = max((f["display_order"] for f in existing), default=0) + 1

    field = FieldDefinition(
        category_id=category_id,
        field_name=field_name,
        field_label=(field_label or "").strip() or field_name,
        field_type=field_type,
        field_options=list(field_options) if field_options else None,
        is_required=is_required,
        unit=unit or None,
        display_order=display_order,
    )
    session.add(field)
    session.commit()
    session.refresh(field)
    logger.info(f"Added field {field_name!r} to category {category_id}")
    return field


def delete_field(session: Session, user: UserProfile, category_id: int, field_id: int) -> None:
    _get_owned_category(session, user, category_id, "modify")

    field = session.get(FieldDefinition, field_id)
    if not field or field.category_id != category_id:
        raise NotFoundError("Field not found")
    session.delete(field)
    session.commit()
    logger.info(f"Removed field {field_id} from category {category_id}")
