import logging

from sqlmodel import Session, select

from db import engine
from models import AggregationStrategy, Category, FieldDefinition

logger = logging.getLogger(__name__)

# (name, icon, strategy, aggregation_field, fields)
# fields: (field_name, field_label, field_type, options, is_required, unit)
DEFAULT_CATEGORIES = [
    (
        "Blood Pressure", "🩺", AggregationStrategy.BLOOD_PRESSURE, None,
        [
            ("systolic", "Systolic", "number", None, True, "mmHg"),
            ("diastolic", "Diastolic", "number", None, True, "mmHg"),
            ("pulse", "Pulse", "number", None, False, "bpm"),
        ],
    ),
    (
        "Heart Rate", "❤️", AggregationStrategy.HEART_RATE, None,
        [
            ("heart_rate", "Heart rate", "number", None, True, "bpm"),
        ],
    ),
    (
        "Diet", "🍽️", AggregationStrategy.FREQUENCY, "name",
        [
            ("name", "Food", "text", None, True, None),
            ("meal", "Meal", "select", ["Breakfast", "Lunch", "Dinner", "Snack"], False, None),
            ("amount", "Amount", "text", None, False, None),
        ],
    ),
    (
        "Medication", "💊", AggregationStrategy.FREQUENCY, "medicine_name",
        [
            ("medicine_name", "Medicine", "text", None, True, None),
            ("dosage", "Dosage", "text", None, False, None),
        ],
    ),
    (
        "Stool", "🚽", AggregationStrategy.WEIGHTED, "weight",
        [
            ("weight", "Weight", "number", None, True, "g"),
            ("consistency", "Consistency", "select", ["Hard", "Normal", "Soft", "Liquid"], False, None),
        ],
    ),
    (
        "Urine", "💧", AggregationStrategy.WEIGHTED, "weight",
        [
            ("weight", "Weight", "number", None, True, "g"),
            ("color", "Color", "select", ["Clear", "Pale yellow", "Dark yellow", "Other"], False, None),
        ],
    ),
]


def seed_default_categories(session: Session) -> int:
    """Create any missing default categories and their fields. Returns how many were added."""
    added = 0
    for order, (name, icon, strategy, aggregation_field, fields) in enumerate(DEFAULT_CATEGORIES, start=1):
        existing = session.exec(
            select(Category).where(Category.is_default == True).where(Category.name == name)  # noqa: E712
        ).first()
        if existing:
            continue

        category = Category(
            name=name,
            icon=icon,
            is_default=True,
            display_order=order,
            aggregation_strategy=strategy.value,
            aggregation_field=aggregation_field,
        )
        session.add(category)
        session.flush()
        for field_order, (field_name, label, field_type, options, required, unit) in enumerate(fields, start=1):
            session.add(
                FieldDefinition(
                    category_id=category.id,
                    field_name=field_name,
                    field_label=label,
                    field_type=field_type,
                    field_options=options,
                    is_required=required,
                    unit=unit,
                    display_order=field_order,
                )
            )
        added += 1

    session.commit()
    if added:
        logger.info(f"Seeded {added} default categories")
    return added


if __name__ == "__main__":
    from db import create_db_and_tables

    logging.basicConfig(level=logging.INFO)
    create_db_and_tables()
    with Session(engine) as session:
        seed_default_categories(session)
