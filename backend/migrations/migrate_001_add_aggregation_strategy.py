"""
Migration: Store each category's aggregation strategy instead of inferring it from its name.

This migration:
1. Adds aggregation_strategy column (defaults to 'generic')
2. Adds aggregation_field column (label/weight field used by the strategy)
3. Backfills the built-in legacy categories, which were previously matched by display name
4. Handles both PostgreSQL and SQLite
"""
import logging
from sqlalchemy import text

from db import is_postgres

logger = logging.getLogger(__name__)

TABLE = "record_categories"

# Legacy default category name -> (strategy, aggregation_field)
LEGACY_STRATEGIES = {
    "血壓": ("blood_pressure", None),
    "心跳": ("heart_rate", None),
    "飲食": ("frequency", "name"),
    "藥物": ("frequency", "medicine_name"),
    "大便": ("weighted", "weight"),
    "小便": ("weighted", "weight"),
}


def existing_columns(conn, postgres: bool) -> set[str]:
    if postgres:
        result = conn.execute(text("""
            SELECT column_name
            FROM information_schema.columns
            WHERE table_name = :table
        """), {"table": TABLE})
        return {row[0] for row in result.fetchall()}
    result = conn.execute(text(f"PRAGMA table_info({TABLE})"))
    return {row[1] for row in result.fetchall()}


def migrate(engine):
    """Run migration. Safe to call on every startup."""
    postgres = is_postgres(engine)
    with engine.connect() as conn:
        trans = conn.begin()
        try:
            columns = existing_columns(conn, postgres)
            if not columns:
                logger.info(f"{TABLE} table not found, nothing to migrate")
                trans.rollback()
                return
            if "aggregation_strategy" in columns:
                logger.info("aggregation_strategy column already exists, skipping migration")
                trans.rollback()
                return

            logger.info("Adding aggregation_strategy and aggregation_field columns...")
            conn.execute(text(
                f"ALTER TABLE {TABLE} ADD COLUMN aggregation_strategy VARCHAR NOT NULL DEFAULT 'generic'"
            ))
            if "aggregation_field" not in columns:
                conn.execute(text(f"ALTER TABLE {TABLE} ADD COLUMN aggregation_field VARCHAR"))

            logger.info("Backfilling strategies for legacy default categories...")
            for name, (strategy, field) in LEGACY_STRATEGIES.items():
                conn.execute(text(f"""
                    UPDATE {TABLE}
                    SET aggregation_strategy = :strategy, aggregation_field = :field
                    WHERE name = :name AND is_default = :is_default
                """), {"strategy": strategy, "field": field, "name": name, "is_default": True})

            trans.commit()
            logger.info("Migration 001 completed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Migration 001 failed: {str(e)}")
            raise
