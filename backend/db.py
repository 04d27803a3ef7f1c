"""Engine and session factory."""

import logging

from sqlmodel import Session, SQLModel, create_engine

import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.database_url()
logger.info(f"DB_URL_DRIVER={DATABASE_URL.split(':', 1)[0]}")

# SQLite connections are shared across FastAPI's worker threads
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def is_postgres(bind=None) -> bool:
    target = bind if bind is not None else engine
    return "postgresql" in str(getattr(target, "url", "")).lower()


def create_db_and_tables():
    """Create any missing tables; existing data is left alone."""
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
