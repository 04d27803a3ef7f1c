import os

# Shared login password for the tracker (single household deployment)
LOGIN_PASSWORD = os.getenv("LOGIN_PASSWORD", "369")

# Category names reserved for legacy cleanup; never shown to users
EXCLUDED_CATEGORY_NAMES = frozenset(
    name.strip()
    for name in os.getenv("EXCLUDED_CATEGORY_NAMES", "含氧量,藥物,大小便").split(",")
    if name.strip()
)

DEFAULT_CATEGORY_ICON = os.getenv("DEFAULT_CATEGORY_ICON", "📝")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_PATH = os.getenv("DATABASE_PATH", "./healthlog.db")
ENV = os.getenv("ENV", os.getenv("RENDER", "").lower() or "dev")


def database_url() -> str:
    """Resolve the database URL; production deployments must provide DATABASE_URL."""
    url = os.getenv("DATABASE_URL")
    if not url:
        if ENV in ("prod", "production") or os.getenv("RENDER"):
            raise RuntimeError(
                "DATABASE_URL missing in production; refusing to start with SQLite. "
                "Please configure DATABASE_URL environment variable."
            )
        return f"sqlite:///{DATABASE_PATH}"
    # Hosted Postgres hands out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url
