import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

import config
import export
import forms
import records
import registry
import stats
from auth import get_current_user, login
from db import create_db_and_tables, engine, get_session
from errors import HealthLogError, ValidationError
from models import UserProfile
from schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    FieldCreate,
    FieldResponse,
    LoginRequest,
    LoginResponse,
    RecordCreate,
    RecordListResponse,
    RecordResponse,
    RecordUpdate,
    StatsResponse,
    UserResponse,
    WeekDay,
    WeekResponse,
)
from seed import seed_default_categories

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()

    # Run migrations if needed
    try:
        from migrations.migrate_001_add_aggregation_strategy import migrate as migrate_001
        migrate_001(engine)
    except Exception as e:
        # Don't raise - allow app to start, but log the error clearly
        logger.error(f"Migration 001 failed: {str(e)}")

    with Session(engine) as session:
        seed_default_categories(session)

    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Health Log Tracker API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(HealthLogError)
async def health_log_error_handler(request: Request, exc: HealthLogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return _failure(exc.status_code, exc.message)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {str(exc)}")
    return _failure(500, "Database error")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    return _failure(400, message)


# --- Users -------------------------------------------------------------------

@app.post("/users/login", response_model=LoginResponse)
def login_user(request: LoginRequest, session: Session = Depends(get_session)):
    """Log in with the shared password; unknown usernames are registered."""
    token, user = login(session, request.username, request.password)
    logger.info(f"User {user.username!r} logged in")
    return LoginResponse(
        token=token,
        user=UserResponse(id=user.id, username=user.username, display_name=user.display_name or user.username),
    )


@app.get("/users/me")
def current_user(user: UserProfile = Depends(get_current_user)):
    return {
        "success": True,
        "user": UserResponse(id=user.id, username=user.username, display_name=user.display_name or user.username),
    }


# --- Categories --------------------------------------------------------------

def _category_payload(category) -> CategoryResponse:
    return CategoryResponse.model_validate(category, from_attributes=True)


@app.get("/categories")
def get_categories(user: UserProfile = Depends(get_current_user), session: Session = Depends(get_session)):
    """Categories visible to the current user."""
    categories = registry.list_visible_categories(session, user)
    return {"success": True, "categories": [_category_payload(c) for c in categories]}


@app.post("/categories", status_code=201)
def create_category(
    request: CategoryCreate,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    category = registry.create_category(
        session,
        user,
        request.name,
        icon=request.icon,
        aggregation_strategy=request.aggregation_strategy,
        aggregation_field=request.aggregation_field,
    )
    return {"success": True, "category": _category_payload(category)}


@app.put("/categories/{category_id}")
def update_category(
    category_id: int,
    request: CategoryUpdate,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    category = registry.update_category(session, user, category_id, request.model_dump(exclude_unset=True))
    return {"success": True, "category": _category_payload(category)}


@app.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    registry.delete_category(session, user, category_id)
    return {"success": True}


@app.get("/categories/{category_id}/fields")
def get_category_fields(
    category_id: int,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Deduplicated field schema for a category."""
    registry.get_accessible_category(session, user, category_id)
    fields = registry.get_fields(session, category_id)
    return {"success": True, "fields": [FieldResponse(**f) for f in fields]}


@app.post("/categories/{category_id}/fields", status_code=201)
def add_category_field(
    category_id: int,
    request: FieldCreate,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    field = registry.create_field(session, user, category_id, **request.model_dump())
    return {"success": True, "field": FieldResponse(**field.model_dump())}


@app.delete("/categories/{category_id}/fields/{field_id}")
def remove_category_field(
    category_id: int,
    field_id: int,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    registry.delete_field(session, user, category_id, field_id)
    return {"success": True}


@app.get("/categories/{category_id}/form")
def get_category_form(
    category_id: int,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Input descriptors for the record form of a category."""
    registry.get_accessible_category(session, user, category_id)
    return {"success": True, "form": forms.build_form(registry.list_fields(session, category_id))}


# --- Records -----------------------------------------------------------------

@app.get("/records", response_model=RecordListResponse)
def get_records(
    start_date: str = Query(None, description="Start date filter (YYYY-MM-DD)"),
    end_date: str = Query(None, description="End date filter (YYYY-MM-DD)"),
    category_id: int = Query(None, description="Only records of this category"),
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    logger.info(f"Records request - from: {start_date}, to: {end_date}, category: {category_id}")
    return RecordListResponse(records=records.list_records(session, user, start_date, end_date, category_id))


@app.get("/records/week", response_model=WeekResponse)
def get_week(
    week_start: str = Query(..., description="Week start date in YYYY-MM-DD format"),
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Records for the seven days starting at week_start, bucketed per day."""
    week_end, days = records.week_records(session, user, week_start)
    return WeekResponse(week_start=week_start, week_end=week_end, days=[WeekDay(**day) for day in days])


@app.get("/records/{record_id}", response_model=RecordResponse)
def get_record(
    record_id: int,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return RecordResponse(record=records.get_record(session, user, record_id))


@app.post("/records", status_code=201)
def create_record(
    request: RecordCreate,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    record_id = records.create_record(
        session,
        user,
        request.category_id,
        request.record_date,
        record_time=request.record_time,
        notes=request.notes,
        values=request.data,
    )
    return {"success": True, "record": {"id": record_id}}


@app.put("/records/{record_id}")
def update_record(
    record_id: int,
    request: RecordUpdate,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    patch = request.model_dump(exclude_unset=True)
    if "data" in patch:
        patch["values"] = patch.pop("data")
    records.update_record(session, user, record_id, patch)
    return {"success": True}


@app.delete("/records/{record_id}")
def delete_record(
    record_id: int,
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    records.delete_record(session, user, record_id)
    return {"success": True}


# --- Stats & export ------------------------------------------------------------

@app.get("/stats", response_model=StatsResponse)
def get_stats(
    date_: str = Query(None, alias="date", description="Single day (YYYY-MM-DD)"),
    start_date: str = Query(None, description="Range start (YYYY-MM-DD)"),
    end_date: str = Query(None, description="Range end (YYYY-MM-DD)"),
    period: int = Query(None, description="Number of days ending at end_date (or today)"),
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Chart-ready series per visible category over a day or date range."""
    if date_:
        window = stats.StatsWindow.day(date_)
    elif start_date:
        window = stats.StatsWindow.between(start_date, end_date or date.today().isoformat())
    else:
        window = stats.StatsWindow.from_period(7 if period is None else period, end_date)
    return StatsResponse(start_date=window.start, end_date=window.end, stats=stats.compute_stats(session, user, window))


@app.get("/export")
def export_records(
    format: str = Query("csv", description="csv, excel or pdf"),
    start_date: str = Query(None, description="Start date filter (YYYY-MM-DD)"),
    end_date: str = Query(None, description="End date filter (YYYY-MM-DD)"),
    user: UserProfile = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Download records as CSV (also served for 'excel') or PDF."""
    format = format.lower()
    if format not in ("csv", "excel", "pdf"):
        raise ValidationError("Unsupported format; use csv, excel or pdf")

    columns, rows = export.export_rows(records.list_records(session, user, start_date, end_date))
    filename = f"health_records_{start_date or 'all'}_{end_date or 'all'}"
    logger.info(f"Exporting {len(rows)} records as {format} for user {user.id}")

    if format == "pdf":
        title = f"Health Records {start_date or ''} - {end_date or ''}".strip(" -")
        return Response(
            content=export.to_pdf(columns, rows, title=title),
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}.pdf"'},
        )
    return Response(
        content=export.to_csv(columns, rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'},
    )


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Health Log Tracker API", "docs": "/docs"}
