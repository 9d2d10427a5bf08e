from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from pydantic import BaseModel

_ALLOWED_NOTIFY_BACKENDS = {"log", "smtp", "webhook"}


class HealthResponse(BaseModel):
    status: str
    service: str


def _validate_env() -> None:
    """
    Check the process environment before the app object is built.

    Every problem found is collected and reported in a single RuntimeError.

    Checks:
    - a PostgreSQL URL in DATABASE_URL
    - NOTIFY_BACKEND is log / smtp / webhook, with its transport configured
    - KPI_DUE_GRACE_MONTHS is a non-negative integer
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        errors.append("No database URL configured. Set DATABASE_URL.")
    elif not database_url.startswith(("postgres://", "postgresql")):
        errors.append("DATABASE_URL must point to PostgreSQL.")

    # --- Notifications --------------------------------------------------
    backend = os.getenv("NOTIFY_BACKEND", "log").strip().lower() or "log"
    if backend not in _ALLOWED_NOTIFY_BACKENDS:
        errors.append(
            f"NOTIFY_BACKEND='{backend}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_NOTIFY_BACKENDS)}."
        )
    elif backend == "webhook" and not os.getenv("NOTIFY_WEBHOOK_URL", "").strip():
        errors.append("NOTIFY_WEBHOOK_URL is required when NOTIFY_BACKEND=webhook.")
    elif backend == "smtp" and not os.getenv("SMTP_HOST", "").strip():
        errors.append("SMTP_HOST is required when NOTIFY_BACKEND=smtp.")

    # --- Workflow -------------------------------------------------------
    grace_months = os.getenv("KPI_DUE_GRACE_MONTHS", "1").strip()
    if not grace_months.isdigit():
        errors.append(
            f"KPI_DUE_GRACE_MONTHS='{grace_months}' must be a non-negative integer."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def _check_db() -> None:
    """Run SELECT 1 on a pooled connection. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import get_engine

    try:
        async with get_engine().connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


async def _check_schema() -> None:
    """
    Refuse to start while a workflow table is missing from the database.

    Migrations are never applied here; run ``alembic upgrade head`` first.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    async with get_engine().connect() as connection:
        actual: set[str] = await connection.run_sync(
            lambda sync_connection: set(sa_inspect(sync_connection).get_table_names())
        )
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema on boot; release the pool on exit."""
    from db.session import dispose_engine

    await _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    await _check_schema()
    logging.getLogger(__name__).info("Database schema validated")
    try:
        yield
    finally:
        await dispose_engine()
        logging.getLogger(__name__).info("Database engine disposed")


def register_routes(application: FastAPI) -> FastAPI:
    """
    Attach the workflow routers and the health endpoint.
    """

    from app.api.routers import batch_router, fact_change_router, status_router

    application.include_router(fact_change_router)
    application.include_router(batch_router)
    application.include_router(status_router)

    @application.get("/health", response_model=HealthResponse)
    async def healthcheck() -> HealthResponse:
        return HealthResponse(status="ok", service="kpi-monitor")

    return application


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="KPI Monitor API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    return register_routes(application)


app = create_app()
