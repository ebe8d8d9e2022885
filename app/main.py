from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app.errors import PortalError
from db.database import Database

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

# Tables the service cannot run without. Value tables are optional: the
# dashboards degrade to empty payloads while they are missing.
REQUIRED_TABLES = ("municipalities", "users", "indicator_catalog", "service_catalog")


def _validate_env(*, database_injected: bool = False) -> None:
    """
    Validate all required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A database URL is required unless a Database is injected.
    - SESSION_SECRET_KEY is required outside local environments.
    - Numeric settings must parse as integers.
    """

    from app.config import is_local_environment
    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    if not database_injected:
        urls = [os.getenv(name, "").strip() for name in ("DATABASE_URL", "LOCAL_DATABASE_URL", "CLOUD_DATABASE_URL")]
        if not any(urls):
            errors.append(
                "No database URL configured. Set DATABASE_URL, LOCAL_DATABASE_URL or CLOUD_DATABASE_URL."
            )

    # --- Session secret -------------------------------------------------
    if not is_local_environment() and not os.getenv("SESSION_SECRET_KEY", "").strip():
        errors.append("SESSION_SECRET_KEY is not set. It is required outside local environments.")

    # --- Numeric settings -----------------------------------------------
    for name in (
        "DB_POOL_SIZE",
        "DB_MAX_OVERFLOW",
        "DB_POOL_RECYCLE",
        "DB_POOL_TIMEOUT",
        "DB_STATEMENT_TIMEOUT_MS",
        "SESSION_MAX_AGE_HOURS",
        "BCRYPT_ROUNDS",
        "PASSWORD_MIN_LENGTH",
        "IMPORT_MAX_UPLOAD_MB",
        "DASHBOARD_TOP_N",
        "DASHBOARD_RECENT_LIMIT_MAX",
    ):
        raw = os.getenv(name, "").strip()
        if raw and not raw.lstrip("-").isdigit():
            errors.append(f"{name}='{raw}' is not an integer.")

    # --- Log level ------------------------------------------------------
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in _LOG_LEVELS:
        errors.append(f"LOG_LEVEL='{log_level}' is not valid. Allowed values: {sorted(_LOG_LEVELS)}.")

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


def _check_db(database: Database) -> None:
    """Run SELECT 1 on the primary. Raises RuntimeError if the DB is unreachable."""
    try:
        database.ping()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema(database: Database) -> None:
    """
    Populate the table-existence cache and verify the required tables.

    Missing value tables are logged and tolerated; a missing required table
    aborts startup so migrations are run before serving traffic.

    Does NOT auto-migrate.
    """
    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base

    actual = database.probe_tables()
    expected = set(Base.metadata.tables.keys())

    missing_required = sorted(set(REQUIRED_TABLES) - actual)
    if missing_required:
        logger.critical(
            "Schema mismatch: %d required table(s) are absent from the database: %s. "
            "Run 'alembic upgrade head' and restart.",
            len(missing_required),
            ", ".join(missing_required),
        )
        raise RuntimeError(
            f"Schema mismatch: required table(s) missing ({', '.join(missing_required)}). "
            "Run migrations and restart."
        )

    missing_optional = sorted(expected - actual)
    if missing_optional:
        logger.warning(
            "Optional table(s) missing, related dashboards will return empty data: %s",
            ", ".join(missing_optional),
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema on boot; dispose the pools on exit."""
    database: Database = application.state.database
    _check_db(database)
    logger.info("Database connectivity confirmed")
    _check_schema(database)
    logger.info("Database schema validated")
    if database.probe_replica():
        logger.info("Read replica connectivity confirmed")
    try:
        yield
    finally:
        database.dispose()
        logger.info("Database pools disposed")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_body(code: str, message: str) -> dict[str, str]:
    return {"error": code, "message": message}


async def _portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed path=%s error=%s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=400,
        content=_error_body("bad_request", "; ".join(problems) or "Invalid request."),
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = {404: "not_found", 405: "method_not_allowed"}.get(exc.status_code, "http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    from app.config import get_app_settings

    logger.exception("Unhandled error path=%s", request.url.path)
    message = str(exc) if get_app_settings().expose_error_details else "Internal server error."
    return JSONResponse(status_code=500, content=_error_body("internal", message))


def create_app(database: Database | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    ``database`` replaces the environment-configured pools (used by tests).
    """

    _validate_env(database_injected=database is not None)
    _configure_logging()

    from app.config import get_session_settings

    application = FastAPI(
        title="Municipal Reports API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.state.database = database if database is not None else Database.from_env()

    session_settings = get_session_settings()
    application.add_middleware(
        SessionMiddleware,
        secret_key=session_settings.secret_key,
        session_cookie=session_settings.cookie_name,
        max_age=session_settings.max_age_seconds,
        same_site="lax",
        https_only=session_settings.https_only,
    )

    application.add_exception_handler(PortalError, _portal_error_handler)
    application.add_exception_handler(RequestValidationError, _validation_error_handler)
    application.add_exception_handler(StarletteHTTPException, _http_error_handler)
    application.add_exception_handler(Exception, _unhandled_error_handler)

    from app.api.routers import (
        admin_router,
        auth_router,
        catalog_router,
        dashboard_router,
        reports_router,
    )

    application.include_router(auth_router)
    application.include_router(catalog_router)
    application.include_router(reports_router)
    application.include_router(dashboard_router)
    application.include_router(admin_router)

    @application.get("/health")
    def healthcheck(request: Request) -> JSONResponse:
        db: Database = request.app.state.database
        try:
            db.ping()
        except Exception:
            logger.exception("Health check: primary database unreachable")
            return JSONResponse(
                status_code=503,
                content={"status": "unavailable", "database": "unavailable", "replica": "unknown"},
            )

        if not db.has_replica:
            replica_state = "not_configured"
        else:
            replica_state = "ok" if db.probe_replica() else "unavailable"
        return JSONResponse(
            content={
                "status": "ok" if replica_state != "unavailable" else "degraded",
                "database": "ok",
                "replica": replica_state,
            }
        )

    return application


def __getattr__(name: str):
    """Build the ASGI ``app`` on first access so importing this module has no side effects."""
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
