"""Main FastAPI application."""

import logging
import re
import time
from contextlib import asynccontextmanager

import sqlalchemy.exc
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import models  # noqa: F401  (registers every table on Base.metadata)
from .api import (
    auth_router,
    chat_router,
    documents_router,
    folders_router,
    invitations_router,
    stats_router,
    webhooks_router,
)
from .core.config import settings, ConfigurationError, Environment
from .core.logging_config import setup_logging
from .core.seeder import seed_bootstrap_admin
from .database import engine, Base, get_db, SessionLocal, DATABASE_URL, is_postgresql
from .exceptions import DocVaultException
from .middleware.exception_handler import (
    docvault_exception_handler,
    request_validation_handler,
    store_unavailable_handler,
)
from .middleware.request_context import RequestContextMiddleware
from .services import audit_service

# Setup logging first
setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _mask_url(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://\1:***@', url)


def _init_database() -> None:
    """Verify connectivity and create any missing tables. Exits with a clear message on failure."""
    masked = _mask_url(DATABASE_URL)
    logger.info("Connecting to database: %s", masked)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(bind=engine)
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.critical(
            "Database initialisation failed.\n"
            f"  DATABASE_URL: {masked}\n"
            "  Check that the server is running and the credentials are correct\n"
            "  (for SQLite: that the directory exists and is writable).\n"
            f"  Error: {e}"
        )
        raise SystemExit(1) from e
    logger.info("Database ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the DocVault API."""
    # --- Security validation ---
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT:
        for problem in settings.insecure_settings():
            logger.warning("SECURITY: %s", problem)

    _init_database()

    # --- Bootstrap the first super_admin ---
    db = SessionLocal()
    try:
        seed_bootstrap_admin(db)
    except DocVaultException as e:
        logger.error("Bootstrap admin not created: %s", e.message)
        db.rollback()
    finally:
        db.close()

    # --- Purge old audit logs ---
    if settings.audit_retention_days > 0:
        db = SessionLocal()
        try:
            purged = audit_service.purge_old_entries(db, days=settings.audit_retention_days)
            if purged > 0:
                logger.info(f"Purged {purged} audit log entries older than {settings.audit_retention_days} days")
        finally:
            db.close()

    yield


app = FastAPI(
    title="DocVault API",
    description=(
        "Document management and retrieval-augmented chat with role-based access control.\n\n"
        "**Authentication:** every endpoint except login, the invitation token routes and "
        "the ingestion callback requires a `Bearer` token in the `Authorization` header. "
        "Roles are re-read on every request; capability flags returned by `/api/auth/me` "
        "are advisory."
    ),
    version=VERSION,
    lifespan=lifespan,
)

# Middleware stack, outermost first: CORS wraps request context.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(RequestContextMiddleware)

# Register exception handlers
app.add_exception_handler(DocVaultException, docvault_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(sqlalchemy.exc.OperationalError, store_unavailable_handler)
app.add_exception_handler(sqlalchemy.exc.TimeoutError, store_unavailable_handler)

logger.info(
    "DocVault API configured | env=%s | db=%s | cors=%s | email=%s",
    settings.environment.value,
    "PostgreSQL" if is_postgresql() else "SQLite",
    ",".join(settings.get_cors_origins()),
    "enabled" if settings.email_enabled else "disabled",
)

app.include_router(auth_router)
app.include_router(invitations_router)
app.include_router(folders_router)
app.include_router(documents_router)
app.include_router(stats_router)
app.include_router(chat_router)
app.include_router(webhooks_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {"name": "DocVault API", "version": VERSION, "status": "running"}


_startup_time = time.monotonic()


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint returning database status and uptime.

    Returns degraded status on DB failure so load balancers can still probe
    without receiving 5xx.
    """
    db_status = "ok"
    try:
        db.execute(text("SELECT 1"))
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.warning("Health check database probe failed: %s", type(e).__name__)
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": VERSION,
    }
