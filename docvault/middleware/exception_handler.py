"""Exception handlers for structured error responses."""

import logging
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import CommunicationError, DocVaultException, ValidationError

logger = logging.getLogger(__name__)


async def docvault_exception_handler(request: Request, exc: DocVaultException) -> JSONResponse:
    """Log the error and convert it to the standard JSON error body."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"DocVaultException: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def store_unavailable_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Map store connectivity failures and timeouts to COMMUNICATION_FAILURE.

    Registered for ``OperationalError`` and pool ``TimeoutError`` only, so
    constraint violations and programming errors still surface as 500s.
    """
    logger.error(
        "Data store unavailable",
        extra={"path": request.url.path, "method": request.method, "error": type(exc).__name__},
    )
    return await docvault_exception_handler(request, CommunicationError(target="database"))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request bodies as VALIDATION_ERROR (400), not FastAPI's 422."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    error = ValidationError(first.get("msg", "Invalid request"), field=field or None)
    error.details["errors"] = [
        {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg", "")} for e in errors
    ]
    return await docvault_exception_handler(request, error)
