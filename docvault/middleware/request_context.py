"""Request context middleware — request id, timing, access log, rate limiting.

All handled in one pass. Credential-bearing public endpoints (login and the
invitation token routes) draw from a second, stricter bucket so tokens and
passwords cannot be guessed at the general rate.

The rate limiter is a pure function ``check_rate_limit`` that can be tested independently.
"""

import logging
import threading
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.config import settings
from ..core.logging_config import request_id_var, user_id_var

logger = logging.getLogger(__name__)


# Bucket state: {client_key: (available_tokens, last_refill_timestamp)}
_rate_buckets: dict[str, tuple[float, float]] = {}
_auth_buckets: dict[str, tuple[float, float]] = {}
_rate_lock = threading.Lock()

_EVICT_AGE = 120.0


def evict_stale(bucket: dict[str, tuple[float, float]], now: float, max_age: float = _EVICT_AGE) -> int:
    """Drop keys idle for longer than *max_age* seconds. Returns how many were removed."""
    cutoff = now - max_age
    stale = [k for k, (_, ts) in bucket.items() if ts < cutoff]
    for k in stale:
        del bucket[k]
    return len(stale)


def check_rate_limit(
    bucket: dict[str, tuple[float, float]],
    key: str,
    max_per_minute: int,
    now: Optional[float] = None,
) -> tuple[bool, float]:
    """Token-bucket admission check for *key*.

    Returns ``(allowed, retry_after)``. *retry_after* is 0.0 when allowed,
    otherwise seconds until the next token is available. A non-positive
    *max_per_minute* disables limiting.
    """
    if max_per_minute <= 0:
        return True, 0.0
    if now is None:
        now = time.monotonic()

    refill_rate = max_per_minute / 60.0

    if key in bucket:
        tokens, last_refill = bucket[key]
        tokens = min(max_per_minute, tokens + (now - last_refill) * refill_rate)
    else:
        tokens = float(max_per_minute)

    if tokens >= 1.0:
        bucket[key] = (tokens - 1.0, now)
        return True, 0.0

    bucket[key] = (tokens, now)
    return False, (1.0 - tokens) / refill_rate


_EXEMPT_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})
_CREDENTIAL_PATH_PREFIXES = ("/api/auth/login", "/api/invitations/token/")


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def _rate_limited_response(rid: str, retry_after: float) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMITED",
            "message": "Too many requests",
            "details": {"retry_after": round(retry_after, 1)},
        },
        headers={"Retry-After": str(int(retry_after) + 1), "X-Request-ID": rid},
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Single middleware handling request-id, timing, logging, and rate limiting."""

    _sweep_counter = 0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request_id_var.set(rid)
        user_id_var.set("")

        path = request.url.path
        if path not in _EXEMPT_PATHS:
            key = _client_key(request)
            now = time.monotonic()
            with _rate_lock:
                RequestContextMiddleware._sweep_counter += 1
                if RequestContextMiddleware._sweep_counter % 100 == 0:
                    evict_stale(_rate_buckets, now)
                    evict_stale(_auth_buckets, now)

                allowed, retry_after = check_rate_limit(
                    _rate_buckets, key, settings.rate_limit_per_minute, now
                )
                if allowed and path.startswith(_CREDENTIAL_PATH_PREFIXES):
                    allowed, retry_after = check_rate_limit(
                        _auth_buckets, key, settings.auth_rate_limit_per_minute, now
                    )
            if not allowed:
                logger.warning(
                    "Rate limit exceeded",
                    extra={"client": key, "path": path, "retry_after": round(retry_after, 1)},
                )
                return _rate_limited_response(rid, retry_after)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = rid
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        # Invitation tokens travel in the path; keep them out of the access log.
        logged_path = "/api/invitations/token/***" if path.startswith("/api/invitations/token/") else path
        logger.info(
            f"{request.method} {logged_path} {response.status_code}",
            extra={
                "method": request.method,
                "path": logged_path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
