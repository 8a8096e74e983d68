"""API layer — Request middleware.

- Request ID injection (X-Request-ID header)
- Structured access logging
- Rate limiting on watcher creation (sliding window per IP)
- Global exception handler → clean ErrorResponse
"""

from __future__ import annotations

import collections
import time
import uuid
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from x402_sentinel.api.schemas import ErrorResponse
from x402_sentinel.exceptions import (
    CycleInProgressError,
    InvalidConfigError,
    InvalidStatusTransitionError,
    InvalidWebhookError,
    OperatorNotFoundError,
    RecordIntegrityError,
    SentinelError,
    WatcherNotFoundError,
    WatcherTypeNotFoundError,
    WatcherTypeUnavailableError,
)
from x402_sentinel.logging import get_logger

log = get_logger(__name__)

# Exception class → (HTTP status, error code).  First match wins.
_ERROR_MAP: list[tuple[type[SentinelError], int, str]] = [
    (InvalidWebhookError, 400, "invalid_webhook"),
    (InvalidConfigError, 400, "invalid_config"),
    (WatcherTypeNotFoundError, 404, "watcher_type_not_found"),
    (WatcherNotFoundError, 404, "watcher_not_found"),
    (OperatorNotFoundError, 404, "operator_not_found"),
    (WatcherTypeUnavailableError, 409, "watcher_type_unavailable"),
    (InvalidStatusTransitionError, 409, "invalid_status_transition"),
    (CycleInProgressError, 409, "cycle_in_progress"),
    (RecordIntegrityError, 500, "record_integrity_error"),
]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Request-ID to every request and response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log each request with timing information."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)

        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
            request_id=getattr(request.state, "request_id", None),
        )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter for POST /watchers.

    Tracks per-client-IP timestamps in memory. Requests that exceed
    ``max_per_minute`` receive HTTP 429 with a Retry-After header.
    """

    def __init__(self, app: Any, max_per_minute: int = 30, path: str = "/watchers") -> None:
        super().__init__(app)
        self._max = max_per_minute
        self._path = path
        self._window = 60.0  # seconds
        self._hits: dict[str, collections.deque[float]] = {}
        self._last_sweep = 0.0

    def _client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _is_rate_limited(self, client_ip: str) -> bool:
        now = time.time()
        cutoff = now - self._window
        if now - self._last_sweep >= self._window:
            self._evict_idle(cutoff)
            self._last_sweep = now

        dq = self._hits.setdefault(client_ip, collections.deque())
        while dq and dq[0] < cutoff:
            dq.popleft()

        if len(dq) >= self._max:
            return True

        dq.append(now)
        return False

    def _evict_idle(self, cutoff: float) -> None:
        idle = [ip for ip, dq in self._hits.items() if not dq or dq[-1] < cutoff]
        for ip in idle:
            del self._hits[ip]

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "POST" and request.url.path.rstrip("/") == self._path:
            client_ip = self._client_ip(request)
            if self._is_rate_limited(client_ip):
                log.warning("rate_limited", client_ip=client_ip, path=self._path)
                return JSONResponse(
                    status_code=429,
                    content={"error": "Rate limit exceeded", "code": "rate_limited"},
                    headers={"Retry-After": "60"},
                )
        return await call_next(request)


def build_error_handler() -> Any:
    """Return a FastAPI exception handler for SentinelError subclasses."""

    async def handler(request: Request, exc: SentinelError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)

        status_code, code = 500, "internal_error"
        for exc_type, mapped_status, mapped_code in _ERROR_MAP:
            if isinstance(exc, exc_type):
                status_code, code = mapped_status, mapped_code
                break

        if status_code >= 500:
            log.error(
                "request_failed",
                error=exc.message,
                code=code,
                path=request.url.path,
                request_id=request_id,
            )

        body = ErrorResponse(
            error=exc.message,
            code=code,
            detail=exc.context or None,
            request_id=request_id,
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

    return handler
