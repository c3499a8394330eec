"""Request Middleware for Logging and Tracing

- Correlation ID per request (taken from X-Correlation-ID or generated)
- Learner id from X-User-ID bound into every log event of the request
- Start/completion logging with timing, slow request warnings
"""
import time
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from core.logging import (
    generate_correlation_id,
    bind_context,
    clear_context,
    api_logger,
)

log = api_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and manages its correlation context."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or generate_correlation_id()

        clear_context()
        bind_context(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )
        if user_id := request.headers.get("X-User-ID"):
            bind_context(user_id=user_id[:64])

        start = time.perf_counter()
        log.info("request_started", query=str(request.query_params) or None)

        try:
            response = await call_next(request)
        except Exception as exc:
            log.exception(
                "request_failed",
                error_type=type(exc).__name__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            clear_context()

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Correlation-ID"] = correlation_id

        status = response.status_code
        log_method = log.info if status < 400 else (log.warning if status < 500 else log.error)
        log_method(
            "request_completed",
            status=status,
            duration_ms=duration_ms,
            correlation_id=correlation_id,
        )
        return response


class SlowRequestMiddleware(BaseHTTPMiddleware):
    """Warns when a request exceeds the threshold."""

    def __init__(self, app, slow_threshold_ms: float = 1000):
        super().__init__(app)
        self.slow_threshold_ms = slow_threshold_ms

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        if duration_ms > self.slow_threshold_ms:
            log.warning(
                "slow_request",
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                threshold_ms=self.slow_threshold_ms,
            )
        return response
