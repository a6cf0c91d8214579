"""Observability middleware for request logging."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Webhook paths carry the integration secret as their last segment
_SECRET_PATH_PREFIXES = ("/api/apps/",)


def redact_path(path: str) -> str:
    """Hide the webhook secret segment of inbound webhook URLs.

    ``/api/apps/slack/events/{id}/{secret}`` is logged as
    ``/api/apps/slack/events/{id}/***``.
    """
    if not path.startswith(_SECRET_PATH_PREFIXES):
        return path
    segments = path.rstrip("/").split("/")
    # ["", "api", "apps", platform, "events"|"messaging", id, secret]
    if len(segments) == 7 and segments[4] in ("events", "messaging"):
        segments[6] = "***"
        return "/".join(segments)
    return path


class AccessLogRedactionFilter(logging.Filter):
    """Redact webhook secrets from uvicorn access log records.

    uvicorn formats ``(client_addr, method, full_path, http_version, status_code)``
    into its access line, so the path argument is rewritten before formatting.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3 and isinstance(args[2], str):
            path, sep, query = args[2].partition("?")
            record.args = (*args[:2], redact_path(path) + sep + query, *args[3:])
        return True


def install_access_log_redaction(logger_name: str = "uvicorn.access") -> None:
    """Attach ``AccessLogRedactionFilter`` to the server access logger once."""
    access_logger = logging.getLogger(logger_name)
    if not any(isinstance(f, AccessLogRedactionFilter) for f in access_logger.filters):
        access_logger.addFilter(AccessLogRedactionFilter())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    ASGI middleware for HTTP request/response logging.

    Logs method, path (webhook secrets redacted), status_code, duration_ms and
    request_id for every request.

    Usage:
        app.add_middleware(RequestLoggingMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = getattr(request.state, "request_id", None)
        path = redact_path(request.url.path)
        start_time = time.perf_counter()

        try:
            response: Response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.warning(
                "http_request_failed: method=%s path=%s duration_ms=%d request_id=%s",
                request.method,
                path,
                duration_ms,
                request_id,
            )
            raise

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "http_request: method=%s path=%s status=%d duration_ms=%d request_id=%s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
