"""API middleware for request/response processing."""

from src.api.middleware.error_handler import error_handling_middleware
from src.api.middleware.observability import (
    AccessLogRedactionFilter,
    RequestLoggingMiddleware,
    install_access_log_redaction,
)
from src.api.middleware.request_id import RequestIdMiddleware

__all__ = [
    "error_handling_middleware",
    "RequestIdMiddleware",
    "RequestLoggingMiddleware",
    "AccessLogRedactionFilter",
    "install_access_log_redaction",
]
