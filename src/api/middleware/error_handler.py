"""Error handling middleware for FastAPI."""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

from src.api.middleware.observability import redact_path
from src.api.schemas.common import ErrorResponse
from src.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


async def error_handling_middleware(request: Request, call_next: Callable) -> Response:
    """
    Catch exceptions and return standardized JSON error responses.

    Handles different exception types:
    - NotFoundError (thread, integration, workflow) → 404 Not Found
    - ConflictError (duplicate integration) → 409 Conflict
    - ValueError → 400 Bad Request
    - HTTPException → passthrough with original status
    - IntegrityError (SQLAlchemy) → 409 Conflict
    - Exception → 500 Internal Server Error with a generic message

    Args:
        request: Incoming FastAPI request
        call_next: Next middleware/handler in chain

    Returns:
        Response object (either success or error JSON)
    """
    try:
        response: Response = await call_next(request)
        return response
    except Exception as e:
        # Set by RequestIdMiddleware, which runs inside this one
        request_id = getattr(request.state, "request_id", None)
        return _error_response(request, e, request_id)


def _error_response(request: Request, exc: Exception, request_id: Optional[str]) -> JSONResponse:
    path = redact_path(request.url.path)

    if isinstance(exc, NotFoundError):
        logger.info(
            f"not_found: path={path}, error={type(exc).__name__}, request_id={request_id}"
        )
        status_code = 404
        error = ErrorResponse(error="not_found", message=str(exc), request_id=request_id)

    elif isinstance(exc, ConflictError):
        logger.info(f"conflict: path={path}, request_id={request_id}")
        status_code = 409
        error = ErrorResponse(error="conflict", message=str(exc), request_id=request_id)

    elif isinstance(exc, ValueError):
        logger.warning(f"validation_error: path={path}, error={str(exc)}, request_id={request_id}")
        status_code = 400
        error = ErrorResponse(error="validation_error", message=str(exc), request_id=request_id)

    elif isinstance(exc, HTTPException):
        logger.info(
            f"http_exception: path={path}, status={exc.status_code}, "
            f"detail={exc.detail}, request_id={request_id}"
        )
        status_code = exc.status_code
        error = ErrorResponse(error="http_error", message=str(exc.detail), request_id=request_id)

    elif isinstance(exc, IntegrityError):
        logger.warning(f"integrity_error: path={path}, error={str(exc.orig)}, request_id={request_id}")
        status_code = 409
        error = ErrorResponse(
            error="conflict",
            message="Resource conflict or constraint violation",
            request_id=request_id,
        )

    else:
        logger.error(
            f"internal_error: path={path}, error_type={type(exc).__name__}, request_id={request_id}",
            exc_info=exc,
        )
        status_code = 500
        error = ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
            request_id=request_id,
        )

    return JSONResponse(status_code=status_code, content=error.model_dump())
