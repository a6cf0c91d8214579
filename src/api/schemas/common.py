"""Common API schemas shared across endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response.

    Args:
        error: Error type identifier (e.g., "validation_error", "not_found")
        message: Human-readable error description
        details: Optional additional error context
        request_id: Optional request ID for tracing
    """

    error: str
    message: str
    details: Optional[dict] = None
    request_id: Optional[str] = None


class ServiceStatus(BaseModel):
    """Service health status information.

    Args:
        status: Service status ("connected", "running", "unavailable", "error")
        error: Optional error message if service is unhealthy
    """

    status: str
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response with service status.

    Args:
        status: Overall health status ("ok", "degraded", "error")
        version: Application version
        services: Service statuses keyed by name (database, redis, outbound_router)
    """

    status: str
    version: str = "0.1.0"
    services: dict[str, ServiceStatus] = Field(default_factory=dict)
