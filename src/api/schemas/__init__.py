"""API request/response schemas."""

from src.api.schemas.common import ErrorResponse, HealthResponse, ServiceStatus
from src.api.schemas.conversations import ThreadResponse, ThreadStatusUpdate
from src.api.schemas.integrations import IntegrationResponse
from src.api.schemas.webhooks import WebhookTriggerRequest

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    "ServiceStatus",
    # Conversations
    "ThreadResponse",
    "ThreadStatusUpdate",
    # Integrations
    "IntegrationResponse",
    # Webhooks
    "WebhookTriggerRequest",
]
