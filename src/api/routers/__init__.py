"""FastAPI routers for the conversation routing API."""

from src.api.routers.conversations import router as conversations_router
from src.api.routers.health import router as health_router
from src.api.routers.integrations import router as integrations_router
from src.api.routers.webhooks import router as webhooks_router
from src.api.routers.workflow_webhooks import router as workflow_webhooks_router

__all__ = [
    "health_router",
    "integrations_router",
    "webhooks_router",
    "conversations_router",
    "workflow_webhooks_router",
]
