"""FastAPI dependency injection for sessions, settings and routing services."""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from integrations.ingress import WebhookIngress
from integrations.registry import AdapterRegistry, create_default_registry
from integrations.service import IntegrationService
from src.conversations.events import MessageEventPublisher
from src.conversations.service import ConversationService
from src.db.engine import get_session
from src.settings import Settings, load_settings
from src.tenancy import TenantContext
from src.webhooks.service import WebhookService
from src.workflows.client import WorkflowClient

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Get async database session from app.state.session_factory.

    Yields an AsyncSession that is automatically closed after use.
    Requires app.state.session_factory to be initialized during lifespan.

    Args:
        request: FastAPI request object with app.state.session_factory.

    Yields:
        AsyncSession instance for database operations.

    Raises:
        RuntimeError: If the session factory is not initialized.
    """
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        logger.error("get_db_error: reason=engine_not_initialized")
        raise RuntimeError(
            "Database engine not initialized. Ensure DATABASE_URL is set and app lifespan has run."
        )

    async for session in get_session(session_factory):
        yield session


def get_settings(request: Request) -> Settings:
    """
    Get application settings from app.state.settings.

    Falls back to load_settings() when the lifespan has not stored them.
    """
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        logger.warning(
            "get_settings_fallback: app.state.settings not initialized, loading directly"
        )
        settings = load_settings()
    return settings


def get_registry(request: Request) -> AdapterRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        registry = create_default_registry(get_settings(request))
        request.app.state.registry = registry
    return registry


def get_workflow_client(request: Request) -> WorkflowClient:
    client = getattr(request.app.state, "workflow_client", None)
    if client is None:
        raise RuntimeError("Workflow client not initialized. Ensure app lifespan has run.")
    return client


def get_publisher(request: Request) -> Optional[MessageEventPublisher]:
    """Message event stream, or None when nothing consumes it."""
    return getattr(request.app.state, "publisher", None)


def get_conversation_service(
    db: AsyncSession = Depends(get_db),
    workflow_client: WorkflowClient = Depends(get_workflow_client),
    publisher: Optional[MessageEventPublisher] = Depends(get_publisher),
    settings: Settings = Depends(get_settings),
) -> ConversationService:
    return ConversationService(db, workflow_client, publisher=publisher, settings=settings)


def get_integration_service(
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
) -> IntegrationService:
    return IntegrationService(db, registry)


def get_ingress(
    db: AsyncSession = Depends(get_db),
    registry: AdapterRegistry = Depends(get_registry),
    conversation_service: ConversationService = Depends(get_conversation_service),
) -> WebhookIngress:
    return WebhookIngress(db, registry, conversation_service)


def get_webhook_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WebhookService:
    return WebhookService(db, timeout=settings.outbound_http_timeout)


def get_tenant_context(
    x_tenant_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> TenantContext:
    """
    Tenant context for admin and workflow-facing routes.

    Authentication happens at the gateway, which forwards the verified tenant
    and user as ``X-Tenant-Id`` and ``X-User-Id``.

    Raises:
        HTTPException: 401 if the tenant header is missing.
    """
    if not x_tenant_id or not x_tenant_id.strip():
        logger.warning("tenant_context_missing: header=X-Tenant-Id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tenant context required",
        )
    return TenantContext(tenant_id=x_tenant_id.strip(), logged_in_user=x_user_id or None)
