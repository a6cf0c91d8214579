"""App integration endpoint schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from integrations.models import integration_secrets


class IntegrationResponse(BaseModel):
    """App integration in API responses.

    Secrets are always masked; ``webhook_url`` is the full URL to register with
    the platform when a public base URL is configured, otherwise the path.
    """

    id: UUID
    tenant_id: str
    platform_id: str
    name: str
    description: Optional[str] = None
    agent_name: str
    activation_name: str
    workflow_id: str
    configuration: dict[str, Any]
    secrets: dict[str, Any]
    mapping_config: dict[str, Any]
    is_enabled: bool
    webhook_url: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_orm_row(cls, integration: Any, base_url: Optional[str] = None) -> "IntegrationResponse":
        path = (integration.configuration or {}).get("outgoingWebhookUrl")
        webhook_url = f"{base_url.rstrip('/')}{path}" if base_url and path else path
        return cls(
            id=integration.id,
            tenant_id=integration.tenant_id,
            platform_id=integration.platform_id,
            name=integration.name,
            description=integration.description,
            agent_name=integration.agent_name,
            activation_name=integration.activation_name,
            workflow_id=integration.workflow_id,
            configuration=integration.configuration or {},
            secrets=integration_secrets(integration).masked(),
            mapping_config=integration.mapping_config or {},
            is_enabled=integration.is_enabled,
            webhook_url=webhook_url,
            created_by=integration.created_by,
            updated_by=integration.updated_by,
            created_at=integration.created_at,
            updated_at=integration.updated_at,
        )
