"""Repositories for app integrations and workflow webhooks."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.platform import AppIntegrationORM, WorkflowWebhookORM
from src.db.repositories.base import BaseRepository


class AppIntegrationRepository(BaseRepository[AppIntegrationORM]):
    """Integration lookups for the registry, ingress and outbound router."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AppIntegrationORM)

    async def get_for_tenant(self, tenant_id: str, id: UUID) -> Optional[AppIntegrationORM]:
        """Get an integration only if it belongs to the tenant."""
        stmt = select(AppIntegrationORM).where(
            AppIntegrationORM.id == id,
            AppIntegrationORM.tenant_id == tenant_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def exists_with_name(
        self,
        tenant_id: str,
        agent_name: str,
        activation_name: str,
        name: str,
        exclude_id: Optional[UUID] = None,
    ) -> bool:
        """Check the (tenant, agent, activation, name) uniqueness key.

        Args:
            tenant_id: Owning tenant.
            agent_name: Agent the integration is bound to.
            activation_name: Agent activation.
            name: Integration display name.
            exclude_id: Integration to ignore (the one being updated).

        Returns:
            True if another integration already uses the key.
        """
        stmt = select(AppIntegrationORM.id).where(
            AppIntegrationORM.tenant_id == tenant_id,
            AppIntegrationORM.agent_name == agent_name,
            AppIntegrationORM.activation_name == activation_name,
            AppIntegrationORM.name == name,
        )
        if exclude_id is not None:
            stmt = stmt.where(AppIntegrationORM.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.first() is not None

    async def list_for_tenant(
        self,
        tenant_id: str,
        platform_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AppIntegrationORM]:
        """List a tenant's integrations, optionally for one platform."""
        stmt = select(AppIntegrationORM).where(AppIntegrationORM.tenant_id == tenant_id)
        if platform_id:
            stmt = stmt.where(AppIntegrationORM.platform_id == platform_id.lower())
        stmt = stmt.order_by(AppIntegrationORM.created_at.desc()).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class WorkflowWebhookRepository(BaseRepository[WorkflowWebhookORM]):
    """Lookups for the generic webhook fan-out."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, WorkflowWebhookORM)

    async def list_active(
        self, tenant_id: str, workflow_id: str, event_type: str
    ) -> list[WorkflowWebhookORM]:
        """Active webhooks subscribed to an event type of one workflow."""
        stmt = select(WorkflowWebhookORM).where(
            WorkflowWebhookORM.tenant_id == tenant_id,
            WorkflowWebhookORM.workflow_id == workflow_id,
            WorkflowWebhookORM.event_type == event_type,
            WorkflowWebhookORM.is_active.is_(True),
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
