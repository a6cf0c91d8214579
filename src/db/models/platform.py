"""ORM models for platform app integrations and workflow webhooks."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TenantMixin, TimestampMixin, UUIDMixin


class AppIntegrationORM(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """A tenant-owned binding of one messaging platform to an agent activation.

    ``configuration`` holds non-secret settings, ``secrets`` the typed secret bag
    (including the generated webhook secret) and ``mapping_config`` the rules for
    extracting participant id and scope from platform payloads.

    WARNING: ``secrets`` is stored as plaintext JSONB. Encryption at rest is
    expected from the database layer.

    Maps to the ``app_integration`` table.
    """

    __tablename__ = "app_integration"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "agent_name",
            "activation_name",
            "name",
            name="uq_app_integration_activation_name",
        ),
        Index("idx_app_integration_tenant", "tenant_id", "platform_id"),
    )

    platform_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    agent_name: Mapped[str] = mapped_column(Text, nullable=False)
    activation_name: Mapped[str] = mapped_column(Text, nullable=False)
    configuration: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    secrets: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    mapping_config: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    updated_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def workflow_id(self) -> str:
        """Id of the supervisor workflow this integration talks to."""
        return f"{self.tenant_id}:{self.agent_name}:Supervisor Workflow:{self.activation_name}"

    @property
    def origin(self) -> str:
        """Origin tag stamped on messages routed through this integration."""
        return f"app:{self.platform_id}:{self.id}"


class WorkflowWebhookORM(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """Tenant and workflow scoped callback for generic event fan-out.

    Maps to the ``workflow_webhook`` table.
    """

    __tablename__ = "workflow_webhook"
    __table_args__ = (
        Index("idx_workflow_webhook_lookup", "tenant_id", "workflow_id", "event_type", "is_active"),
    )

    workflow_id: Mapped[str] = mapped_column(Text, nullable=False)
    callback_url: Mapped[str] = mapped_column(Text, nullable=False)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    secret: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
