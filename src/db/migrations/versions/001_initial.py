"""Conversation threads, messages, app integrations and workflow webhooks.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.Uuid(),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    # =========================================================================
    # ENUMS
    # =========================================================================
    op.execute("CREATE TYPE thread_status AS ENUM ('active', 'archived', 'closed')")
    op.execute("CREATE TYPE message_direction AS ENUM ('inbound', 'outgoing')")
    op.execute(
        "CREATE TYPE message_delivery_status AS ENUM "
        "('delivered_to_workflow', 'failed_to_deliver_to_workflow')"
    )

    # =========================================================================
    # TABLE: conversation_thread
    # =========================================================================
    op.create_table(
        "conversation_thread",
        _uuid_pk(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("tenant_id", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("workflow_id", sa.Text(), nullable=False),
        sa.Column("participant_id", sa.Text(), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(
                "active",
                "archived",
                "closed",
                name="thread_status",
                create_type=False,
            ),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        _timestamp("last_activity_at"),
        sa.UniqueConstraint(
            "tenant_id",
            "workflow_id",
            "participant_id",
            name="uq_thread_tenant_workflow_participant",
        ),
    )
    op.create_index(
        "idx_thread_tenant_activity",
        "conversation_thread",
        ["tenant_id", "last_activity_at"],
    )

    # =========================================================================
    # TABLE: conversation_message
    # =========================================================================
    op.create_table(
        "conversation_message",
        _uuid_pk(),
        sa.Column("tenant_id", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column(
            "thread_id",
            sa.Uuid(),
            sa.ForeignKey("conversation_thread.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("workflow_id", sa.Text(), nullable=False),
        sa.Column("participant_channel_id", sa.Text(), nullable=False),
        sa.Column(
            "direction",
            postgresql.ENUM(
                "inbound",
                "outgoing",
                name="message_direction",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column("content", postgresql.JSONB(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("origin", sa.Text(), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(
                "delivered_to_workflow",
                "failed_to_deliver_to_workflow",
                name="message_delivery_status",
                create_type=False,
            ),
            nullable=True,
        ),
        sa.Column(
            "logs",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        _timestamp("created_at"),
    )
    op.create_index(
        "idx_message_thread_created",
        "conversation_message",
        ["thread_id", "created_at"],
    )
    op.create_index(
        "idx_message_tenant_workflow",
        "conversation_message",
        ["tenant_id", "workflow_id"],
    )

    # =========================================================================
    # TABLE: app_integration
    # =========================================================================
    op.create_table(
        "app_integration",
        _uuid_pk(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("tenant_id", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("platform_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("agent_name", sa.Text(), nullable=False),
        sa.Column("activation_name", sa.Text(), nullable=False),
        sa.Column(
            "configuration",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "secrets",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "mapping_config",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "is_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column("updated_by", sa.Text(), nullable=True),
        sa.UniqueConstraint(
            "tenant_id",
            "agent_name",
            "activation_name",
            "name",
            name="uq_app_integration_activation_name",
        ),
    )
    op.create_index(
        "idx_app_integration_tenant",
        "app_integration",
        ["tenant_id", "platform_id"],
    )

    # =========================================================================
    # TABLE: workflow_webhook
    # =========================================================================
    op.create_table(
        "workflow_webhook",
        _uuid_pk(),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("tenant_id", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("workflow_id", sa.Text(), nullable=False),
        sa.Column("callback_url", sa.Text(), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("secret", sa.Text(), nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_workflow_webhook_lookup",
        "workflow_webhook",
        ["tenant_id", "workflow_id", "event_type", "is_active"],
    )


def downgrade() -> None:
    op.drop_index("idx_workflow_webhook_lookup", table_name="workflow_webhook")
    op.drop_table("workflow_webhook")

    op.drop_index("idx_app_integration_tenant", table_name="app_integration")
    op.drop_table("app_integration")

    op.drop_index("idx_message_tenant_workflow", table_name="conversation_message")
    op.drop_index("idx_message_thread_created", table_name="conversation_message")
    op.drop_table("conversation_message")

    op.drop_index("idx_thread_tenant_activity", table_name="conversation_thread")
    op.drop_table("conversation_thread")

    op.execute("DROP TYPE IF EXISTS message_delivery_status")
    op.execute("DROP TYPE IF EXISTS message_direction")
    op.execute("DROP TYPE IF EXISTS thread_status")
