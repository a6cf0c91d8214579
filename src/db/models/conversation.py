"""Conversation thread and message ORM models."""

import enum
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, TenantMixin, TimestampMixin, UUIDMixin


class ThreadStatusEnum(str, enum.Enum):
    """Lifecycle of a conversation thread.

    Maps to the ``thread_status`` PostgreSQL enum type.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"
    CLOSED = "closed"


class MessageDirectionEnum(str, enum.Enum):
    """Direction of a message relative to the workflow.

    Maps to the ``message_direction`` PostgreSQL enum type.
    """

    INBOUND = "inbound"
    OUTGOING = "outgoing"


class MessageStatusEnum(str, enum.Enum):
    """Outcome of delivering an inbound message to its workflow.

    Maps to the ``message_delivery_status`` PostgreSQL enum type. NULL means
    no delivery attempt was made (outgoing messages).
    """

    DELIVERED_TO_WORKFLOW = "delivered_to_workflow"
    FAILED_TO_DELIVER_TO_WORKFLOW = "failed_to_deliver_to_workflow"


class ConversationThreadORM(Base, UUIDMixin, TimestampMixin, TenantMixin):
    """One conversation between a workflow instance and a participant.

    The (tenant_id, workflow_id, participant_id) triple is unique so that two
    concurrent first messages cannot create duplicate threads.

    Maps to the ``conversation_thread`` table.
    """

    __tablename__ = "conversation_thread"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "workflow_id",
            "participant_id",
            name="uq_thread_tenant_workflow_participant",
        ),
        Index("idx_thread_tenant_activity", "tenant_id", "last_activity_at"),
    )

    workflow_id: Mapped[str] = mapped_column(Text, nullable=False)
    participant_id: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(
            ThreadStatusEnum,
            name="thread_status",
            native_enum=True,
            create_constraint=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        server_default=text("'active'"),
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    messages: Mapped[List["ConversationMessageORM"]] = relationship(
        back_populates="thread", lazy="noload"
    )


class ConversationMessageORM(Base, UUIDMixin, TenantMixin):
    """An inbound or outgoing message inside a thread.

    ``content``, ``direction`` and ``thread_id`` never change after insert.
    ``status`` is written once, ``logs`` is append-only.

    Maps to the ``conversation_message`` table.
    """

    __tablename__ = "conversation_message"
    __table_args__ = (
        Index("idx_message_thread_created", "thread_id", "created_at"),
        Index("idx_message_tenant_workflow", "tenant_id", "workflow_id"),
    )

    thread_id: Mapped[UUID] = mapped_column(
        ForeignKey("conversation_thread.id", ondelete="CASCADE"), nullable=False
    )
    workflow_id: Mapped[str] = mapped_column(Text, nullable=False)
    participant_channel_id: Mapped[str] = mapped_column(Text, nullable=False)
    direction: Mapped[str] = mapped_column(
        Enum(
            MessageDirectionEnum,
            name="message_direction",
            native_enum=True,
            create_constraint=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    content: Mapped[Any] = mapped_column(JSONB, nullable=False)
    # "metadata" is reserved on declarative classes
    message_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, nullable=True)
    origin: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(
        Enum(
            MessageStatusEnum,
            name="message_delivery_status",
            native_enum=True,
            create_constraint=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
    )
    logs: Mapped[list] = mapped_column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    thread: Mapped["ConversationThreadORM"] = relationship(back_populates="messages", lazy="noload")
