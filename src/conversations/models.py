"""Pydantic models exchanged with the conversation service."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from src.db.models.conversation import MessageDirectionEnum, MessageStatusEnum


class InboundMessageRequest(BaseModel):
    """Normalized inbound message handed over by webhook ingress.

    Required fields are validated by the service rather than here so that a
    missing value surfaces as a bad request without side effects.
    """

    workflow_id: Optional[str] = None
    participant_id: Optional[str] = None
    participant_channel_id: Optional[str] = Field(
        None, description="Platform-local participant id (Slack user, Teams aad id, email)"
    )
    content: Any = None
    metadata: Optional[dict[str, Any]] = None
    origin: Optional[str] = Field(None, description="app:{platformId}:{integrationId}")
    scope: Optional[str] = None


class OutboundMessageRequest(BaseModel):
    """Workflow-produced message addressed back to a participant."""

    workflow_id: Optional[str] = None
    participant_id: Optional[str] = None
    participant_channel_id: Optional[str] = None
    content: Any = None
    metadata: Optional[dict[str, Any]] = None
    origin: Optional[str] = None


class InboundMessageResult(BaseModel):
    message_id: UUID
    thread_id: UUID


class OutboundMessageResult(BaseModel):
    message_id: UUID
    thread_id: UUID


class MessageLogEntry(BaseModel):
    """One timestamped record in a message's log."""

    event: str
    details: Optional[str] = None
    timestamp: datetime


class ConversationMessageView(BaseModel):
    """Immutable snapshot of a persisted message, safe to hand across tasks."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    tenant_id: str
    thread_id: UUID
    workflow_id: str
    participant_channel_id: str
    direction: MessageDirectionEnum
    content: Any
    metadata: Optional[dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("message_metadata", "metadata")
    )
    origin: Optional[str] = None
    status: Optional[MessageStatusEnum] = None
    logs: list[MessageLogEntry] = Field(default_factory=list)
    created_at: datetime
    created_by: Optional[str] = None


class MessageStreamEvent(BaseModel):
    """Event emitted once per persisted message.

    ``group_id`` is the thread id; ``tenant_group_id`` scopes it to the tenant.
    """

    message: ConversationMessageView
    group_id: str
    tenant_group_id: str
    timestamp: datetime
