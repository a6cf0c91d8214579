"""Conversation endpoint schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from src.db.models.conversation import ThreadStatusEnum


class ThreadResponse(BaseModel):
    """Conversation thread in API responses.

    Args:
        id: Unique thread identifier
        tenant_id: Owning tenant
        workflow_id: Workflow instance the thread belongs to
        participant_id: Platform-independent participant id
        status: Thread status ("active", "archived", "closed")
        last_activity_at: Timestamp of the most recent delivered message
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    workflow_id: str
    participant_id: str
    status: ThreadStatusEnum
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_activity_at: Optional[datetime] = None


class ThreadStatusUpdate(BaseModel):
    status: ThreadStatusEnum
