"""Conversation endpoints used by workflows and operators."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_conversation_service, get_tenant_context
from src.api.schemas.conversations import ThreadResponse, ThreadStatusUpdate
from src.conversations.models import (
    ConversationMessageView,
    OutboundMessageRequest,
    OutboundMessageResult,
)
from src.conversations.service import ConversationService
from src.tenancy import TenantContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.post(
    "/messages/outbound",
    response_model=OutboundMessageResult,
    status_code=status.HTTP_201_CREATED,
)
async def send_outbound_message(
    data: OutboundMessageRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    service: ConversationService = Depends(get_conversation_service),
) -> OutboundMessageResult:
    """
    Record a workflow reply to a participant.

    When ``origin`` names an app integration (``app:{platform}:{id}``) the
    outbound router delivers the message to that platform in the background.

    Raises:
        InvalidMessageRequestError: 400 if a required field is missing
    """
    return await service.process_outbound_message(data, tenant)


@router.get("/messages/history", response_model=list[ConversationMessageView])
async def get_message_history(
    workflow_id: Optional[str] = None,
    participant_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
    tenant: TenantContext = Depends(get_tenant_context),
    service: ConversationService = Depends(get_conversation_service),
) -> list[ConversationMessageView]:
    """
    Page through a participant's conversation with a workflow, newest first.

    Raises:
        InvalidMessageRequestError: 400 if workflow_id or participant_id is missing
        InvalidPaginationError: 400 if page or page_size is below 1
    """
    return await service.get_message_history(
        tenant, workflow_id, participant_id, page=page, page_size=page_size
    )


@router.get("/threads/{thread_id}", response_model=ThreadResponse)
async def get_thread(
    thread_id: UUID,
    tenant: TenantContext = Depends(get_tenant_context),
    service: ConversationService = Depends(get_conversation_service),
) -> ThreadResponse:
    thread = await service.get_thread(tenant, thread_id)
    return ThreadResponse.model_validate(thread)


@router.patch("/threads/{thread_id}/status", response_model=ThreadResponse)
async def update_thread_status(
    thread_id: UUID,
    data: ThreadStatusUpdate,
    tenant: TenantContext = Depends(get_tenant_context),
    service: ConversationService = Depends(get_conversation_service),
) -> ThreadResponse:
    """Archive, close or reactivate a thread. The next inbound message reactivates it."""
    thread = await service.update_thread_status(tenant, thread_id, data.status)
    return ThreadResponse.model_validate(thread)
