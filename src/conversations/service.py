"""Conversation service: thread resolution, message persistence and workflow signalling."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from src.conversations.events import MessageEventPublisher
from src.conversations.models import (
    ConversationMessageView,
    InboundMessageRequest,
    InboundMessageResult,
    OutboundMessageRequest,
    OutboundMessageResult,
)
from src.db.models.conversation import (
    ConversationMessageORM,
    ConversationThreadORM,
    MessageDirectionEnum,
    MessageStatusEnum,
    ThreadStatusEnum,
)
from src.db.repositories.conversation_repo import (
    ConversationMessageRepository,
    ConversationThreadRepository,
)
from src.errors import InvalidMessageRequestError, InvalidPaginationError, ThreadNotFoundError
from src.settings import Settings
from src.tenancy import TenantContext
from src.webhooks.events import dispatch_workflow_event
from src.workflows.client import (
    HANDLE_INBOUND_MESSAGE_SIGNAL,
    WorkflowClient,
    WorkflowNotFoundError,
)

logger = logging.getLogger(__name__)

DELIVERY_ERROR_EVENT = "ErrorDeliveringToWorkflow"

_REQUIRED_FIELDS = ("workflow_id", "participant_id", "participant_channel_id", "content")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _log_entry(event: str, details: str) -> dict[str, Any]:
    return {"event": event, "details": details, "timestamp": _utcnow().isoformat()}


def _missing_fields(request: Any) -> list[str]:
    missing = []
    for name in _REQUIRED_FIELDS:
        value = getattr(request, name, None)
        if value is None or (isinstance(value, (str, dict, list)) and not value):
            missing.append(name)
    return missing


class ConversationService:
    """Owns the lifecycle of conversation threads and messages.

    Every validated inbound request produces exactly one persisted message,
    whatever the outcome of signalling the workflow. The service commits its
    own unit of work so the audit trail survives a re-raised delivery error.

    Args:
        session: AsyncSession for this unit of work.
        workflow_client: Client used to signal workflows.
        publisher: Optional event stream notified after each commit.
        settings: Optional settings enabling workflow webhook fan-out.
    """

    def __init__(
        self,
        session: AsyncSession,
        workflow_client: WorkflowClient,
        publisher: Optional[MessageEventPublisher] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._session = session
        self._workflows = workflow_client
        self._publisher = publisher
        self._settings = settings
        self._threads = ConversationThreadRepository(session)
        self._messages = ConversationMessageRepository(session)

    async def get_or_create_thread(
        self,
        tenant_id: str,
        user_id: Optional[str],
        workflow_id: str,
        participant_id: str,
    ) -> ConversationThreadORM:
        """Resolve the thread for a (tenant, workflow, participant) triple.

        Creates an Active thread when none exists and reactivates an archived or
        closed one. Safe against concurrent first messages: the losing writer
        picks up the row the winner inserted.

        Args:
            tenant_id: Owning tenant.
            user_id: Acting user recorded on a new thread.
            workflow_id: Workflow instance id.
            participant_id: Platform-independent participant id.

        Returns:
            The Active thread.
        """
        thread = await self._threads.get_by_composite_key(tenant_id, workflow_id, participant_id)
        if thread is None:
            thread, created = await self._threads.create_or_get_existing(
                tenant_id, workflow_id, participant_id, user_id
            )
            if created:
                logger.info(
                    "thread_created: thread_id=%s, tenant_id=%s, workflow_id=%s",
                    thread.id,
                    tenant_id,
                    workflow_id,
                )
                return thread

        if thread.status != ThreadStatusEnum.ACTIVE:
            logger.info(
                "thread_reactivated: thread_id=%s, previous_status=%s",
                thread.id,
                ThreadStatusEnum(thread.status).value,
            )
            await self._threads.set_status(thread, ThreadStatusEnum.ACTIVE)
        return thread

    async def process_inbound_message(
        self, request: InboundMessageRequest, tenant: TenantContext
    ) -> InboundMessageResult:
        """Persist an inbound message and signal its workflow.

        Args:
            request: Normalized inbound message.
            tenant: Acting tenant and user.

        Returns:
            Ids of the persisted message and its thread.

        Raises:
            InvalidMessageRequestError: A required field is missing; nothing is written.
            WorkflowNotFoundError: The workflow instance does not exist; the message
                is persisted with a failed status first.
            Exception: Any other signalling error, re-raised after persisting the
                message with a failed status.
        """
        missing = _missing_fields(request)
        if missing:
            logger.warning(
                "inbound_message_rejected: tenant_id=%s, missing=%s",
                tenant.tenant_id,
                ",".join(missing),
            )
            raise InvalidMessageRequestError(missing)

        thread = await self.get_or_create_thread(
            tenant.tenant_id,
            tenant.logged_in_user,
            request.workflow_id,
            request.participant_id,
        )
        message = ConversationMessageORM(
            id=uuid4(),
            tenant_id=tenant.tenant_id,
            thread_id=thread.id,
            workflow_id=request.workflow_id,
            participant_channel_id=request.participant_channel_id,
            direction=MessageDirectionEnum.INBOUND,
            content=request.content,
            message_metadata=request.metadata,
            origin=request.origin,
            logs=[],
            created_at=_utcnow(),
            created_by=tenant.logged_in_user,
        )

        try:
            await self._workflows.signal(
                request.workflow_id,
                HANDLE_INBOUND_MESSAGE_SIGNAL,
                self._signal_payload(message, thread, request),
            )
        except WorkflowNotFoundError as e:
            logger.warning(
                "inbound_message_workflow_not_found: message_id=%s, workflow_id=%s",
                message.id,
                request.workflow_id,
            )
            message.status = MessageStatusEnum.FAILED_TO_DELIVER_TO_WORKFLOW
            message.logs = [_log_entry(DELIVERY_ERROR_EVENT, str(e))]
            await self._persist(message, thread, advance_activity=False)
            raise
        except Exception as e:
            logger.exception(
                "inbound_message_signal_error: message_id=%s, workflow_id=%s",
                message.id,
                request.workflow_id,
            )
            message.status = MessageStatusEnum.FAILED_TO_DELIVER_TO_WORKFLOW
            message.logs = [_log_entry(DELIVERY_ERROR_EVENT, f"{type(e).__name__}: {e}")]
            await self._persist(message, thread, advance_activity=False)
            raise

        message.status = MessageStatusEnum.DELIVERED_TO_WORKFLOW
        await self._persist(message, thread, advance_activity=True)
        logger.info(
            "inbound_message_delivered: message_id=%s, thread_id=%s, workflow_id=%s",
            message.id,
            thread.id,
            request.workflow_id,
        )
        return InboundMessageResult(message_id=message.id, thread_id=thread.id)

    async def process_outbound_message(
        self, request: OutboundMessageRequest, tenant: TenantContext
    ) -> OutboundMessageResult:
        """Persist a workflow-produced message and publish it for routing.

        Messages whose origin names an app integration are picked up by the
        outbound router from the event stream.

        Raises:
            InvalidMessageRequestError: A required field is missing.
        """
        missing = _missing_fields(request)
        if missing:
            raise InvalidMessageRequestError(missing)

        thread = await self.get_or_create_thread(
            tenant.tenant_id,
            tenant.logged_in_user,
            request.workflow_id,
            request.participant_id,
        )
        message = ConversationMessageORM(
            id=uuid4(),
            tenant_id=tenant.tenant_id,
            thread_id=thread.id,
            workflow_id=request.workflow_id,
            participant_channel_id=request.participant_channel_id,
            direction=MessageDirectionEnum.OUTGOING,
            content=request.content,
            message_metadata=request.metadata,
            origin=request.origin,
            logs=[],
            created_at=_utcnow(),
            created_by=tenant.logged_in_user,
        )
        await self._persist(message, thread, advance_activity=True)
        logger.info(
            "outbound_message_persisted: message_id=%s, thread_id=%s, origin=%s",
            message.id,
            thread.id,
            request.origin,
        )
        return OutboundMessageResult(message_id=message.id, thread_id=thread.id)

    async def get_thread(self, tenant: TenantContext, thread_id: UUID) -> ConversationThreadORM:
        """Load a tenant's thread.

        Raises:
            ThreadNotFoundError: If the thread does not exist for this tenant.
        """
        thread = await self._threads.get_by_id(thread_id)
        if thread is None or thread.tenant_id != tenant.tenant_id:
            raise ThreadNotFoundError(f"Thread {thread_id} not found")
        return thread

    async def get_message_history(
        self,
        tenant: TenantContext,
        workflow_id: Optional[str],
        participant_id: Optional[str],
        page: int = 1,
        page_size: int = 50,
    ) -> list[ConversationMessageView]:
        """Page through a participant's messages with a workflow, newest first.

        Args:
            tenant: Tenant whose messages are read.
            workflow_id: Workflow instance id.
            participant_id: Platform-independent participant id.
            page: 1-based page number.
            page_size: Messages per page.

        Raises:
            InvalidMessageRequestError: If workflow_id or participant_id is missing.
            InvalidPaginationError: If page or page_size is below 1.
        """
        missing = [
            name
            for name, value in (("workflow_id", workflow_id), ("participant_id", participant_id))
            if not value
        ]
        if missing:
            raise InvalidMessageRequestError(missing)
        if page < 1 or page_size < 1:
            raise InvalidPaginationError("page and page_size must be greater than 0")

        messages = await self._messages.list_history(
            tenant.tenant_id,
            workflow_id,
            participant_id,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        logger.info(
            "message_history_read: tenant_id=%s, workflow_id=%s, page=%d, count=%d",
            tenant.tenant_id,
            workflow_id,
            page,
            len(messages),
        )
        return [ConversationMessageView.model_validate(m) for m in messages]

    async def update_thread_status(
        self, tenant: TenantContext, thread_id: UUID, status: ThreadStatusEnum
    ) -> ConversationThreadORM:
        """Archive, close or reactivate a thread."""
        thread = await self.get_thread(tenant, thread_id)
        await self._threads.set_status(thread, status)
        await self._session.commit()
        logger.info("thread_status_updated: thread_id=%s, status=%s", thread_id, status.value)
        return thread

    async def _persist(
        self,
        message: ConversationMessageORM,
        thread: ConversationThreadORM,
        advance_activity: bool,
    ) -> None:
        await self._messages.add(message)
        if advance_activity:
            await self._threads.touch_last_activity(thread, message.created_at)
        await self._session.commit()

        view = ConversationMessageView.model_validate(message)
        if self._publisher is not None:
            await self._publisher.publish(view)
        await self._notify_webhooks(view)

    async def _notify_webhooks(self, view: ConversationMessageView) -> None:
        if self._settings is None:
            return
        event_type = f"message.{view.direction.value}"
        try:
            await dispatch_workflow_event(
                self._session,
                self._settings,
                view.tenant_id,
                view.workflow_id,
                event_type,
                view.model_dump(mode="json"),
            )
        except Exception as e:
            logger.warning(
                "workflow_event_dispatch_failed: message_id=%s, event_type=%s, error=%s",
                view.id,
                event_type,
                str(e),
            )

    @staticmethod
    def _signal_payload(
        message: ConversationMessageORM,
        thread: ConversationThreadORM,
        request: InboundMessageRequest,
    ) -> dict[str, Any]:
        return {
            "id": str(message.id),
            "threadId": str(thread.id),
            "workflowId": message.workflow_id,
            "participantId": request.participant_id,
            "participantChannelId": message.participant_channel_id,
            "direction": MessageDirectionEnum.INBOUND.value,
            "content": message.content,
            "metadata": message.message_metadata,
            "origin": message.origin,
            "scope": request.scope,
            "createdAt": message.created_at.isoformat(),
            "createdBy": message.created_by,
        }
