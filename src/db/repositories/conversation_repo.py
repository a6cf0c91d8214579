"""Repositories for conversation threads and messages."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.conversation import (
    ConversationMessageORM,
    ConversationThreadORM,
    ThreadStatusEnum,
)
from src.db.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ConversationThreadRepository(BaseRepository[ConversationThreadORM]):
    """Thread lookups by the (tenant, workflow, participant) key."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ConversationThreadORM)

    async def get_by_composite_key(
        self, tenant_id: str, workflow_id: str, participant_id: str
    ) -> Optional[ConversationThreadORM]:
        """Find the thread for a tenant, workflow and participant.

        Args:
            tenant_id: Owning tenant.
            workflow_id: Workflow instance id.
            participant_id: Platform-independent participant id.

        Returns:
            The thread if it exists, None otherwise.
        """
        stmt = select(ConversationThreadORM).where(
            ConversationThreadORM.tenant_id == tenant_id,
            ConversationThreadORM.workflow_id == workflow_id,
            ConversationThreadORM.participant_id == participant_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_or_get_existing(
        self,
        tenant_id: str,
        workflow_id: str,
        participant_id: str,
        created_by: Optional[str],
    ) -> tuple[ConversationThreadORM, bool]:
        """Insert an Active thread, falling back to the row a concurrent writer won with.

        The insert runs in a SAVEPOINT so a unique-constraint violation only rolls
        back the insert, not the caller's transaction.

        Args:
            tenant_id: Owning tenant.
            workflow_id: Workflow instance id.
            participant_id: Platform-independent participant id.
            created_by: Acting user recorded on the new row.

        Returns:
            Tuple of (thread, created). ``created`` is False when another writer
            inserted the same key first.

        Raises:
            IntegrityError: If the insert failed and no existing row can be found.
        """
        thread = ConversationThreadORM(
            tenant_id=tenant_id,
            workflow_id=workflow_id,
            participant_id=participant_id,
            status=ThreadStatusEnum.ACTIVE,
            created_by=created_by,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(thread)
                await self._session.flush()
        except IntegrityError:
            logger.info(
                "thread_create_conflict: tenant_id=%s, workflow_id=%s, refetching",
                tenant_id,
                workflow_id,
            )
            existing = await self.get_by_composite_key(tenant_id, workflow_id, participant_id)
            if existing is None:
                raise
            return existing, False

        await self._session.refresh(thread)
        return thread, True

    async def set_status(self, thread: ConversationThreadORM, status: ThreadStatusEnum) -> None:
        """Change a thread's lifecycle status."""
        thread.status = status
        await self._session.flush()
        await self._session.refresh(thread)

    async def touch_last_activity(self, thread: ConversationThreadORM, timestamp: datetime) -> None:
        """Record the time of the newest message on a thread.

        Args:
            thread: Thread to update.
            timestamp: created_at of the message just persisted.
        """
        thread.last_activity_at = timestamp
        await self._session.flush()


class ConversationMessageRepository(BaseRepository[ConversationMessageORM]):
    """Message persistence. Rows are insert-only apart from status and logs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ConversationMessageORM)

    async def list_history(
        self,
        tenant_id: str,
        workflow_id: str,
        participant_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ConversationMessageORM]:
        """List a participant's messages with one workflow, newest first.

        Messages carry the participant's channel id only, so the participant
        is matched through the owning thread.

        Args:
            tenant_id: Owning tenant.
            workflow_id: Workflow instance id.
            participant_id: Platform-independent participant id.
            limit: Max messages to return.
            offset: Number of messages to skip.

        Returns:
            Messages ordered by created_at descending.
        """
        stmt = (
            select(ConversationMessageORM)
            .join(
                ConversationThreadORM,
                ConversationMessageORM.thread_id == ConversationThreadORM.id,
            )
            .where(
                ConversationThreadORM.tenant_id == tenant_id,
                ConversationThreadORM.workflow_id == workflow_id,
                ConversationThreadORM.participant_id == participant_id,
                ConversationMessageORM.tenant_id == tenant_id,
            )
            .order_by(ConversationMessageORM.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
