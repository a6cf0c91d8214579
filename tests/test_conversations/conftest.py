"""Shared fixtures for conversation service, event stream and outbound router tests."""

from datetime import datetime, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.conversations.events import MessageEventPublisher
from src.conversations.models import ConversationMessageView
from src.conversations.service import ConversationService
from src.db.models.conversation import (
    ConversationThreadORM,
    MessageDirectionEnum,
    ThreadStatusEnum,
)
from src.tenancy import TenantContext
from src.workflows.client import WorkflowClient

WORKFLOW_ID = "tenant-acme:support:Supervisor Workflow:prod"


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(tenant_id="tenant-acme", logged_in_user="app:slack:1")


@pytest.fixture
def make_thread() -> Callable[..., ConversationThreadORM]:
    def _make(**overrides: Any) -> ConversationThreadORM:
        now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        values: dict[str, Any] = {
            "id": uuid4(),
            "tenant_id": "tenant-acme",
            "workflow_id": WORKFLOW_ID,
            "participant_id": "u024be7lh",
            "status": ThreadStatusEnum.ACTIVE,
            "last_activity_at": now,
            "created_at": now,
            "updated_at": now,
            "created_by": "app:slack:1",
        }
        values.update(overrides)
        return ConversationThreadORM(**values)

    return _make


@pytest.fixture
def make_message() -> Callable[..., ConversationMessageView]:
    """Factory for message snapshots as published on the event stream."""

    def _make(
        origin: Any = "app:slack:00000000-0000-0000-0000-000000000001",
        direction: MessageDirectionEnum = MessageDirectionEnum.OUTGOING,
        **overrides: Any,
    ) -> ConversationMessageView:
        values: dict[str, Any] = {
            "id": uuid4(),
            "tenant_id": "tenant-acme",
            "thread_id": uuid4(),
            "workflow_id": WORKFLOW_ID,
            "participant_channel_id": "U024BE7LH",
            "direction": direction,
            "content": "Hello from the workflow",
            "origin": origin,
            "created_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        return ConversationMessageView(**values)

    return _make


@pytest.fixture
def db_session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def thread_repo(make_thread) -> MagicMock:
    """Mock ConversationThreadRepository that creates a fresh Active thread."""
    repo = MagicMock()
    repo.get_by_composite_key = AsyncMock(return_value=None)
    repo.create_or_get_existing = AsyncMock(return_value=(make_thread(), True))
    repo.get_by_id = AsyncMock(return_value=None)
    repo.set_status = AsyncMock()
    repo.touch_last_activity = AsyncMock()
    return repo


@pytest.fixture
def message_repo() -> MagicMock:
    repo = MagicMock()
    repo.add = AsyncMock(side_effect=lambda message: message)
    return repo


@pytest.fixture
def workflow_client() -> AsyncMock:
    return AsyncMock(spec=WorkflowClient)


@pytest.fixture
def publisher() -> MessageEventPublisher:
    return MessageEventPublisher(publish_timeout=0.05)


@pytest.fixture
def service(db_session, thread_repo, message_repo, workflow_client, publisher):
    with patch(
        "src.conversations.service.ConversationThreadRepository", return_value=thread_repo
    ), patch(
        "src.conversations.service.ConversationMessageRepository", return_value=message_repo
    ):
        yield ConversationService(db_session, workflow_client, publisher=publisher)
