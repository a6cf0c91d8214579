"""Shared fixtures for platform adapter, ingress and integration service tests."""

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.conversations.models import ConversationMessageView
from src.db.models.conversation import MessageDirectionEnum
from src.db.models.platform import AppIntegrationORM
from src.tenancy import TenantContext

_NOW = datetime(2026, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


class MockHttp:
    """Records outgoing httpx requests and answers them with ``responder``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json={}
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


@pytest.fixture
def tenant_id() -> str:
    return "tenant-acme"


@pytest.fixture
def tenant(tenant_id: str) -> TenantContext:
    return TenantContext(tenant_id=tenant_id, logged_in_user="admin@acme.test")


@pytest.fixture
def webhook_secret() -> str:
    return "Q7x2Lm9PzR4tVb8NcW1sKd5HfJ3gYa6E"


@pytest.fixture
def make_integration(tenant_id: str, webhook_secret: str) -> Callable[..., AppIntegrationORM]:
    """Factory for transient AppIntegrationORM rows.

    Returns:
        Callable accepting platform_id plus any column override.
    """

    def _make(platform_id: str = "slack", **overrides: Any) -> AppIntegrationORM:
        values: dict[str, Any] = {
            "id": uuid4(),
            "tenant_id": tenant_id,
            "created_by": "admin@acme.test",
            "platform_id": platform_id,
            "name": f"{platform_id} bot",
            "description": None,
            "agent_name": "support",
            "activation_name": "prod",
            "configuration": {},
            "secrets": {"webhook_secret": webhook_secret},
            "mapping_config": {},
            "is_enabled": True,
            "updated_by": None,
            "created_at": _NOW,
            "updated_at": _NOW,
        }
        values.update(overrides)
        return AppIntegrationORM(**values)

    return _make


@pytest.fixture
def make_outgoing(tenant_id: str) -> Callable[..., ConversationMessageView]:
    """Factory for outgoing message snapshots as the router hands them to adapters."""

    def _make(
        content: Any = "Your ticket has been updated.",
        metadata: Optional[dict[str, Any]] = None,
        origin: Optional[str] = None,
        participant_channel_id: str = "U024BE7LH",
        **overrides: Any,
    ) -> ConversationMessageView:
        values: dict[str, Any] = {
            "id": uuid4(),
            "tenant_id": tenant_id,
            "thread_id": uuid4(),
            "workflow_id": f"{tenant_id}:support:Supervisor Workflow:prod",
            "participant_channel_id": participant_channel_id,
            "direction": MessageDirectionEnum.OUTGOING,
            "content": content,
            "metadata": metadata,
            "origin": origin,
            "created_at": _NOW,
            "created_by": "workflow",
        }
        values.update(overrides)
        return ConversationMessageView(**values)

    return _make


@pytest.fixture
def mock_http(monkeypatch: pytest.MonkeyPatch) -> MockHttp:
    """Route httpx.AsyncClients created without a transport through a MockTransport."""
    mock = MockHttp()
    real_client = httpx.AsyncClient

    def _factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs.setdefault("transport", httpx.MockTransport(mock.handle))
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _factory)
    return mock


@pytest.fixture
def safe_urls(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Skip DNS resolution in the SSRF guard; every URL is treated as public."""
    guard = AsyncMock(return_value=None)
    for module in (
        "integrations.slack.adapter",
        "integrations.webhook.adapter",
        "src.webhooks.service",
    ):
        monkeypatch.setattr(f"{module}.ensure_safe_url", guard)
    return guard


@pytest.fixture
def db_session() -> AsyncMock:
    """Mock AsyncSession for services that only commit, refresh and roll back."""
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    return session
