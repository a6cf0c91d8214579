"""End-to-end flow: platform webhook in, workflow signal, workflow reply routed back out."""

import asyncio
import json
import time
from typing import Any, AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from integrations.registry import create_default_registry
from integrations.slack.webhook import compute_slack_signature
from src.api.app import create_app
from src.api.dependencies import get_db, get_publisher, get_settings, get_workflow_client
from src.conversations.events import MessageEventPublisher
from src.conversations.outbound_router import OutboundRouter
from src.db.models.conversation import ThreadStatusEnum
from src.settings import Settings
from src.webhooks.service import sign_payload
from src.workflows.client import HANDLE_INBOUND_MESSAGE_SIGNAL, WorkflowClient

SIGNING_SECRET = "slack-signing-secret-0123456789"


class _SessionFactory:
    """Stands in for async_sessionmaker; sessions only answer ``get`` by primary key."""

    def __init__(self, rows: dict) -> None:
        self._rows = rows

    def __call__(self) -> "_SessionFactory":
        return self

    async def __aenter__(self) -> MagicMock:
        session = MagicMock()
        session.get = AsyncMock(side_effect=lambda model, key: self._rows.get(key))
        return session

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def integration(make_integration):
    return make_integration(
        "webhook", configuration={"callbackUrl": "https://hooks.acme.test/inbox"}
    )


@pytest.fixture
def workflow_client() -> AsyncMock:
    return AsyncMock(spec=WorkflowClient)


@pytest.fixture
def publisher() -> MessageEventPublisher:
    return MessageEventPublisher(publish_timeout=0.5)


@pytest.fixture
def repositories(integration):
    """Patch the repositories used by ingress and the conversation service."""
    integration_repo = MagicMock()
    integration_repo.get_by_id = AsyncMock(return_value=integration)

    thread = MagicMock()
    thread.id = uuid4()
    thread.status = ThreadStatusEnum.ACTIVE
    thread_repo = MagicMock()
    thread_repo.get_by_composite_key = AsyncMock(return_value=None)
    thread_repo.create_or_get_existing = AsyncMock(return_value=(thread, True))
    thread_repo.touch_last_activity = AsyncMock()

    message_repo = MagicMock()
    message_repo.add = AsyncMock(side_effect=lambda message: message)

    with patch(
        "integrations.ingress.AppIntegrationRepository", return_value=integration_repo
    ), patch(
        "src.conversations.service.ConversationThreadRepository", return_value=thread_repo
    ), patch(
        "src.conversations.service.ConversationMessageRepository", return_value=message_repo
    ):
        yield {"thread": thread, "messages": message_repo}


@pytest.fixture
async def client(
    db_session, workflow_client, publisher, repositories
) -> AsyncGenerator[AsyncClient, None]:
    app = create_app()

    async def override_get_db() -> AsyncGenerator[Any, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: Settings()
    app.dependency_overrides[get_workflow_client] = lambda: workflow_client
    app.dependency_overrides[get_publisher] = lambda: publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.integration
class TestGenericWebhookRoundTrip:
    """A generic webhook message reaches the workflow and the reply reaches the callback."""

    async def test_inbound_signal_then_outbound_delivery(
        self,
        client,
        integration,
        webhook_secret,
        workflow_client,
        publisher,
        repositories,
        mock_http,
        safe_urls,
        tenant_id,
    ) -> None:
        response = await client.post(
            f"/api/apps/webhook/events/{integration.id}/{webhook_secret}",
            content=json.dumps({"userId": "Lead-9", "text": "Need a quote"}),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        assert response.json()["threadId"] == str(repositories["thread"].id)

        workflow_id, signal_name, payload = workflow_client.signal.await_args.args
        assert workflow_id == "tenant-acme:support:Supervisor Workflow:prod"
        assert signal_name == HANDLE_INBOUND_MESSAGE_SIGNAL
        assert payload["participantId"] == "lead-9"
        assert payload["content"] == {"userId": "Lead-9", "text": "Need a quote"}
        assert payload["origin"] == f"app:webhook:{integration.id}"

        router = OutboundRouter(
            publisher=publisher,
            session_factory=_SessionFactory({integration.id: integration}),
            registry=create_default_registry(),
        )
        router.start()
        try:
            reply = await client.post(
                "/api/conversations/messages/outbound",
                json={
                    "workflow_id": workflow_id,
                    "participant_id": "lead-9",
                    "participant_channel_id": "lead-9",
                    "content": {"text": "Quote attached"},
                    "origin": integration.origin,
                },
                headers={"X-Tenant-Id": tenant_id, "X-User-Id": "workflow"},
            )
            assert reply.status_code == 201

            await _eventually(lambda: len(mock_http.requests) == 1)
        finally:
            await router.stop()

        delivered = mock_http.requests[0]
        assert str(delivered.url) == "https://hooks.acme.test/inbox"
        assert delivered.headers["x-webhook-signature"] == sign_payload(
            webhook_secret, delivered.content
        )
        envelope = json.loads(delivered.content)
        assert envelope["eventType"] == "message.outgoing"
        assert envelope["payload"]["content"] == {"text": "Quote attached"}
        assert envelope["payload"]["direction"] == "outgoing"
        assert repositories["messages"].add.await_count == 2

    async def test_wrong_secret_never_reaches_workflow(
        self, client, integration, workflow_client
    ) -> None:
        response = await client.post(
            f"/api/apps/webhook/events/{integration.id}/not-the-secret", content=b"hello"
        )

        assert response.status_code == 401
        workflow_client.signal.assert_not_awaited()


@pytest.mark.integration
class TestSlackRoundTrip:
    """A signed Slack event reaches the workflow and the reply goes to the Slack handler."""

    @pytest.fixture
    def integration(self, make_integration, webhook_secret):
        return make_integration(
            "slack",
            secrets={"webhook_secret": webhook_secret, "slack_signing_secret": SIGNING_SECRET},
        )

    async def test_signed_event_then_reply_to_slack_handler(
        self, client, integration, workflow_client, publisher, repositories, tenant_id
    ) -> None:
        body = json.dumps(
            {
                "type": "event_callback",
                "team_id": "T061EG9R6",
                "event": {
                    "type": "message",
                    "user": "U024BE7LH",
                    "channel": "C2147483705",
                    "text": "Hello",
                    "ts": "1355517523.000005",
                },
            }
        ).encode()
        timestamp = str(int(time.time()))

        response = await client.post(
            f"/api/apps/slack/events/{integration.id}",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Slack-Request-Timestamp": timestamp,
                "X-Slack-Signature": compute_slack_signature(SIGNING_SECRET, timestamp, body),
            },
        )

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        workflow_client.signal.assert_awaited_once()
        workflow_id, signal_name, payload = workflow_client.signal.await_args.args
        assert workflow_id == integration.workflow_id
        assert signal_name == HANDLE_INBOUND_MESSAGE_SIGNAL
        assert payload["content"] == "Hello"
        assert payload["direction"] == "inbound"
        inbound = repositories["messages"].add.await_args.args[0]
        assert inbound.content == "Hello"

        registry = create_default_registry()
        slack_send = AsyncMock()
        router = OutboundRouter(
            publisher=publisher,
            session_factory=_SessionFactory({integration.id: integration}),
            registry=registry,
        )
        with patch.object(registry.require("slack"), "send", slack_send):
            router.start()
            try:
                reply = await client.post(
                    "/api/conversations/messages/outbound",
                    json={
                        "workflow_id": workflow_id,
                        "participant_id": payload["participantId"],
                        "participant_channel_id": "U024BE7LH",
                        "content": "Hi there",
                        "metadata": {"slack": {"channel": "C2147483705"}},
                        "origin": f"app:slack:{integration.id}",
                    },
                    headers={"X-Tenant-Id": tenant_id, "X-User-Id": "workflow"},
                )
                assert reply.status_code == 201

                await _eventually(lambda: slack_send.await_count == 1)
            finally:
                await router.stop()

        slack_send.assert_awaited_once()
        sent_integration, sent_message, sent_tenant = slack_send.await_args.args
        assert sent_integration is integration
        assert sent_message.content == "Hi there"
        assert sent_message.origin == f"app:slack:{integration.id}"
        assert sent_tenant.tenant_id == tenant_id
