"""Slack Events API adapter implementation."""

import asyncio
import logging
from typing import Any, Mapping, Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from slack_sdk.webhook import WebhookClient

from src.conversations.models import ConversationMessageView, InboundMessageRequest
from src.errors import MalformedPayloadError
from src.http_tools import ensure_safe_url
from src.tenancy import TenantContext
from integrations.base import PlatformAdapter, load_json, message_text, secrets_match
from integrations.mapping import resolve_participant_id, resolve_scope
from integrations.models import (
    InboundParseResult,
    IntegrationTestResult,
    integration_mapping,
    integration_secrets,
)
from integrations.slack.webhook import DEFAULT_REPLAY_WINDOW_SECONDS, validate_slack_signature

logger = logging.getLogger(__name__)

IGNORED_SUBTYPES = ("bot_message", "message_changed", "message_deleted")
HANDLED_EVENT_TYPES = ("message", "app_mention")
EMAIL_CACHE_MAX_ENTRIES = 1024


class SlackAdapter(PlatformAdapter):
    """Slack Events API adapter.

    Inbound requests are authenticated with the Slack signing secret (v0 HMAC
    scheme with replay protection). Outbound messages go to the stored incoming
    webhook URL when there is one, otherwise through ``chat.postMessage`` with
    the bot token.

    Secrets used:
    - slack_signing_secret: webhook validation (required)
    - slack_incoming_webhook_url: preferred outbound channel
    - slack_bot_token: chat.postMessage and users.info lookups
    """

    platform_id = "slack"
    required_config_keys = ("signingSecret",)
    legacy_secret_keys = {
        "signingSecret": "slack_signing_secret",
        "botToken": "slack_bot_token",
        "incomingWebhookUrl": "slack_incoming_webhook_url",
        "incomingWekhookUrl": "slack_incoming_webhook_url",
    }
    verifies_signature = True

    def __init__(
        self,
        http_timeout: float = 10.0,
        replay_window: int = DEFAULT_REPLAY_WINDOW_SECONDS,
    ) -> None:
        """Initialize Slack adapter.

        Args:
            http_timeout: Timeout for Slack API calls.
            replay_window: Max age in seconds of a signed request.
        """
        super().__init__(http_timeout)
        self.replay_window = replay_window
        self._email_cache: dict[tuple[str, str], str] = {}

    def authenticate(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
        webhook_secret: Optional[str],
    ) -> bool:
        secrets = integration_secrets(integration)
        # A secret segment in the URL is optional for Slack but must match when present
        if webhook_secret is not None and not secrets_match(secrets.webhook_secret, webhook_secret):
            return False
        timestamp = headers.get("x-slack-request-timestamp", "")
        signature = headers.get("x-slack-signature", "")
        if not timestamp or not signature:
            logger.warning("slack_authenticate: missing timestamp or signature headers")
            return False
        return validate_slack_signature(
            signing_secret=secrets.slack_signing_secret or "",
            timestamp=timestamp,
            body=raw_body,
            signature=signature,
            replay_window=self.replay_window,
        )

    async def parse_inbound(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> InboundParseResult:
        """Parse a Slack event callback to a normalized inbound request.

        Handles the url_verification handshake, ignores bot echoes, edits and
        deletions, and only routes ``message``/``app_mention`` events with text.

        Raises:
            MalformedPayloadError: If the payload is missing required fields.
        """
        payload = load_json(raw_body)
        payload_type = payload.get("type")

        if payload_type == "url_verification":
            logger.info("slack_url_verification: integration_id=%s", integration.id)
            return InboundParseResult.handshake({"challenge": payload.get("challenge", "")})

        if headers.get("x-slack-retry-reason") == "http_timeout":
            return InboundParseResult.ignore("retry_after_timeout")

        if payload_type != "event_callback":
            return InboundParseResult.ignore(f"unsupported_payload_type:{payload_type}")

        event = payload.get("event")
        if not isinstance(event, dict):
            raise MalformedPayloadError("Slack event_callback missing 'event'")

        subtype = event.get("subtype")
        if subtype in IGNORED_SUBTYPES or event.get("bot_id"):
            return InboundParseResult.ignore(f"subtype:{subtype or 'bot'}")

        event_type = event.get("type")
        if event_type not in HANDLED_EVENT_TYPES:
            return InboundParseResult.ignore(f"event_type:{event_type}")

        text = (event.get("text") or "").strip()
        if not text:
            return InboundParseResult.ignore("empty_text")

        user_id = event.get("user")
        channel = event.get("channel")
        if not user_id or not channel:
            raise MalformedPayloadError("Slack event missing 'user' or 'channel'")

        thread_ts = event.get("thread_ts") or event.get("ts")
        team_id = payload.get("team_id") or event.get("team")
        mapping = integration_mapping(integration)

        email: Optional[str] = None
        if mapping.participant_id_source == "userEmail":
            email = await self._lookup_user_email(integration, user_id)

        fields = {
            "userId": user_id,
            "userEmail": email,
            "channelId": channel,
            "threadId": thread_ts,
            "teamId": team_id,
            "channelName": event.get("channel_name"),
        }
        participant_id = resolve_participant_id(mapping, fields, event)
        if not participant_id:
            raise MalformedPayloadError("Unable to resolve participant id from Slack event")

        logger.info(
            "slack_parse_inbound: integration_id=%s, channel=%s, event_type=%s",
            integration.id,
            channel,
            event_type,
        )
        return InboundParseResult.accept(
            InboundMessageRequest(
                workflow_id=integration.workflow_id,
                participant_id=participant_id,
                participant_channel_id=user_id,
                content=text,
                metadata={
                    "slack": {
                        "userId": user_id,
                        "channel": channel,
                        "threadTs": thread_ts,
                        "ts": event.get("ts"),
                        "teamId": team_id,
                        "eventType": event_type,
                    }
                },
                origin=integration.origin,
                scope=resolve_scope(mapping, fields, event),
            )
        )

    async def send(
        self,
        integration: Any,
        message: ConversationMessageView,
        tenant: TenantContext,
    ) -> None:
        """Post a message back into the originating Slack channel/thread.

        Raises:
            RuntimeError: If the incoming webhook rejects the message.
            SlackApiError: If chat.postMessage fails.
        """
        slack_meta = (message.metadata or {}).get("slack") or {}
        channel = slack_meta.get("channel")
        thread_ts = slack_meta.get("threadTs")
        text = message_text(message.content)
        secrets = integration_secrets(integration)

        if secrets.slack_incoming_webhook_url:
            await ensure_safe_url(secrets.slack_incoming_webhook_url)
            body: dict[str, Any] = {"text": text}
            if thread_ts:
                body["thread_ts"] = thread_ts
            client = WebhookClient(
                secrets.slack_incoming_webhook_url, timeout=int(self.http_timeout)
            )
            response = await asyncio.to_thread(client.send_dict, body)
            if response.status_code >= 300:
                raise RuntimeError(f"Slack incoming webhook returned {response.status_code}")
            logger.info(
                "slack_send: integration_id=%s, message_id=%s, via=incoming_webhook, tenant_id=%s",
                integration.id,
                message.id,
                tenant.tenant_id,
            )
            return

        if secrets.slack_bot_token:
            if not channel:
                logger.warning(
                    "slack_send_skipped: integration_id=%s, message_id=%s, reason=no_channel",
                    integration.id,
                    message.id,
                )
                return
            client = WebClient(token=secrets.slack_bot_token, timeout=int(self.http_timeout))
            await asyncio.to_thread(
                client.chat_postMessage,
                channel=channel,
                text=text,
                thread_ts=thread_ts,
            )
            logger.info(
                "slack_send: integration_id=%s, message_id=%s, via=chat_postMessage, tenant_id=%s",
                integration.id,
                message.id,
                tenant.tenant_id,
            )
            return

        logger.warning(
            "slack_send_skipped: integration_id=%s, message_id=%s, reason=no_outbound_credentials",
            integration.id,
            message.id,
        )

    def test(self, integration: Any) -> IntegrationTestResult:
        secrets = integration_secrets(integration)
        details = {
            "hasSigningSecret": bool(secrets.slack_signing_secret),
            "hasIncomingWebhookUrl": bool(secrets.slack_incoming_webhook_url),
            "hasBotToken": bool(secrets.slack_bot_token),
        }
        if not secrets.slack_signing_secret:
            return IntegrationTestResult(
                is_successful=False, message="Slack signing secret is missing", details=details
            )
        if not secrets.slack_incoming_webhook_url and not secrets.slack_bot_token:
            message = "Slack configuration valid; outbound messages need a webhook URL or bot token"
        else:
            message = "Slack configuration valid"
        return IntegrationTestResult(is_successful=True, message=message, details=details)

    async def _lookup_user_email(self, integration: Any, user_id: str) -> Optional[str]:
        """Resolve a Slack user's email through users.info, cached per integration."""
        cache_key = (str(integration.id), user_id)
        if cache_key in self._email_cache:
            return self._email_cache[cache_key]

        token = integration_secrets(integration).slack_bot_token
        if not token:
            logger.warning(
                "slack_email_lookup_skipped: integration_id=%s, reason=no_bot_token", integration.id
            )
            return None

        client = WebClient(token=token, timeout=int(self.http_timeout))
        try:
            response = await asyncio.to_thread(client.users_info, user=user_id)
        except SlackApiError as e:
            logger.warning(
                "slack_email_lookup_failed: integration_id=%s, error=%s",
                integration.id,
                e.response.get("error") if e.response is not None else str(e),
            )
            return None

        email = ((response.get("user") or {}).get("profile") or {}).get("email")
        if email:
            if len(self._email_cache) >= EMAIL_CACHE_MAX_ENTRIES:
                self._email_cache.clear()
            self._email_cache[cache_key] = email.lower()
        return email.lower() if email else None
