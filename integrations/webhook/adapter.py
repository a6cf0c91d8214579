"""Generic webhook adapter: arbitrary JSON in, signed JSON callbacks out."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

from src.conversations.models import ConversationMessageView, InboundMessageRequest
from src.errors import MalformedPayloadError
from src.http_tools import ensure_safe_url
from src.tenancy import TenantContext
from src.webhooks.service import build_event_body, sign_payload
from integrations.base import PlatformAdapter
from integrations.mapping import resolve_participant_id, resolve_scope
from integrations.models import (
    InboundParseResult,
    IntegrationTestResult,
    integration_mapping,
    integration_secrets,
)

logger = logging.getLogger(__name__)

DEFAULT_PARTICIPANT_ID = "webhook"
OUTGOING_EVENT_TYPE = "message.outgoing"


class GenericWebhookAdapter(PlatformAdapter):
    """Adapter for systems that speak plain HTTP.

    Any body is accepted as message content (parsed JSON when it is JSON,
    otherwise the raw text). Outgoing messages are POSTed to the configured
    ``callbackUrl`` in the workflow event envelope, signed with
    ``X-Webhook-Signature``.
    """

    platform_id = "webhook"
    legacy_secret_keys = {"secret": "generic_webhook_secret"}

    async def parse_inbound(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> InboundParseResult:
        try:
            text = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayloadError("Webhook body must be UTF-8") from e
        if not text.strip():
            raise MalformedPayloadError("Webhook body is empty")

        try:
            content: Any = json.loads(text)
        except json.JSONDecodeError:
            content = text

        mapping = integration_mapping(integration)
        source = content if isinstance(content, dict) else {}
        fields = {
            "userId": source.get("userId") or source.get("participantId"),
            "userEmail": source.get("userEmail") or source.get("email"),
            "channelId": source.get("channelId"),
            "threadId": source.get("threadId"),
        }
        participant_id = resolve_participant_id(mapping, fields, source) or DEFAULT_PARTICIPANT_ID
        participant_id = participant_id.lower()

        logger.info(
            "webhook_parse_inbound: integration_id=%s, json=%s",
            integration.id,
            isinstance(content, (dict, list)),
        )
        return InboundParseResult.accept(
            InboundMessageRequest(
                workflow_id=integration.workflow_id,
                participant_id=participant_id,
                participant_channel_id=participant_id,
                content=content,
                metadata={"webhook": {"contentType": headers.get("content-type")}},
                origin=integration.origin,
                scope=resolve_scope(mapping, fields, source),
            )
        )

    async def send(
        self,
        integration: Any,
        message: ConversationMessageView,
        tenant: TenantContext,
    ) -> None:
        """POST the outgoing message to the integration's callback URL.

        Raises:
            ValueError: If the callback URL is not a safe public address.
            httpx.HTTPStatusError: If the callback answers with an error status.
        """
        config = integration.configuration or {}
        callback_url = config.get("callbackUrl")
        if not callback_url:
            logger.warning(
                "webhook_send_skipped: integration_id=%s, reason=no_callback_url", integration.id
            )
            return
        await ensure_safe_url(callback_url)

        body = build_event_body(
            message.workflow_id,
            OUTGOING_EVENT_TYPE,
            message.model_dump(mode="json"),
            datetime.now(timezone.utc),
        )
        headers = {"Content-Type": "application/json", "X-Webhook-ID": str(integration.id)}
        custom_headers = config.get("headers")
        if isinstance(custom_headers, dict):
            headers.update({str(k): str(v) for k, v in custom_headers.items()})

        secrets = integration_secrets(integration)
        signing_secret = secrets.generic_webhook_secret or secrets.webhook_secret
        if signing_secret:
            headers["X-Webhook-Signature"] = sign_payload(signing_secret, body)

        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            response = await client.post(callback_url, content=body, headers=headers)
        response.raise_for_status()

        logger.info(
            "webhook_send: integration_id=%s, message_id=%s, tenant_id=%s",
            integration.id,
            message.id,
            tenant.tenant_id,
        )

    def test(self, integration: Any) -> IntegrationTestResult:
        has_callback = bool((integration.configuration or {}).get("callbackUrl"))
        message = "Webhook configuration valid"
        if not has_callback:
            message += "; outgoing messages need a callbackUrl"
        return IntegrationTestResult(
            is_successful=True, message=message, details={"hasCallbackUrl": has_callback}
        )
