"""Outlook mailbox adapter over Microsoft Graph."""

import logging
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx

from src.conversations.models import ConversationMessageView, InboundMessageRequest
from src.errors import MalformedPayloadError
from src.tenancy import TenantContext
from integrations.base import PlatformAdapter, load_json, message_text
from integrations.mapping import resolve_participant_id, resolve_scope
from integrations.models import (
    InboundParseResult,
    IntegrationTestResult,
    integration_mapping,
    integration_secrets,
)
from integrations.oauth import ClientCredentialsTokenCache

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"


class OutlookAdapter(PlatformAdapter):
    """Outlook adapter.

    Inbound bodies are Graph message resources forwarded by a mail relay and
    authenticated by the webhook secret in the URL. Replies go out through
    Graph as the configured mailbox: a reply to the original message when its
    id is known, otherwise a new mail to the participant.

    Configuration: clientId, tenantId, userEmail (the bot mailbox).
    Secrets: outlook_client_secret.
    """

    platform_id = "outlook"
    required_config_keys = ("clientId", "clientSecret", "tenantId")
    legacy_secret_keys = {"clientSecret": "outlook_client_secret"}

    def __init__(
        self,
        http_timeout: float = 10.0,
        token_cache: Optional[ClientCredentialsTokenCache] = None,
    ) -> None:
        super().__init__(http_timeout)
        self.token_cache = token_cache or ClientCredentialsTokenCache(http_timeout)

    async def parse_inbound(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> InboundParseResult:
        payload = load_json(raw_body)
        # Graph change notifications wrap the message in "value"; a relay may send it bare
        message = payload.get("message") if isinstance(payload.get("message"), dict) else payload

        sender = ((message.get("from") or {}).get("emailAddress") or {}).get("address")
        if not sender:
            raise MalformedPayloadError("Outlook message missing 'from.emailAddress.address'")
        sender = sender.lower()

        mailbox = (integration.configuration.get("userEmail") or "").lower()
        if mailbox and sender == mailbox:
            return InboundParseResult.ignore("own_mailbox")

        body = message.get("body") or {}
        text = (body.get("content") or message.get("bodyPreview") or "").strip()
        subject = message.get("subject") or ""
        if not text and not subject:
            return InboundParseResult.ignore("empty_text")

        conversation_id = message.get("conversationId")
        mapping = integration_mapping(integration)
        fields = {
            "userId": sender,
            "userEmail": sender,
            "threadId": conversation_id,
            "channelId": conversation_id,
            "subject": subject or None,
        }
        participant_id = resolve_participant_id(mapping, fields, message)
        if not participant_id:
            raise MalformedPayloadError("Unable to resolve participant id from Outlook message")

        logger.info("outlook_parse_inbound: integration_id=%s", integration.id)
        return InboundParseResult.accept(
            InboundMessageRequest(
                workflow_id=integration.workflow_id,
                participant_id=participant_id,
                participant_channel_id=sender,
                content=text or subject,
                metadata={
                    "outlook": {
                        "messageId": message.get("id"),
                        "conversationId": conversation_id,
                        "subject": subject,
                        "from": sender,
                        "contentType": body.get("contentType"),
                    }
                },
                origin=integration.origin,
                scope=resolve_scope(mapping, fields, message),
            )
        )

    async def send(
        self,
        integration: Any,
        message: ConversationMessageView,
        tenant: TenantContext,
    ) -> None:
        """Reply through Graph, or send a fresh mail when there is nothing to reply to.

        Raises:
            httpx.HTTPStatusError: If Graph rejects the token or mail request.
        """
        config = integration.configuration or {}
        client_id = config.get("clientId")
        azure_tenant = config.get("tenantId")
        mailbox = config.get("userEmail")
        client_secret = integration_secrets(integration).outlook_client_secret
        if not (client_id and azure_tenant and mailbox and client_secret):
            logger.warning(
                "outlook_send_skipped: integration_id=%s, reason=missing_credentials",
                integration.id,
            )
            return

        outlook_meta = (message.metadata or {}).get("outlook") or {}
        text = message_text(message.content)
        user_path = f"{GRAPH_BASE_URL}/users/{quote(mailbox, safe='@')}"
        if outlook_meta.get("messageId"):
            url = f"{user_path}/messages/{quote(outlook_meta['messageId'], safe='')}/reply"
            body: dict[str, Any] = {"comment": text}
        else:
            recipient = outlook_meta.get("from") or message.participant_channel_id
            if not recipient:
                logger.warning(
                    "outlook_send_skipped: integration_id=%s, message_id=%s, reason=no_recipient",
                    integration.id,
                    message.id,
                )
                return
            url = f"{user_path}/sendMail"
            body = {
                "message": {
                    "subject": outlook_meta.get("subject") or "Message",
                    "body": {"contentType": "Text", "content": text},
                    "toRecipients": [{"emailAddress": {"address": recipient}}],
                },
                "saveToSentItems": True,
            }

        token_url = TOKEN_URL_TEMPLATE.format(tenant_id=quote(azure_tenant, safe=""))
        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            token = await self.token_cache.get_token(
                token_url, client_id, client_secret, GRAPH_SCOPE, client=client
            )
            response = await client.post(
                url, json=body, headers={"Authorization": f"Bearer {token}"}
            )
            if response.status_code == 401:
                self.token_cache.invalidate(token_url, client_id, GRAPH_SCOPE)
            response.raise_for_status()

        logger.info(
            "outlook_send: integration_id=%s, message_id=%s, tenant_id=%s",
            integration.id,
            message.id,
            tenant.tenant_id,
        )

    def test(self, integration: Any) -> IntegrationTestResult:
        config = integration.configuration or {}
        details = {
            "hasClientId": bool(config.get("clientId")),
            "hasTenantId": bool(config.get("tenantId")),
            "hasClientSecret": bool(integration_secrets(integration).outlook_client_secret),
            "hasUserEmail": bool(config.get("userEmail")),
        }
        missing = [k for k in ("hasClientId", "hasTenantId", "hasClientSecret") if not details[k]]
        if missing:
            return IntegrationTestResult(
                is_successful=False,
                message="Outlook integration needs clientId, clientSecret and tenantId",
                details=details,
            )
        return IntegrationTestResult(
            is_successful=True, message="Outlook configuration valid", details=details
        )
