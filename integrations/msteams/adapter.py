"""Microsoft Teams (Bot Framework) adapter implementation."""

import logging
import re
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlparse

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

BOT_FRAMEWORK_TOKEN_URL = "https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
BOT_FRAMEWORK_SCOPE = "https://api.botframework.com/.default"

# Hosts the Bot Framework connector uses for serviceUrl
TRUSTED_SERVICE_HOST_SUFFIXES = (".botframework.com", ".trafficmanager.net", ".teams.microsoft.com")

MENTION_PATTERN = re.compile(r"<at>.*?</at>", re.IGNORECASE | re.DOTALL)


class TeamsAdapter(PlatformAdapter):
    """Microsoft Teams adapter over the Bot Framework connector.

    Inbound activities are authenticated by the webhook secret in the URL plus
    the presence of the connector's bearer token. Replies are posted to
    ``{serviceUrl}/v3/conversations/{conversationId}/activities`` with a
    client-credentials token for the bot's app id.

    Configuration: appId (required), serviceUrl (optional pin).
    Secrets: teams_app_password (required).
    """

    platform_id = "msteams"
    required_config_keys = ("appId", "appPassword")
    legacy_secret_keys = {"appPassword": "teams_app_password"}

    def __init__(
        self,
        http_timeout: float = 10.0,
        token_cache: Optional[ClientCredentialsTokenCache] = None,
    ) -> None:
        super().__init__(http_timeout)
        self.token_cache = token_cache or ClientCredentialsTokenCache(http_timeout)

    def authenticate(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
        webhook_secret: Optional[str],
    ) -> bool:
        if not super().authenticate(integration, raw_body, headers, webhook_secret):
            return False
        authorization = headers.get("authorization", "")
        return authorization.lower().startswith("bearer ") and len(authorization) > len("bearer ")

    async def parse_inbound(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> InboundParseResult:
        """Parse a Bot Framework activity.

        Only ``message`` activities from users are routed; activities sent by a
        bot (including this one) are ignored.

        Raises:
            MalformedPayloadError: If required activity fields are missing.
        """
        activity = load_json(raw_body)
        if activity.get("type") != "message":
            return InboundParseResult.ignore(f"activity_type:{activity.get('type')}")

        sender = activity.get("from") or {}
        recipient = activity.get("recipient") or {}
        sender_id = sender.get("id")
        if sender.get("role") == "bot" or (sender_id and sender_id == recipient.get("id")):
            return InboundParseResult.ignore("bot_activity")

        text = MENTION_PATTERN.sub("", activity.get("text") or "").strip()
        if not text:
            return InboundParseResult.ignore("empty_text")

        conversation = activity.get("conversation") or {}
        conversation_id = conversation.get("id")
        user_id = sender.get("aadObjectId") or sender.get("id")
        if not conversation_id or not user_id:
            raise MalformedPayloadError("Teams activity missing 'conversation' or 'from'")

        channel_data = activity.get("channelData") or {}
        team_id = (channel_data.get("team") or {}).get("id")
        channel_id = (channel_data.get("channel") or {}).get("id")
        tenant_id = (channel_data.get("tenant") or {}).get("id") or conversation.get("tenantId")

        mapping = integration_mapping(integration)
        fields = {
            "userId": user_id,
            "userEmail": sender.get("userPrincipalName") or sender.get("email"),
            "channelId": channel_id or conversation_id,
            "channelName": (channel_data.get("channel") or {}).get("name"),
            "teamId": team_id,
            "threadId": conversation_id,
        }
        participant_id = resolve_participant_id(mapping, fields, activity)
        if not participant_id:
            raise MalformedPayloadError("Unable to resolve participant id from Teams activity")

        logger.info(
            "teams_parse_inbound: integration_id=%s, conversation_type=%s",
            integration.id,
            conversation.get("conversationType"),
        )
        return InboundParseResult.accept(
            InboundMessageRequest(
                workflow_id=integration.workflow_id,
                participant_id=participant_id,
                participant_channel_id=user_id,
                content=text,
                metadata={
                    "teams": {
                        "activityId": activity.get("id"),
                        "conversationId": conversation_id,
                        "serviceUrl": activity.get("serviceUrl"),
                        "userId": user_id,
                        "userName": sender.get("name"),
                        "channelId": channel_id,
                        "teamId": team_id,
                        "tenantId": tenant_id,
                        "conversationType": conversation.get("conversationType"),
                    }
                },
                origin=integration.origin,
                scope=resolve_scope(mapping, fields, activity),
            )
        )

    async def send(
        self,
        integration: Any,
        message: ConversationMessageView,
        tenant: TenantContext,
    ) -> None:
        """Reply into the Teams conversation the message belongs to.

        Raises:
            httpx.HTTPStatusError: If the token or activity call fails.
        """
        teams_meta = (message.metadata or {}).get("teams") or {}
        service_url = teams_meta.get("serviceUrl") or integration.configuration.get("serviceUrl")
        conversation_id = teams_meta.get("conversationId")
        if not service_url or not conversation_id:
            logger.warning(
                "teams_send_skipped: integration_id=%s, message_id=%s, reason=missing_conversation",
                integration.id,
                message.id,
            )
            return
        if not self._is_trusted_service_url(integration, service_url):
            logger.warning(
                "teams_send_skipped: integration_id=%s, message_id=%s, reason=untrusted_service_url",
                integration.id,
                message.id,
            )
            return

        app_id = integration.configuration.get("appId")
        app_password = integration_secrets(integration).teams_app_password
        if not app_id or not app_password:
            logger.warning(
                "teams_send_skipped: integration_id=%s, reason=missing_credentials", integration.id
            )
            return

        activity: dict[str, Any] = {"type": "message", "text": message_text(message.content)}
        if teams_meta.get("activityId"):
            activity["replyToId"] = teams_meta["activityId"]

        url = (
            f"{service_url.rstrip('/')}/v3/conversations/"
            f"{quote(conversation_id, safe='')}/activities"
        )
        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            token = await self.token_cache.get_token(
                BOT_FRAMEWORK_TOKEN_URL, app_id, app_password, BOT_FRAMEWORK_SCOPE, client=client
            )
            response = await client.post(
                url, json=activity, headers={"Authorization": f"Bearer {token}"}
            )
            if response.status_code == 401:
                self.token_cache.invalidate(BOT_FRAMEWORK_TOKEN_URL, app_id, BOT_FRAMEWORK_SCOPE)
            response.raise_for_status()

        logger.info(
            "teams_send: integration_id=%s, message_id=%s, tenant_id=%s",
            integration.id,
            message.id,
            tenant.tenant_id,
        )

    def test(self, integration: Any) -> IntegrationTestResult:
        has_app_id = bool(integration.configuration.get("appId"))
        has_password = bool(integration_secrets(integration).teams_app_password)
        details = {"hasAppId": has_app_id, "hasAppPassword": has_password}
        if not (has_app_id and has_password):
            return IntegrationTestResult(
                is_successful=False,
                message="Teams integration needs appId and appPassword",
                details=details,
            )
        return IntegrationTestResult(
            is_successful=True, message="Teams configuration valid", details=details
        )

    @staticmethod
    def _is_trusted_service_url(integration: Any, service_url: str) -> bool:
        pinned = integration.configuration.get("serviceUrl")
        if pinned and service_url.rstrip("/") == str(pinned).rstrip("/"):
            return True
        parsed = urlparse(service_url)
        host = (parsed.hostname or "").lower()
        return parsed.scheme == "https" and host.endswith(TRUSTED_SERVICE_HOST_SUFFIXES)
