"""Inbound platform webhook handling.

Turns an HTTP call on ``/api/apps/{platform}/events/{id}[/{secret}]`` into a
status code and JSON body. The integration is looked up before anything else
so that unknown, disabled and mismatched integrations all look the same to the
caller, and authenticity failures never say which check failed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.conversations.service import ConversationService
from src.db.repositories.integration_repo import AppIntegrationRepository
from src.errors import MalformedPayloadError
from src.tenancy import TenantContext
from src.workflows.client import WorkflowNotFoundError
from integrations.registry import AdapterRegistry

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Integration not found"
UNAUTHORIZED_MESSAGE = "Unauthorized"


@dataclass(frozen=True)
class IngressResult:
    """HTTP outcome of one inbound webhook call."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def reject(cls, status_code: int, message: str) -> "IngressResult":
        return cls(status_code=status_code, body={"error": message})


class WebhookIngress:
    """Authenticates, parses and forwards inbound platform webhooks.

    Args:
        session: AsyncSession used to load the integration.
        registry: Adapter registry.
        conversation_service: Service that persists the message and signals the workflow.
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: AdapterRegistry,
        conversation_service: ConversationService,
    ) -> None:
        self._integrations = AppIntegrationRepository(session)
        self._registry = registry
        self._conversations = conversation_service

    async def handle_inbound(
        self,
        platform_id: str,
        integration_id: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        webhook_secret: Optional[str] = None,
    ) -> IngressResult:
        """Process one webhook call.

        Args:
            platform_id: Platform segment of the URL.
            integration_id: Integration id segment of the URL.
            raw_body: Exact request body bytes.
            headers: Request headers (any case).
            webhook_secret: Secret segment of the URL, if present.

        Returns:
            IngressResult with 200, 400, 401 or 404.

        Raises:
            Exception: Unexpected conversation service errors propagate to the
                error-handling middleware (500).
        """
        platform_id = platform_id.lower()
        try:
            integration_uuid = UUID(integration_id)
        except ValueError:
            return IngressResult.reject(404, NOT_FOUND_MESSAGE)

        integration = await self._integrations.get_by_id(integration_uuid)
        if integration is None or not integration.is_enabled:
            logger.info(
                "ingress_rejected: integration_id=%s, reason=missing_or_disabled", integration_id
            )
            return IngressResult.reject(404, NOT_FOUND_MESSAGE)
        if integration.platform_id != platform_id:
            logger.warning(
                "ingress_rejected: integration_id=%s, reason=platform_mismatch, platform_id=%s",
                integration_id,
                platform_id,
            )
            return IngressResult.reject(404, NOT_FOUND_MESSAGE)

        adapter = self._registry.get(platform_id)
        if adapter is None:
            logger.warning("ingress_rejected: platform_id=%s, reason=no_adapter", platform_id)
            return IngressResult.reject(404, NOT_FOUND_MESSAGE)

        lowered = {k.lower(): v for k, v in headers.items()}
        if not adapter.authenticate(integration, raw_body, lowered, webhook_secret):
            logger.warning(
                "ingress_unauthorized: integration_id=%s, platform_id=%s",
                integration_id,
                platform_id,
            )
            return IngressResult.reject(401, UNAUTHORIZED_MESSAGE)

        try:
            parsed = await adapter.parse_inbound(integration, raw_body, lowered)
        except MalformedPayloadError as e:
            logger.warning(
                "ingress_malformed_payload: integration_id=%s, error=%s", integration_id, str(e)
            )
            return IngressResult.reject(400, str(e))

        if parsed.challenge is not None:
            return IngressResult(status_code=200, body=parsed.challenge)
        if parsed.request is None:
            logger.info(
                "ingress_ignored: integration_id=%s, reason=%s",
                integration_id,
                parsed.ignored_reason,
            )
            return IngressResult(status_code=200, body={"status": "ignored"})

        tenant = TenantContext.for_integration(
            integration.tenant_id, integration.platform_id, integration.id
        )
        try:
            result = await self._conversations.process_inbound_message(parsed.request, tenant)
        except WorkflowNotFoundError:
            logger.warning(
                "ingress_workflow_not_found: integration_id=%s, platform=%s",
                integration_id,
                platform_id,
            )
            return IngressResult.reject(404, "Workflow not found")

        logger.info(
            "ingress_accepted: integration_id=%s, message_id=%s, thread_id=%s",
            integration_id,
            result.message_id,
            result.thread_id,
        )
        return IngressResult(
            status_code=200,
            body={
                "status": "accepted",
                "messageId": str(result.message_id),
                "threadId": str(result.thread_id),
            },
        )
