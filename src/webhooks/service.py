"""Best-effort fan-out of workflow events to tenant-registered webhooks."""

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.platform import WorkflowWebhookORM
from src.db.repositories.integration_repo import WorkflowWebhookRepository
from src.http_tools import ensure_safe_url

logger = logging.getLogger(__name__)


class WebhookTriggerResult(BaseModel):
    """Aggregated outcome of one fan-out.

    ``success`` is True when at least one webhook accepted the event.
    """

    success: bool
    webhooks_triggered: int = 0
    errors: list[str] = Field(default_factory=list)


def sign_payload(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of the exact bytes sent on the wire."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_event_body(
    workflow_id: str,
    event_type: str,
    payload: Any,
    triggered_at: datetime,
    is_manual_trigger: bool = False,
) -> bytes:
    """Serialize the envelope shared by workflow webhooks and the generic platform."""
    envelope = {
        "workflowId": workflow_id,
        "eventType": event_type,
        "payload": payload,
        "triggeredAt": triggered_at.isoformat(),
        "isManualTrigger": is_manual_trigger,
    }
    return json.dumps(envelope, default=str, separators=(",", ":")).encode("utf-8")


class WebhookService:
    """Delivers workflow events to every matching active webhook.

    Args:
        session: AsyncSession used to load webhooks and stamp last_triggered_at.
        http_client: Optional shared client; a short-lived one is created otherwise.
        timeout: Per-delivery timeout in seconds.
    """

    def __init__(
        self,
        session: AsyncSession,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._session = session
        self._repo = WorkflowWebhookRepository(session)
        self._http_client = http_client
        self._timeout = timeout

    async def trigger_webhook(
        self,
        tenant_id: str,
        workflow_id: str,
        event_type: str,
        payload: Any,
        is_manual_trigger: bool = False,
    ) -> WebhookTriggerResult:
        """Send an event to all active webhooks of a workflow.

        Individual failures are collected rather than raised.

        Args:
            tenant_id: Owning tenant.
            workflow_id: Workflow whose webhooks should fire.
            event_type: Event type the webhooks subscribed to.
            payload: JSON-serializable event payload.
            is_manual_trigger: True when an operator fired the event by hand.

        Returns:
            WebhookTriggerResult with the count of successful deliveries and errors.
        """
        webhooks = await self._repo.list_active(tenant_id, workflow_id, event_type)
        if not webhooks:
            logger.info(
                "trigger_webhook_no_targets: workflow_id=%s, event_type=%s",
                workflow_id,
                event_type,
            )
            return WebhookTriggerResult(success=False, errors=["No active webhooks found"])

        triggered = 0
        errors: list[str] = []
        for webhook in webhooks:
            try:
                await self._deliver(webhook, event_type, payload, is_manual_trigger)
                webhook.last_triggered_at = datetime.now(timezone.utc)
                triggered += 1
            except Exception as e:
                logger.warning(
                    "trigger_webhook_delivery_failed: webhook_id=%s, error=%s",
                    webhook.id,
                    str(e),
                )
                errors.append(f"Webhook {webhook.id}: {e}")

        if triggered:
            await self._session.commit()

        logger.info(
            "trigger_webhook_completed: workflow_id=%s, event_type=%s, triggered=%d, failed=%d",
            workflow_id,
            event_type,
            triggered,
            len(errors),
        )
        return WebhookTriggerResult(
            success=triggered > 0, webhooks_triggered=triggered, errors=errors
        )

    async def _deliver(
        self,
        webhook: WorkflowWebhookORM,
        event_type: str,
        payload: Any,
        is_manual_trigger: bool,
    ) -> None:
        await ensure_safe_url(webhook.callback_url)

        body = build_event_body(
            webhook.workflow_id,
            event_type,
            payload,
            datetime.now(timezone.utc),
            is_manual_trigger,
        )
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(webhook.secret, body),
            "X-Webhook-ID": str(webhook.id),
        }

        if self._http_client is not None:
            response = await self._http_client.post(
                webhook.callback_url, content=body, headers=headers
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(webhook.callback_url, content=body, headers=headers)
        response.raise_for_status()
