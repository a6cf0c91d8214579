"""Dispatch of conversation events to workflow webhooks."""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.settings import Settings
from src.webhooks.service import WebhookService, WebhookTriggerResult

logger = logging.getLogger(__name__)


async def dispatch_workflow_event(
    session: AsyncSession,
    settings: Settings,
    tenant_id: str,
    workflow_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> Optional[WebhookTriggerResult]:
    """Fire an event at a workflow's webhooks.

    Only dispatches if the enable_webhooks feature flag is on. With background
    processing enabled the fan-out is queued as a Celery task, otherwise it runs
    inline on the caller's session.

    Args:
        session: Async session (used only for inline delivery).
        settings: Settings instance for feature flag checks.
        tenant_id: Owning tenant.
        workflow_id: Workflow whose webhooks should fire.
        event_type: e.g. ``message.inbound`` or ``message.outgoing``.
        payload: JSON-serializable event payload.

    Returns:
        Fan-out result for inline delivery, None when skipped or queued.
    """
    if not settings.feature_flags.enable_webhooks:
        logger.debug("dispatch_workflow_event_skipped: webhooks disabled")
        return None

    if settings.feature_flags.enable_background_processing:
        try:
            from workers.tasks.webhook_tasks import trigger_workflow_webhooks

            trigger_workflow_webhooks.delay(
                tenant_id=tenant_id,
                workflow_id=workflow_id,
                event_type=event_type,
                payload=payload,
            )
            logger.info(
                "dispatch_workflow_event_queued: workflow_id=%s, event_type=%s",
                workflow_id,
                event_type,
            )
            return None
        except Exception as exc:
            logger.warning(
                "dispatch_workflow_event_celery_unavailable: event_type=%s, error=%s, "
                "delivering inline",
                event_type,
                str(exc),
            )

    service = WebhookService(session, timeout=settings.outbound_http_timeout)
    return await service.trigger_webhook(tenant_id, workflow_id, event_type, payload)
