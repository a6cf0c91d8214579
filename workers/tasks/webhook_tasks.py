"""Celery task for background workflow webhook fan-out."""

import logging
from typing import Any

from celery import shared_task

from workers.utils import get_task_session_factory, get_task_settings, run_async

logger = logging.getLogger(__name__)


class WebhookFanoutFailed(Exception):
    """Every matching webhook rejected the event."""


@shared_task(
    name="workers.tasks.webhook_tasks.trigger_workflow_webhooks",
    bind=True,
    max_retries=3,
    soft_time_limit=120,
    acks_late=True,
)
def trigger_workflow_webhooks(
    self,  # type: ignore[no-untyped-def]
    tenant_id: str,
    workflow_id: str,
    event_type: str,
    payload: Any,
    is_manual_trigger: bool = False,
) -> dict[str, Any]:
    """Deliver a workflow event to its active webhooks.

    Retries with exponential backoff only when webhooks exist and none of them
    accepted the event, so receivers that already got it are not hit twice.

    Args:
        self: Celery task instance (for retries).
        tenant_id: Owning tenant.
        workflow_id: Workflow whose webhooks should fire.
        event_type: Event type, e.g. ``message.inbound``.
        payload: JSON-serializable event payload.
        is_manual_trigger: True for operator-initiated triggers.

    Returns:
        Dict form of the WebhookTriggerResult.
    """
    logger.info(
        "trigger_workflow_webhooks_started: workflow_id=%s, event_type=%s",
        workflow_id,
        event_type,
    )
    try:
        result = run_async(
            _async_trigger(tenant_id, workflow_id, event_type, payload, is_manual_trigger)
        )
    except WebhookFanoutFailed as exc:
        logger.warning(
            "trigger_workflow_webhooks_failed: workflow_id=%s, error=%s, retry=%d/%d",
            workflow_id,
            str(exc),
            self.request.retries,
            self.max_retries,
        )
        raise self.retry(exc=exc, countdown=30 * (2**self.request.retries))

    logger.info(
        "trigger_workflow_webhooks_completed: workflow_id=%s, triggered=%d, errors=%d",
        workflow_id,
        result["webhooks_triggered"],
        len(result["errors"]),
    )
    return result


async def _async_trigger(
    tenant_id: str,
    workflow_id: str,
    event_type: str,
    payload: Any,
    is_manual_trigger: bool,
) -> dict[str, Any]:
    from src.webhooks.service import WebhookService

    settings = get_task_settings()
    session_factory = get_task_session_factory()

    async with session_factory() as session:
        service = WebhookService(session, timeout=settings.outbound_http_timeout)
        result = await service.trigger_webhook(
            tenant_id, workflow_id, event_type, payload, is_manual_trigger=is_manual_trigger
        )

    if not result.success and result.errors and result.errors != ["No active webhooks found"]:
        raise WebhookFanoutFailed("; ".join(result.errors))
    return result.model_dump()
