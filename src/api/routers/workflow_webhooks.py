"""Manual trigger for workflow webhook fan-out."""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import get_tenant_context, get_webhook_service
from src.api.schemas.webhooks import WebhookTriggerRequest
from src.tenancy import TenantContext
from src.webhooks.service import WebhookService, WebhookTriggerResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workflows", tags=["workflow-webhooks"])


@router.post("/{workflow_id}/webhooks/trigger", response_model=WebhookTriggerResult)
async def trigger_workflow_webhooks(
    workflow_id: str,
    data: WebhookTriggerRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookTriggerResult:
    """
    Fire an event at every active webhook of a workflow.

    Delivery failures are reported in the result rather than as an error status.
    """
    result = await service.trigger_webhook(
        tenant.tenant_id,
        workflow_id,
        data.event_type,
        data.payload,
        is_manual_trigger=True,
    )
    logger.info(
        "workflow_webhooks_triggered_via_api: workflow_id=%s, triggered=%d",
        workflow_id,
        result.webhooks_triggered,
    )
    return result
