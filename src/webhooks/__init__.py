"""Generic workflow webhook fan-out."""

from src.webhooks.events import dispatch_workflow_event
from src.webhooks.service import (
    WebhookService,
    WebhookTriggerResult,
    build_event_body,
    sign_payload,
)

__all__ = [
    "WebhookService",
    "WebhookTriggerResult",
    "build_event_body",
    "dispatch_workflow_event",
    "sign_payload",
]
