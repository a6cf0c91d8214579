"""Workflow webhook trigger schemas."""

from typing import Any

from pydantic import BaseModel, Field


class WebhookTriggerRequest(BaseModel):
    """Manual fan-out of an event to a workflow's webhooks."""

    event_type: str = Field(..., min_length=1, max_length=200)
    payload: Any = None
