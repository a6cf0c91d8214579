"""Generic signed-webhook adapter."""

from integrations.webhook.adapter import GenericWebhookAdapter

__all__ = ["GenericWebhookAdapter"]
