"""Slack Events API adapter."""

from integrations.slack.adapter import SlackAdapter
from integrations.slack.webhook import validate_slack_signature

__all__ = ["SlackAdapter", "validate_slack_signature"]
