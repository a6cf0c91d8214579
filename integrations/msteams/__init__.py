"""Microsoft Teams Bot Framework adapter."""

from integrations.msteams.adapter import TeamsAdapter

__all__ = ["TeamsAdapter"]
