"""Outlook mail adapter over Microsoft Graph."""

from integrations.outlook.adapter import OutlookAdapter

__all__ = ["OutlookAdapter"]
