"""Platform integration adapters for external messaging platforms.

Supports Slack, Microsoft Teams, Outlook and generic signed webhooks.
"""

from integrations.base import PlatformAdapter
from integrations.models import (
    SUPPORTED_PLATFORMS,
    InboundParseResult,
    IntegrationSecrets,
    IntegrationTestResult,
    MappingConfig,
)
from integrations.registry import AdapterRegistry, create_default_registry

__all__ = [
    "SUPPORTED_PLATFORMS",
    "AdapterRegistry",
    "InboundParseResult",
    "IntegrationSecrets",
    "IntegrationTestResult",
    "MappingConfig",
    "PlatformAdapter",
    "create_default_registry",
]
