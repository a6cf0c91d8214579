"""Platform adapter registry for getting the right adapter by platform id."""

import logging
from typing import Dict, Optional

from src.errors import UnsupportedPlatformError
from src.settings import Settings
from integrations.base import PlatformAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry of platform adapters.

    Maps platform ids to adapter instances. Shared by webhook ingress, the
    integration service and the outbound router.
    """

    def __init__(self) -> None:
        """Initialize empty adapter registry."""
        self._adapters: Dict[str, PlatformAdapter] = {}

    def register(self, adapter: PlatformAdapter) -> None:
        """Register an adapter under its platform id, replacing any previous one.

        Args:
            adapter: PlatformAdapter instance.
        """
        self._adapters[adapter.platform_id] = adapter
        logger.debug("adapter_registered: platform_id=%s", adapter.platform_id)

    def get(self, platform_id: str) -> Optional[PlatformAdapter]:
        return self._adapters.get(platform_id)

    def require(self, platform_id: str) -> PlatformAdapter:
        """Get the adapter for a platform.

        Raises:
            UnsupportedPlatformError: If platform is not registered.
        """
        adapter = self._adapters.get(platform_id)
        if adapter is None:
            raise UnsupportedPlatformError(
                f"No adapter registered for platform '{platform_id}'. "
                f"Available platforms: {self.list_platforms()}"
            )
        return adapter

    def list_platforms(self) -> list[str]:
        """List all registered platform ids."""
        return list(self._adapters.keys())


def create_default_registry(settings: Optional[Settings] = None) -> AdapterRegistry:
    """Build a registry with every built-in platform adapter.

    Args:
        settings: Application settings for timeouts; defaults apply when omitted.
    """
    from integrations.msteams.adapter import TeamsAdapter
    from integrations.outlook.adapter import OutlookAdapter
    from integrations.slack.adapter import SlackAdapter
    from integrations.webhook.adapter import GenericWebhookAdapter

    http_timeout = float(settings.outbound_http_timeout) if settings else 10.0
    replay_window = settings.slack_replay_window_seconds if settings else 300

    registry = AdapterRegistry()
    registry.register(SlackAdapter(http_timeout=http_timeout, replay_window=replay_window))
    registry.register(TeamsAdapter(http_timeout=http_timeout))
    registry.register(OutlookAdapter(http_timeout=http_timeout))
    registry.register(GenericWebhookAdapter(http_timeout=http_timeout))
    return registry
