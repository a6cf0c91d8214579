"""Unit tests for the adapter registry and shared adapter helpers."""

import pytest

from integrations import SUPPORTED_PLATFORMS, AdapterRegistry, create_default_registry
from integrations.base import load_json, message_text, secrets_match
from integrations.msteams import TeamsAdapter
from integrations.slack import SlackAdapter
from src.errors import MalformedPayloadError, UnsupportedPlatformError
from src.settings import Settings


@pytest.mark.unit
class TestAdapterRegistry:
    """Tests for AdapterRegistry."""

    def test_default_registry_has_every_platform(self) -> None:
        registry = create_default_registry()
        assert sorted(registry.list_platforms()) == sorted(SUPPORTED_PLATFORMS)

    def test_default_registry_uses_settings(self) -> None:
        settings = Settings(outbound_http_timeout=3.5, slack_replay_window_seconds=120)

        registry = create_default_registry(settings)

        slack = registry.require("slack")
        assert slack.http_timeout == 3.5
        assert slack.replay_window == 120

    def test_get_unknown_returns_none(self) -> None:
        assert AdapterRegistry().get("telegram") is None

    def test_require_unknown_raises(self) -> None:
        registry = AdapterRegistry()
        registry.register(SlackAdapter())

        with pytest.raises(UnsupportedPlatformError, match="telegram"):
            registry.require("telegram")

    def test_unsupported_platform_is_bad_request(self) -> None:
        """The API maps ValueError subclasses to 400."""
        assert issubclass(UnsupportedPlatformError, ValueError)

    def test_register_replaces_existing(self) -> None:
        registry = AdapterRegistry()
        first, second = TeamsAdapter(), TeamsAdapter()
        registry.register(first)
        registry.register(second)

        assert registry.require("msteams") is second
        assert registry.list_platforms() == ["msteams"]


@pytest.mark.unit
class TestAdapterHelpers:
    """Tests for helpers shared by platform adapters."""

    def test_secrets_match(self) -> None:
        assert secrets_match("abc123", "abc123")
        assert not secrets_match("abc123", "abc124")
        assert not secrets_match("abc123", None)
        assert not secrets_match(None, None)
        assert not secrets_match("", "")

    def test_load_json_requires_object(self) -> None:
        assert load_json(b'{"a": 1}') == {"a": 1}
        with pytest.raises(MalformedPayloadError):
            load_json(b"[1, 2]")
        with pytest.raises(MalformedPayloadError):
            load_json(b"\x80not-json")

    @pytest.mark.parametrize(
        "content, expected",
        [
            ("plain", "plain"),
            ({"text": "from text"}, "from text"),
            ({"message": "from message"}, "from message"),
            ({"amount": 3}, '{"amount": 3}'),
            (["a", "b"], '["a", "b"]'),
        ],
    )
    def test_message_text(self, content, expected: str) -> None:
        assert message_text(content) == expected
