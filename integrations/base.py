"""Abstract base class for platform adapters."""

import hmac
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping, Optional

from src.conversations.models import ConversationMessageView
from src.errors import MalformedPayloadError
from src.tenancy import TenantContext
from integrations.models import (
    InboundParseResult,
    IntegrationTestResult,
    integration_secrets,
)

logger = logging.getLogger(__name__)


def secrets_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """Constant-time comparison that treats a missing value as a mismatch."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def load_json(raw_body: bytes) -> dict[str, Any]:
    """Decode a JSON object body.

    Raises:
        MalformedPayloadError: If the body is not a JSON object.
    """
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPayloadError("Invalid JSON payload") from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError("JSON payload must be an object")
    return payload


def message_text(content: Any) -> str:
    """Plain text to post for a message's opaque content."""
    if isinstance(content, str):
        return content
    if isinstance(content, Mapping):
        for key in ("text", "message", "content"):
            value = content.get(key)
            if isinstance(value, str):
                return value
    return json.dumps(content, default=str)


class PlatformAdapter(ABC):
    """Base class for messaging platform integrations.

    One instance per platform is registered at startup and shared by webhook
    ingress, the integration registry and the outbound router. Integration
    specific settings always arrive with the call, never on the instance.

    Class attributes:
        platform_id: Lower-case platform key used in URLs and origins.
        required_config_keys: Configuration keys an integration must provide.
        legacy_secret_keys: Configuration keys that actually hold secrets, mapped
            to the IntegrationSecrets field they migrate to.
        verifies_signature: True when authenticity comes from a signed header
            rather than the webhook secret in the URL.
    """

    platform_id: ClassVar[str]
    required_config_keys: ClassVar[tuple[str, ...]] = ()
    legacy_secret_keys: ClassVar[dict[str, str]] = {}
    verifies_signature: ClassVar[bool] = False

    def __init__(self, http_timeout: float = 10.0) -> None:
        """Initialize adapter with settings shared by all integrations.

        Args:
            http_timeout: Timeout in seconds for calls to the platform API.
        """
        self.http_timeout = http_timeout

    def authenticate(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
        webhook_secret: Optional[str],
    ) -> bool:
        """Check an inbound call really comes from the platform.

        The default binds authenticity to the random secret embedded in the
        webhook URL. Signature-based platforms override this.

        Args:
            integration: Stored integration row.
            raw_body: Exact request body bytes.
            headers: Request headers with lower-case names.
            webhook_secret: Secret segment from the URL, if any.

        Returns:
            True if the request is authentic. Must compare in constant time.
        """
        return secrets_match(integration_secrets(integration).webhook_secret, webhook_secret)

    @abstractmethod
    async def parse_inbound(
        self,
        integration: Any,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> InboundParseResult:
        """Normalize an authenticated webhook body.

        Args:
            integration: Stored integration row.
            raw_body: Exact request body bytes.
            headers: Request headers with lower-case names.

        Returns:
            Parse outcome: a request to route, a handshake reply, or ignored.

        Raises:
            MalformedPayloadError: If the body cannot be understood.
        """
        ...

    @abstractmethod
    async def send(
        self,
        integration: Any,
        message: ConversationMessageView,
        tenant: TenantContext,
    ) -> None:
        """Deliver an outgoing message to the platform.

        Args:
            integration: Stored integration row addressed by the message origin.
            message: The persisted outgoing message.
            tenant: Acting tenant context for this delivery.

        Raises:
            Exception: If the platform call fails. The router logs and moves on.
        """
        ...

    @abstractmethod
    def test(self, integration: Any) -> IntegrationTestResult:
        """Static check that the integration has what the platform needs."""
        ...
