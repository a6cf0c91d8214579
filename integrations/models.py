"""Pydantic models for app integration configuration, secrets and inbound parsing."""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr, model_validator

from src.conversations.models import InboundMessageRequest

SUPPORTED_PLATFORMS = ("slack", "msteams", "outlook", "webhook")

PlatformId = Literal["slack", "msteams", "outlook", "webhook"]

# Configuration values are typed once, when the request body is validated.
# Strict variants stop pydantic from coercing "true" or "1" across types.
ConfigValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, dict[str, StrictStr]]

ParticipantIdSource = Literal["userId", "userEmail", "channelId", "threadId", "custom"]
ScopeSource = Literal["channelId", "channelName", "teamId", "threadId", "subject", "custom"]


def mask(value: Optional[str]) -> Optional[str]:
    """Render a secret for display: first 4 and last 4 characters only.

    Values of 8 characters or fewer are fully hidden.
    """
    if not value:
        return value
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


class IntegrationSecrets(BaseModel):
    """Typed secret bag stored alongside an integration."""

    webhook_secret: Optional[str] = None
    slack_signing_secret: Optional[str] = None
    slack_bot_token: Optional[str] = None
    slack_incoming_webhook_url: Optional[str] = None
    teams_app_password: Optional[str] = None
    outlook_client_secret: Optional[str] = None
    generic_webhook_secret: Optional[str] = None
    custom_secrets: dict[str, str] = Field(default_factory=dict)

    def masked(self) -> dict[str, Any]:
        """Display-safe copy with every value masked."""
        data: dict[str, Any] = {}
        for name, value in self.model_dump(exclude={"custom_secrets"}).items():
            data[name] = mask(value)
        data["custom_secrets"] = {k: mask(v) for k, v in self.custom_secrets.items()}
        return data

    def __repr__(self) -> str:
        return f"IntegrationSecrets({self.masked()!r})"

    __str__ = __repr__


class MappingConfig(BaseModel):
    """Rules for deriving participant id and scope from platform payloads."""

    participant_id_source: ParticipantIdSource = "userId"
    participant_id_custom_field: Optional[str] = None
    scope_source: Optional[ScopeSource] = None
    scope_custom_field: Optional[str] = None
    default_participant_id: Optional[str] = None
    default_scope: Optional[str] = None

    @model_validator(mode="after")
    def _custom_fields_present(self) -> "MappingConfig":
        if self.participant_id_source == "custom" and not self.participant_id_custom_field:
            raise ValueError("participant_id_custom_field is required when source is 'custom'")
        if self.scope_source == "custom" and not self.scope_custom_field:
            raise ValueError("scope_custom_field is required when scope_source is 'custom'")
        return self


class IntegrationTestResult(BaseModel):
    is_successful: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class InboundParseResult(BaseModel):
    """What a platform adapter made of an inbound webhook body.

    Exactly one outcome applies: a message to route, a handshake response
    (``challenge``), or nothing to do (``ignored_reason``).
    """

    request: Optional[InboundMessageRequest] = None
    challenge: Optional[dict[str, Any]] = None
    ignored_reason: Optional[str] = None

    @classmethod
    def accept(cls, request: InboundMessageRequest) -> "InboundParseResult":
        return cls(request=request)

    @classmethod
    def ignore(cls, reason: str) -> "InboundParseResult":
        return cls(ignored_reason=reason)

    @classmethod
    def handshake(cls, response: dict[str, Any]) -> "InboundParseResult":
        return cls(challenge=response)


def integration_secrets(integration: Any) -> IntegrationSecrets:
    """Typed view of an integration row's secret bag."""
    return IntegrationSecrets.model_validate(integration.secrets or {})


def integration_mapping(integration: Any) -> MappingConfig:
    """Typed view of an integration row's mapping config."""
    return MappingConfig.model_validate(integration.mapping_config or {})
