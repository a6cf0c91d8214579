"""Participant id and scope extraction driven by an integration's MappingConfig."""

from typing import Any, Mapping, Optional

from integrations.models import MappingConfig


def lookup_field(payload: Any, path: str) -> Optional[str]:
    """Read a dotted path (``user.profile.email``) out of a JSON payload.

    Returns:
        The value as a string, or None when any segment is missing.
    """
    current = payload
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return None
    return _as_text(current)


def _as_text(value: Any) -> Optional[str]:
    """Platform JSON may carry numeric ids; objects and arrays are not ids."""
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def resolve_participant_id(
    mapping: MappingConfig,
    fields: Mapping[str, Any],
    payload: Any,
) -> Optional[str]:
    """Pick the participant id according to the mapping rules.

    Args:
        mapping: Integration mapping config.
        fields: Platform values keyed by source name (userId, userEmail, channelId, threadId).
        payload: Raw platform payload, used for ``custom`` field paths.

    Returns:
        The participant id, the configured default, or None.
    """
    if mapping.participant_id_source == "custom":
        value = lookup_field(payload, mapping.participant_id_custom_field or "")
    else:
        value = _as_text(fields.get(mapping.participant_id_source))
        if mapping.participant_id_source == "userEmail" and value:
            value = value.lower()
    return value or mapping.default_participant_id


def resolve_scope(
    mapping: MappingConfig,
    fields: Mapping[str, Any],
    payload: Any,
) -> Optional[str]:
    """Pick the conversation scope (channel, team, subject...) if one is configured."""
    if mapping.scope_source is None:
        return mapping.default_scope
    if mapping.scope_source == "custom":
        value = lookup_field(payload, mapping.scope_custom_field or "")
    else:
        value = _as_text(fields.get(mapping.scope_source))
    return value or mapping.default_scope
