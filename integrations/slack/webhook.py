"""Slack webhook signature validation."""

import hashlib
import hmac
import time
from typing import Optional, Union

DEFAULT_REPLAY_WINDOW_SECONDS = 60 * 5


def compute_slack_signature(signing_secret: str, timestamp: str, body: Union[bytes, str]) -> str:
    """Compute the ``v0=`` signature Slack would send for a body."""
    body_bytes = body.encode("utf-8") if isinstance(body, str) else body
    base_string = f"v0:{timestamp}:".encode("utf-8") + body_bytes
    computed_hmac = hmac.new(
        key=signing_secret.encode("utf-8"),
        msg=base_string,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"v0={computed_hmac}"


def validate_slack_signature(
    signing_secret: str,
    timestamp: str,
    body: Union[bytes, str],
    signature: str,
    replay_window: int = DEFAULT_REPLAY_WINDOW_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """Validate Slack webhook signature (v0 scheme).

    The base string is ``v0:{timestamp}:{body}`` signed with HMAC-SHA256 using
    the integration's signing secret; the header carries ``v0={hex digest}``.
    Requests whose timestamp is further than ``replay_window`` seconds from now
    are rejected.

    Args:
        signing_secret: Slack app signing secret.
        timestamp: X-Slack-Request-Timestamp header value.
        body: Request body (bytes or string).
        signature: X-Slack-Signature header value (e.g., "v0=abc123...").
        replay_window: Max accepted clock distance in seconds.
        now: Current epoch seconds (defaults to time.time()).

    Returns:
        True if signature is valid and timestamp is fresh, False otherwise.
    """
    if not signing_secret or not signature:
        return False

    current_time = int(now if now is not None else time.time())
    try:
        request_time = int(timestamp)
    except (ValueError, TypeError):
        return False
    if abs(current_time - request_time) > replay_window:
        return False

    expected_signature = compute_slack_signature(signing_secret, timestamp, body)

    # Constant-time comparison
    return hmac.compare_digest(expected_signature.encode("utf-8"), signature.encode("utf-8"))
