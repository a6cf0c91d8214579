"""SSRF guard for outbound platform and webhook deliveries."""

import asyncio
import ipaddress
import logging
import socket
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Hosts blocked regardless of what they resolve to
BLOCKED_HOSTS = {
    "localhost",
    "0.0.0.0",
    "metadata.google.internal",
}


def validate_webhook_url(url: str) -> Optional[str]:
    """Validate a callback URL is safe to POST to (SSRF prevention).

    Blocks non-HTTP(S) schemes, private, loopback, link-local and reserved
    addresses, and cloud metadata endpoints.

    Args:
        url: The webhook URL to validate.

    Returns:
        None if valid, error message string if invalid.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid URL"

    if parsed.scheme not in ("http", "https"):
        return f"invalid scheme: {parsed.scheme}"

    hostname = parsed.hostname
    if not hostname:
        return "missing hostname"
    if hostname in BLOCKED_HOSTS:
        return f"blocked host: {hostname}"

    try:
        resolved_ips = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror:
        return f"cannot resolve hostname: {hostname}"

    for _, _, _, _, sockaddr in resolved_ips:
        ip_str = sockaddr[0]
        try:
            ip = ipaddress.ip_address(ip_str)
        except ValueError:
            continue

        if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved:
            return f"blocked private/reserved IP: {ip_str}"

        if ip_str in ("169.254.169.254", "fd00:ec2::254"):
            return f"blocked metadata endpoint: {ip_str}"

    return None


async def ensure_safe_url(url: str) -> None:
    """Async wrapper around ``validate_webhook_url`` (DNS lookup runs off-loop).

    Raises:
        ValueError: If the URL is not safe to call.
    """
    error = await asyncio.to_thread(validate_webhook_url, url)
    if error:
        logger.warning("outbound_url_blocked: reason=%s", error)
        raise ValueError(f"Refusing outbound call: {error}")

