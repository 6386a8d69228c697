"""Client address and user-agent sanitizing for the share link access log."""

import ipaddress
from collections.abc import Mapping

MAX_IP_LENGTH = 45
MAX_USER_AGENT_LENGTH = 500
UNKNOWN_IP = "unknown"


def client_ip_from_headers(headers: Mapping[str, str], peer: str | None = None) -> str:
    """Extract the client IP, checking x-forwarded-for first."""
    forwarded = None
    for name, value in headers.items():
        if name.lower() == "x-forwarded-for":
            forwarded = value
            break
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if peer:
        return peer
    return UNKNOWN_IP


def sanitize_ip(raw: str | None) -> str:
    """Canonical form of a client address.

    Strips IPv6 brackets and zone ids, compresses IPv6 and unwraps
    IPv4-mapped IPv6 addresses so the same client always maps to the same
    string. Unparseable input is kept, truncated to 45 characters.
    """
    if raw is None:
        return UNKNOWN_IP
    value = raw.strip()
    if not value:
        return UNKNOWN_IP

    candidate = value
    if candidate.startswith("[") and "]" in candidate:
        candidate = candidate[1:candidate.index("]")]
    candidate = candidate.split("%", 1)[0]

    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return value[:MAX_IP_LENGTH]

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return str(address)


def truncate_user_agent(user_agent: str | None, max_length: int = MAX_USER_AGENT_LENGTH) -> str:
    """Bound a user-agent string to what the access log column holds."""
    if not user_agent:
        return ""
    return user_agent.strip()[:max_length]
