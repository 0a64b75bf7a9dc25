"""Caller identification for rate limiting.

The identifier is derived from proxy-supplied headers and is deliberately
coarse. Any client can set these headers itself, so it is only trustworthy
when TLS terminates at a proxy that overwrites them. It is not a security
grade fingerprint.
"""

from __future__ import annotations

from typing import Protocol

UNKNOWN_IDENTIFIER = "unknown"


class HeaderLookup(Protocol):
    """Case-insensitive header access, e.g. Starlette ``Headers``."""

    def get(self, key: str, default: str | None = None) -> str | None: ...


def identifier_of(headers: HeaderLookup) -> str:
    """Return a stable per-caller identifier.

    Precedence, first match wins:
    1. first address in ``X-Forwarded-For``, trimmed
    2. ``X-Real-IP``
    3. ``User-Agent``
    4. ``"unknown"``

    Examples:
        >>> identifier_of({"x-forwarded-for": " 192.168.1.1 , 10.0.0.1"})
        '192.168.1.1'
        >>> identifier_of({})
        'unknown'
    """

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    user_agent = headers.get("user-agent")
    if user_agent:
        return user_agent

    return UNKNOWN_IDENTIFIER
