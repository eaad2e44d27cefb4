"""Originating address resolution behind proxies."""

from typing import Mapping, Optional


def resolve_client_ip(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> Optional[str]:
    """Return the best-effort client address.

    Order: first entry of ``X-Forwarded-For``, then ``X-Real-IP``, then the
    socket address. Header lookup is case-insensitive when ``headers`` is a
    Starlette ``Headers`` object; plain dicts should use lower-case keys.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return remote_addr or None
