"""Shared-secret bearer token check for the dashboard endpoints."""

import hmac
from typing import Optional


def authorize(header_value: Optional[str], secret: str) -> bool:
    """Return True if ``header_value`` is exactly ``Bearer <secret>``.

    Comparison is constant-time. An empty ``secret`` rejects every request,
    so an unconfigured deployment never exposes its data.
    """
    if not secret or not header_value:
        return False
    expected = f"Bearer {secret}".encode("utf-8")
    return hmac.compare_digest(header_value.encode("utf-8"), expected)
