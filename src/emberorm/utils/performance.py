"""
Slow statement thresholds shared by the adapters.
"""

from __future__ import annotations

import os

SLOW_QUERY_ENV = "EMBERORM_SLOW_QUERY_MS"


def resolve_slow_query_ms(*, default: int, override: int | None = None) -> int:
    """
    Pick the slow statement threshold: explicit override, then the
    ``EMBERORM_SLOW_QUERY_MS`` environment variable, then ``default``.
    """

    if override is not None:
        return override
    raw = os.getenv(SLOW_QUERY_ENV)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{SLOW_QUERY_ENV} must be an integer, got {raw!r}") from None
    return max(value, 0)
