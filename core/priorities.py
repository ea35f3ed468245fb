"""Utility helpers for sync item priorities."""
from __future__ import annotations

# Any integer is accepted; larger values are replayed first.
DEFAULT_PRIORITY = 0
DEFAULT_MAX_ATTEMPTS = 5


def normalize_priority(value: int | str | None) -> int:
    """Coerce external values to an integer priority."""
    if value is None or isinstance(value, bool):
        return DEFAULT_PRIORITY
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY


def normalize_max_attempts(value: int | str | None, default: int = DEFAULT_MAX_ATTEMPTS) -> int:
    """Return a positive attempt ceiling, falling back to ``default``."""
    if default < 1:
        default = DEFAULT_MAX_ATTEMPTS
    if value is None or isinstance(value, bool):
        return default
    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        return default
    return ivalue if ivalue >= 1 else default
