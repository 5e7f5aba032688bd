"""
Utility functions for the application.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite returns them naive) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime as ISO-8601 UTC with millisecond precision.

    Example: 2024-03-01T00:00:00.000Z
    """
    value = ensure_utc(value)
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def clamp_limit(raw: Any, default: int, minimum: int = 1, maximum: int = 100) -> int:
    """
    Parse a page size from a query value.

    Non-numeric values fall back to the default; numeric values are
    truncated and clamped into [minimum, maximum].
    """
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except (TypeError, ValueError):
        return default
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return default
    return max(minimum, min(maximum, int(parsed)))


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(payload: Any) -> str:
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def clean_str(value: Any) -> Optional[str]:
    """Trimmed string or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
