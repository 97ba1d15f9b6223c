"""
Lenient value coercion for configuration dictionaries.

Widget, campaign and playlist configuration arrives as opaque JSON written by
dashboards of varying vintage. These helpers read a value under any of its
accepted key spellings and fall back to a bounded default instead of raising.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def as_int(
    value: Any,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """Coerce to int within bounds; malformed values yield ``default``."""
    if isinstance(value, bool):
        return default
    try:
        result = int(float(value))
    except (TypeError, ValueError):
        return default
    if minimum is not None and result < minimum:
        return default
    if maximum is not None and result > maximum:
        result = maximum
    return result


def as_float(value: Any, default: float | None) -> float | None:
    if isinstance(value, bool) or value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off", ""):
            return False
    return default


def as_str_list(value: Any) -> list[str]:
    """
    Coerce to a list of non-empty strings.

    Accepts a list or a comma-separated string (the form dashboards store
    free-text list inputs in).
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [item for item in value if isinstance(item, (str, int, float))]
    else:
        return []
    return [str(item).strip() for item in items if str(item).strip()]


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 string, epoch seconds or datetime into an aware UTC datetime.

    Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(now: float | datetime | None) -> datetime:
    """Normalize an epoch-seconds float, datetime or None (current time) to UTC datetime."""
    if now is None:
        return utcnow()
    if isinstance(now, datetime):
        return now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(float(now), tz=timezone.utc)
