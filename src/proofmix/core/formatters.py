"""
Output formatting helpers for CLI and reports.
"""

from __future__ import annotations

from datetime import datetime, timezone


def get_utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """Format a datetime as ISO 8601 with a Z suffix (second precision)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())


def format_share(part: int, total: int) -> float:
    """Share of total as a rounded fraction (0.0 when total is zero)."""
    if total <= 0:
        return 0.0
    return round(part / total, 4)
