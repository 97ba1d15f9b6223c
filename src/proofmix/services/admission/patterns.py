"""
Glob pattern matching for display rules.

One matcher is shared by URL, referrer and geo rules. Patterns match the
whole value, case-insensitively; ``*`` matches any run of characters and
every other character is literal.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """
    Compile a glob pattern into an anchored regex.

    Args:
        pattern: Exact value or ``*`` glob (e.g. ``/products/*``)

    Returns:
        Compiled case-insensitive regex matching the full value
    """
    literal_parts = pattern.strip().split("*")
    regex = ".*".join(re.escape(part) for part in literal_parts)
    return re.compile(f"^{regex}$", re.IGNORECASE | re.DOTALL)


def matches(value: str, pattern: str) -> bool:
    """Check if a value matches one pattern."""
    return compile_pattern(pattern).match(value.strip()) is not None


def matches_any(value: str | None, patterns: Iterable[str]) -> bool:
    """
    Check if a value matches at least one pattern.

    A missing value matches nothing.
    """
    if value is None:
        return False
    return any(matches(value, pattern) for pattern in patterns)


def url_candidates(url: str) -> list[str]:
    """
    Forms of a URL a pattern may be written against.

    Dashboards store both absolute URLs and bare paths (``/pricing``), so an
    absolute URL is also offered as its path and as path plus query.
    """
    candidates = [url]
    match = re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^/?#]*(?P<rest>[^#]*)", url)
    if match:
        rest = match.group("rest") or "/"
        path = rest.split("?", 1)[0] or "/"
        for candidate in (rest, path):
            if candidate not in candidates:
                candidates.append(candidate)
    return candidates


def url_matches_any(url: str | None, patterns: Iterable[str]) -> bool:
    """Check if any form of the URL matches at least one pattern."""
    if url is None:
        return False
    pattern_list = list(patterns)
    return any(matches_any(candidate, pattern_list) for candidate in url_candidates(url))
