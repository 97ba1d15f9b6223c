"""
Page context supplied by the embedding snippet for one page view.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .coerce import as_bool, as_int, pick


@dataclass(frozen=True)
class PageContext:
    """What the widget knows about the current page view."""

    url: str
    referrer: str | None = None
    geo_code: str | None = None
    is_verified_visitor: bool = False
    time_on_page_ms: int = 0
    scroll_depth_pct: int = 0
    exit_intent: bool = False
    page_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageContext:
        return cls(
            url=str(pick(data, "url", "page_url", "pageUrl", default="")),
            referrer=pick(data, "referrer") or None,
            geo_code=pick(data, "geo_code", "geoCode", "country") or None,
            is_verified_visitor=as_bool(
                pick(data, "is_verified_visitor", "isVerifiedVisitor"), False
            ),
            time_on_page_ms=as_int(pick(data, "time_on_page_ms", "timeOnPageMs"), 0, minimum=0),
            scroll_depth_pct=as_int(
                pick(data, "scroll_depth_pct", "scrollDepthPct"), 0, minimum=0, maximum=100
            ),
            exit_intent=as_bool(pick(data, "exit_intent", "exitIntent"), False),
            page_id=pick(data, "page_id", "pageId"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "referrer": self.referrer,
            "geo_code": self.geo_code,
            "is_verified_visitor": self.is_verified_visitor,
            "time_on_page_ms": self.time_on_page_ms,
            "scroll_depth_pct": self.scroll_depth_pct,
            "exit_intent": self.exit_intent,
            "page_id": self.page_id,
        }
