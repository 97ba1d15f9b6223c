"""
Visitor session state.

Session state is owned by the caller (the embedding client) and passed into
the admission engine explicitly. It is never persisted server-side; the
client discards it on expiry.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from .coerce import as_float, as_int

DEFAULT_SESSION_TTL_SECONDS = 1800.0


@dataclass
class SessionState:
    """
    Per visitor-session, per-widget display bookkeeping.

    All timestamps are epoch seconds.
    """

    session_id: str
    widget_id: str
    started_at: float
    expires_at: float
    page_id: str | None = None
    shown_on_page_count: int = 0
    shown_in_session_count: int = 0
    last_shown_at: dict[str, float] = field(default_factory=dict)
    playlist_cooldown_until: dict[str, float] = field(default_factory=dict)
    playlist_shown_count: dict[str, int] = field(default_factory=dict)
    # Sequential mode: campaigns already visited in the current round, per playlist
    playlist_rounds: dict[str, list[str]] = field(default_factory=dict)
    recent_event_ids: list[str] = field(default_factory=list)
    quick_win_shown_count: int = 0

    @classmethod
    def new(
        cls,
        widget_id: str,
        *,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        now: float | None = None,
        session_id: str | None = None,
        page_id: str | None = None,
    ) -> SessionState:
        """Start a fresh session."""
        started = time.time() if now is None else now
        return cls(
            session_id=session_id or uuid.uuid4().hex,
            widget_id=widget_id,
            started_at=started,
            expires_at=started + ttl_seconds,
            page_id=page_id,
        )

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at

    def renew_if_expired(
        self,
        now: float | None = None,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
    ) -> SessionState:
        """Return this session, or a fresh one if it has expired."""
        current = time.time() if now is None else now
        if not self.is_expired(current):
            return self
        return SessionState.new(
            self.widget_id, ttl_seconds=ttl_seconds, now=current, page_id=self.page_id
        )

    def start_page(self, page_id: str | None = None) -> None:
        """
        Reset per-page counters for a new page view.

        A missing page id means the caller did not identify the page; it is
        treated as the current page so per-page caps still apply.
        """
        if page_id is None or page_id == self.page_id:
            return
        self.page_id = page_id
        self.shown_on_page_count = 0

    def remember_event(self, event_id: str, window: int) -> None:
        """Push an event into the anti-repetition window."""
        if window <= 0:
            self.recent_event_ids.clear()
            return
        if event_id in self.recent_event_ids:
            self.recent_event_ids.remove(event_id)
        self.recent_event_ids.append(event_id)
        del self.recent_event_ids[:-window]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        """Restore client-held state. Malformed entries are dropped."""
        started = as_float(data.get("started_at"), None)
        if started is None:
            started = time.time()
        expires = as_float(data.get("expires_at"), None)
        if expires is None:
            expires = started + DEFAULT_SESSION_TTL_SECONDS

        def _float_map(raw: Any) -> dict[str, float]:
            if not isinstance(raw, dict):
                return {}
            result = {}
            for key, value in raw.items():
                parsed = as_float(value, None)
                if parsed is not None:
                    result[str(key)] = parsed
            return result

        rounds_raw = data.get("playlist_rounds")
        rounds: dict[str, list[str]] = {}
        if isinstance(rounds_raw, dict):
            for key, value in rounds_raw.items():
                if isinstance(value, list):
                    rounds[str(key)] = [str(v) for v in value]

        counts_raw = data.get("playlist_shown_count")
        counts: dict[str, int] = {}
        if isinstance(counts_raw, dict):
            counts = {str(k): as_int(v, 0, minimum=0) for k, v in counts_raw.items()}

        recent = data.get("recent_event_ids")
        return cls(
            session_id=str(data.get("session_id") or uuid.uuid4().hex),
            widget_id=str(data.get("widget_id") or ""),
            started_at=started,
            expires_at=expires,
            page_id=data.get("page_id"),
            shown_on_page_count=as_int(data.get("shown_on_page_count"), 0, minimum=0),
            shown_in_session_count=as_int(data.get("shown_in_session_count"), 0, minimum=0),
            last_shown_at=_float_map(data.get("last_shown_at")),
            playlist_cooldown_until=_float_map(data.get("playlist_cooldown_until")),
            playlist_shown_count=counts,
            playlist_rounds=rounds,
            recent_event_ids=[str(e) for e in recent] if isinstance(recent, list) else [],
            quick_win_shown_count=as_int(data.get("quick_win_shown_count"), 0, minimum=0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "widget_id": self.widget_id,
            "started_at": self.started_at,
            "expires_at": self.expires_at,
            "page_id": self.page_id,
            "shown_on_page_count": self.shown_on_page_count,
            "shown_in_session_count": self.shown_in_session_count,
            "last_shown_at": dict(self.last_shown_at),
            "playlist_cooldown_until": dict(self.playlist_cooldown_until),
            "playlist_shown_count": dict(self.playlist_shown_count),
            "playlist_rounds": {k: list(v) for k, v in self.playlist_rounds.items()},
            "recent_event_ids": list(self.recent_event_ids),
            "quick_win_shown_count": self.quick_win_shown_count,
        }
