"""
Session Throttle.

Enforces per-campaign pacing (interval between shows), per-page and
per-session caps, and playlist cooldowns against a caller-owned
SessionState. Checks never mutate the session; ``record_show`` is the only
mutator and must be called after a confirmed render.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from ...models.campaigns import DisplayRules, Playlist
from ...models.events import EventOrigin
from ...models.session import SessionState


@dataclass(frozen=True)
class ThrottleDecision:
    """Result of a throttle check."""

    allowed: bool
    reason: str | None = None
    retry_after_seconds: float = 0.0

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = ThrottleDecision(allowed=True)


class SessionThrottle:
    """
    Pacing and quota checks for one widget's session state.

    The throttle itself holds no per-session state; everything lives in the
    SessionState passed in.
    """

    def __init__(self, recent_window: int = 5) -> None:
        """
        Initialize throttle.

        Args:
            recent_window: Size of the anti-repetition window kept per session
        """
        self.recent_window = recent_window

    def check(
        self,
        session: SessionState,
        campaign_id: str,
        rules: DisplayRules,
        now: float | None = None,
    ) -> ThrottleDecision:
        """
        Check whether a campaign may be shown now.

        Args:
            session: Caller-owned session state (not modified)
            campaign_id: Campaign being considered
            rules: Campaign display rules
            now: Current epoch seconds (defaults to time.time())

        Returns:
            ThrottleDecision with the blocking reason, if any
        """
        if session.shown_on_page_count >= rules.max_per_page:
            return ThrottleDecision(False, "max_per_page")
        if session.shown_in_session_count >= rules.max_per_session:
            return ThrottleDecision(False, "max_per_session")

        remaining = self.remaining_interval_seconds(session, campaign_id, rules, now)
        if remaining > 0:
            return ThrottleDecision(False, "interval", retry_after_seconds=remaining)

        return ALLOWED

    def can_show(
        self,
        session: SessionState,
        campaign_id: str,
        rules: DisplayRules,
        now: float | None = None,
    ) -> bool:
        return self.check(session, campaign_id, rules, now).allowed

    def remaining_interval_seconds(
        self,
        session: SessionState,
        campaign_id: str,
        rules: DisplayRules,
        now: float | None = None,
    ) -> float:
        """Seconds until the campaign's interval has elapsed (0 if not throttled)."""
        last_time = session.last_shown_at.get(campaign_id)
        if last_time is None:
            return 0.0

        current = time.time() if now is None else now
        remaining = rules.interval_ms / 1000.0 - (current - last_time)
        return max(0.0, remaining)

    def check_playlist(
        self,
        session: SessionState,
        playlist: Playlist,
        now: float | None = None,
    ) -> ThrottleDecision:
        """
        Check playlist-level cooldown and quota.

        Applies across all campaigns of the playlist.
        """
        shown = session.playlist_shown_count.get(playlist.id, 0)
        if shown >= playlist.rules.max_per_session:
            return ThrottleDecision(False, "playlist_max_per_session")

        until = session.playlist_cooldown_until.get(playlist.id)
        if until is not None:
            current = time.time() if now is None else now
            if current < until:
                return ThrottleDecision(
                    False, "playlist_cooldown", retry_after_seconds=until - current
                )

        return ALLOWED

    def can_show_playlist(
        self,
        session: SessionState,
        playlist: Playlist,
        now: float | None = None,
    ) -> bool:
        return self.check_playlist(session, playlist, now).allowed

    def record_show(
        self,
        session: SessionState,
        campaign_id: str,
        *,
        now: float | None = None,
        playlist_id: str | None = None,
        playlist_cooldown_seconds: float = 0,
        event_id: str | None = None,
        origin: EventOrigin | None = None,
    ) -> None:
        """
        Record that a campaign was shown.

        Args:
            session: Session state to update
            campaign_id: Campaign that was rendered
            now: Current epoch seconds (defaults to time.time())
            playlist_id: Playlist the campaign was selected through, if any
            playlist_cooldown_seconds: Playlist cooldown to start
            event_id: Event that was rendered (anti-repetition window)
            origin: Origin of the rendered event (quick-win session cap)
        """
        current = time.time() if now is None else now

        session.shown_on_page_count += 1
        session.shown_in_session_count += 1
        session.last_shown_at[campaign_id] = current

        if playlist_id is not None:
            session.playlist_shown_count[playlist_id] = (
                session.playlist_shown_count.get(playlist_id, 0) + 1
            )
            if playlist_cooldown_seconds > 0:
                session.playlist_cooldown_until[playlist_id] = current + playlist_cooldown_seconds

            visited = session.playlist_rounds.setdefault(playlist_id, [])
            if campaign_id in visited:
                # Showing a visited campaign again means the round wrapped
                visited.clear()
            visited.append(campaign_id)

        if event_id is not None:
            session.remember_event(event_id, self.recent_window)

        if origin is not None and not origin.is_organic:
            session.quick_win_shown_count += 1

    def cleanup_expired(self, session: SessionState, now: float | None = None) -> int:
        """
        Drop elapsed playlist cooldowns to keep client-held state small.

        Returns:
            Number of entries removed
        """
        current = time.time() if now is None else now
        expired = [key for key, until in session.playlist_cooldown_until.items() if until <= current]
        for key in expired:
            del session.playlist_cooldown_until[key]
        return len(expired)
