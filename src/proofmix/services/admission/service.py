"""
Admission Service.

Async front of the admission path. Per page view it performs at most one
store fetch (through the pool cache), runs the in-memory engine and, once
the renderer confirms, records the show into the session and the store's
view counter.
"""

from __future__ import annotations

import random
import time
from collections.abc import Iterable

from ...core.config import ProofmixSettings, get_settings
from ...core.logging import get_logger
from ...models.context import PageContext
from ...models.session import SessionState
from ..event_store.protocol import EventStore
from ..graduation.profiles import BusinessProfileLoader
from .engine import AdmissionEngine
from .playlist import AdmissionResult, CycleState
from .pool import PoolCache, PoolUnavailableError

logger = get_logger(__name__)


class AdmissionService:
    """
    Admission for many widgets backed by an event store.

    Usage:
        service = AdmissionService.from_settings(store)
        session = service.open_session("widget-1", session, context)
        result = await service.admit("widget-1", session, context)
        if result.selection and render(result.selection):
            await service.confirm_render(result, session)
    """

    def __init__(
        self,
        store: EventStore,
        engine: AdmissionEngine | None = None,
        *,
        cache: PoolCache | None = None,
        cache_ttl_seconds: float = 60.0,
        session_ttl_seconds: float = 1800.0,
    ) -> None:
        self.store = store
        self.engine = engine or AdmissionEngine()
        self.cache = cache or PoolCache(store.load_snapshot, ttl_seconds=cache_ttl_seconds)
        self.session_ttl_seconds = session_ttl_seconds

    @classmethod
    def from_settings(
        cls,
        store: EventStore,
        settings: ProofmixSettings | None = None,
        rng: random.Random | None = None,
    ) -> AdmissionService:
        """Build a service configured from ProofmixSettings."""
        settings = settings or get_settings()
        profiles = BusinessProfileLoader(
            settings.profile_dir, default_type=settings.default_business_type
        )
        engine = AdmissionEngine(profiles, rng=rng, recent_window=settings.recent_window)
        return cls(
            store,
            engine,
            cache_ttl_seconds=settings.pool_cache_ttl_seconds,
            session_ttl_seconds=settings.session_ttl_seconds,
        )

    def open_session(
        self,
        widget_id: str,
        session: SessionState | None,
        context: PageContext,
        now: float | None = None,
    ) -> SessionState:
        """
        Return the session to use for this page view.

        Creates a session on the first page view, replaces an expired one, and
        resets the per-page counter when the page changes.
        """
        current = time.time() if now is None else now
        if session is None or session.widget_id != widget_id:
            return SessionState.new(
                widget_id,
                ttl_seconds=self.session_ttl_seconds,
                now=current,
                page_id=context.page_id,
            )

        renewed = session.renew_if_expired(current, self.session_ttl_seconds)
        renewed.start_page(context.page_id)
        return renewed

    async def admit(
        self,
        widget_id: str,
        session: SessionState,
        context: PageContext,
        now: float | None = None,
    ) -> AdmissionResult:
        """
        Decide which notification, if any, to show.

        Never raises for pool fetch failures: they yield NONE_AVAILABLE with
        reason ``pool_unavailable``.
        """
        try:
            snapshot = await self.cache.get(widget_id, now)
        except PoolUnavailableError as e:
            logger.warning(f"Admission skipped: {e}")
            result = AdmissionResult(state=CycleState.IDLE, states=[CycleState.IDLE])
            result.reason = "pool_unavailable"
            result.advance(CycleState.NONE_AVAILABLE)
            return result

        return self.engine.evaluate(snapshot, session, context, now)

    async def confirm_render(
        self,
        result: AdmissionResult,
        session: SessionState,
        now: float | None = None,
    ) -> bool:
        """
        Record a successful render.

        Updates the session (counters, cooldowns, anti-repetition) and
        atomically increments the event's view counter.

        Returns:
            True if the view counter was incremented

        Raises:
            ValueError: If the result holds no unconfirmed selection
        """
        selection = self.engine.confirm(result, session, now)
        counted = await self.store.increment_view(selection.event.id)
        if not counted:
            logger.warning(f"View not counted: event {selection.event.id} no longer stored")
        return counted

    async def record_click(self, event_id: str) -> bool:
        """Atomically increment an event's click counter."""
        return await self.store.increment_click(event_id)

    async def prefetch(self, widget_ids: Iterable[str]) -> dict[str, bool]:
        """Warm the pool cache ahead of traffic."""
        return await self.cache.prefetch(widget_ids)
