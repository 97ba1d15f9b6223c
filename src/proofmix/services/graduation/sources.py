"""
Analytics Sources.

Where graduation reads per-event view and click counts from:
- StoreAnalyticsSource: the counters kept on event records by the store's
  atomic increments
- AggregatorAnalyticsSource: an external analytics aggregator over HTTP

Aggregator API:
    POST {base_url}/widgets/{widget_id}/event-counts
    body:     {"event_ids": ["e1", "e2", ...]}
    response: {"counts": {"e1": {"views": 10, "clicks": 2}, ...}}

Event ids missing from the response count as zero.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from ...core.config import ProofmixSettings, get_settings
from ...core.logging import get_logger
from ...core.retry import (
    NonRetryableHTTPError,
    RetryableHTTPError,
    classify_httpx_error,
    http_retry,
)
from ...models.events import NotificationEvent
from .analytics import AnalyticsUnavailableError, EventCounts

logger = get_logger(__name__)


@runtime_checkable
class AnalyticsSource(Protocol):
    """Supplies views/clicks for a widget's events."""

    async def fetch_counts(
        self,
        widget_id: str,
        events: Sequence[NotificationEvent],
    ) -> dict[str, EventCounts]:
        """
        Fetch counts for the given events.

        Raises:
            AnalyticsUnavailableError: If counts cannot be obtained
        """
        ...


class StoreAnalyticsSource:
    """Counts taken from the event records themselves."""

    async def fetch_counts(
        self,
        widget_id: str,
        events: Sequence[NotificationEvent],
    ) -> dict[str, EventCounts]:
        return {
            event.id: EventCounts(views=event.view_count, clicks=event.click_count)
            for event in events
        }


def _parse_counts(widget_id: str, data: Any) -> dict[str, EventCounts]:
    if not isinstance(data, dict) or not isinstance(data.get("counts"), dict):
        raise AnalyticsUnavailableError(widget_id, "Malformed aggregator response")

    counts: dict[str, EventCounts] = {}
    for event_id, entry in data["counts"].items():
        if not isinstance(entry, dict):
            continue
        try:
            views = max(0, int(entry.get("views", 0)))
            clicks = max(0, int(entry.get("clicks", 0)))
        except (TypeError, ValueError):
            raise AnalyticsUnavailableError(
                widget_id, f"Non-numeric counts for event {event_id}"
            ) from None
        counts[str(event_id)] = EventCounts(views=views, clicks=clicks)
    return counts


class AggregatorAnalyticsSource:
    """
    Async HTTP client for the analytics aggregator.

    Must be used as an async context manager so the connection pool is
    closed. Transient failures (429, 502-504, network errors) are retried
    with exponential backoff; anything left over surfaces as
    AnalyticsUnavailableError.

    Usage:
        async with AggregatorAnalyticsSource("https://analytics.example") as source:
            counts = await source.fetch_counts("widget-1", events)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        enable_retry: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize aggregator client.

        Args:
            base_url: Aggregator base URL
            token: Bearer token sent with every request
            timeout: Request timeout in seconds
            enable_retry: Whether to retry transient failures
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.enable_retry = enable_retry
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: ProofmixSettings | None = None) -> AggregatorAnalyticsSource:
        settings = settings or get_settings()
        if not settings.analytics_url:
            raise ValueError("PROOFMIX_ANALYTICS_URL is not configured")
        return cls(
            settings.analytics_url,
            token=settings.analytics_token,
            timeout=settings.analytics_timeout_seconds,
            enable_retry=not settings.no_retry,
        )

    async def __aenter__(self) -> AggregatorAnalyticsSource:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post_once(self, path: str, payload: dict[str, Any]) -> Any:
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        response = await self._client.post(path, json=payload)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise classify_httpx_error(e) from e
        return response.json()

    @http_retry(max_attempts=3)
    async def _post_with_retry(self, path: str, payload: dict[str, Any]) -> Any:
        return await self._post_once(path, payload)

    async def fetch_counts(
        self,
        widget_id: str,
        events: Sequence[NotificationEvent],
    ) -> dict[str, EventCounts]:
        if not events:
            return {}

        path = f"/widgets/{widget_id}/event-counts"
        payload = {"event_ids": [event.id for event in events]}
        try:
            if self.enable_retry:
                data = await self._post_with_retry(path, payload)
            else:
                data = await self._post_once(path, payload)
        except (RetryableHTTPError, NonRetryableHTTPError) as e:
            logger.warning(f"Aggregator returned HTTP {e.status_code} for widget {widget_id}")
            raise AnalyticsUnavailableError(widget_id, e.message) from e
        except httpx.RequestError as e:
            logger.warning(f"Aggregator unreachable for widget {widget_id}: {e}")
            raise AnalyticsUnavailableError(widget_id, f"Network error: {e}") from e
        except ValueError as e:
            raise AnalyticsUnavailableError(widget_id, f"Invalid JSON: {e}") from e

        return _parse_counts(widget_id, data)
