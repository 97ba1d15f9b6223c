"""
SQLite Implementation of the Event Store.

Uses WAL mode so the admission service and the graduation scheduler can
share one database file from separate processes.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from ...models.campaigns import Campaign, Playlist
from ...models.events import EventOrigin, EventStatus, NotificationEvent
from ...models.snapshot import PoolSnapshot
from ...models.widgets import WidgetConfig
from .migrations import MigrationRunner
from .protocol import GraduationLease, StoreStats, WidgetNotFoundError

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _dt(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


class SQLiteEventStore:
    """
    SQLite implementation of EventStore.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to {instance_root}/cache/proofmix.db.
        """
        if db_path is None:
            from ...core.config import get_settings

            db_path = get_settings().db_path

        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Initialize database, running migrations if needed.

        Must be called before any other operations.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")

        runner = MigrationRunner(self._db)
        await runner.run_migrations()

        self._db.row_factory = aiosqlite.Row
        logger.info("Event store initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Event store closed")

    async def __aenter__(self) -> SQLiteEventStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    _UPSERT_EVENT_SQL = """
        INSERT INTO events (
            event_id, widget_id, campaign_id, origin, status, quality_score,
            view_count, click_count, created_at, expires_at, payload
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(event_id) DO UPDATE SET
            widget_id = excluded.widget_id,
            campaign_id = excluded.campaign_id,
            origin = excluded.origin,
            status = excluded.status,
            quality_score = excluded.quality_score,
            expires_at = excluded.expires_at,
            payload = excluded.payload
    """

    @staticmethod
    def _event_params(event: NotificationEvent) -> tuple:
        return (
            event.id,
            event.widget_id,
            event.campaign_id,
            event.origin.value,
            event.status.value,
            event.quality_score,
            event.view_count,
            event.click_count,
            _ts(event.created_at),
            _ts(event.expires_at),
            json.dumps(event.payload),
        )

    async def upsert_event(self, event: NotificationEvent) -> None:
        """Insert or update an event; stored counters are never overwritten."""
        await self.db.execute(self._UPSERT_EVENT_SQL, self._event_params(event))
        await self.db.commit()

    async def upsert_events(self, events: Iterable[NotificationEvent]) -> int:
        params = [self._event_params(event) for event in events]
        if not params:
            return 0
        await self.db.executemany(self._UPSERT_EVENT_SQL, params)
        await self.db.commit()
        return len(params)

    async def get_event(self, event_id: str) -> NotificationEvent | None:
        cursor = await self.db.execute("SELECT * FROM events WHERE event_id = ?", (event_id,))
        row = await cursor.fetchone()
        return self._row_to_event(row) if row else None

    async def list_events(
        self,
        widget_id: str,
        *,
        since: datetime | None = None,
        statuses: Iterable[EventStatus] | None = None,
        origins: Iterable[EventOrigin] | None = None,
    ) -> list[NotificationEvent]:
        conditions = ["widget_id = ?"]
        params: list = [widget_id]

        if since is not None:
            conditions.append("created_at >= ?")
            params.append(since.timestamp())
        if statuses is not None:
            status_values = [s.value for s in statuses]
            if not status_values:
                return []
            conditions.append(f"status IN ({','.join('?' * len(status_values))})")
            params.extend(status_values)
        if origins is not None:
            origin_values = [o.value for o in origins]
            if not origin_values:
                return []
            conditions.append(f"origin IN ({','.join('?' * len(origin_values))})")
            params.extend(origin_values)

        cursor = await self.db.execute(
            f"""
            SELECT * FROM events
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC, event_id
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: aiosqlite.Row) -> NotificationEvent:
        return NotificationEvent(
            id=row["event_id"],
            widget_id=row["widget_id"],
            campaign_id=row["campaign_id"],
            origin=EventOrigin(row["origin"]),
            status=EventStatus(row["status"]),
            quality_score=row["quality_score"],
            view_count=row["view_count"],
            click_count=row["click_count"],
            created_at=_dt(row["created_at"]),
            expires_at=_dt(row["expires_at"]),
            payload=json.loads(row["payload"] or "{}"),
        )

    async def increment_view(self, event_id: str) -> bool:
        cursor = await self.db.execute(
            "UPDATE events SET view_count = view_count + 1 WHERE event_id = ?",
            (event_id,),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def increment_click(self, event_id: str) -> bool:
        cursor = await self.db.execute(
            "UPDATE events SET click_count = click_count + 1 WHERE event_id = ?",
            (event_id,),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Campaigns and Playlists
    # -------------------------------------------------------------------------

    async def upsert_campaign(self, campaign: Campaign) -> None:
        await self.db.execute(
            """
            INSERT OR REPLACE INTO campaigns (
                campaign_id, widget_id, website_id, name, status, priority,
                created_at, display_rules
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                campaign.id,
                campaign.widget_id,
                campaign.website_id,
                campaign.name,
                campaign.status.value,
                campaign.priority,
                _ts(campaign.created_at),
                json.dumps(campaign.display_rules.to_dict()),
            ),
        )
        await self.db.commit()

    async def upsert_playlist(self, playlist: Playlist) -> None:
        await self.db.execute(
            """
            INSERT OR REPLACE INTO playlists (
                playlist_id, website_id, name, campaign_order, rules, is_active
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                playlist.id,
                playlist.website_id,
                playlist.name,
                json.dumps(playlist.campaign_order),
                json.dumps(playlist.rules.to_dict()),
                int(playlist.is_active),
            ),
        )
        await self.db.commit()

    def _row_to_campaign(self, row: aiosqlite.Row) -> Campaign:
        return Campaign.from_dict(
            {
                "id": row["campaign_id"],
                "widget_id": row["widget_id"],
                "website_id": row["website_id"],
                "name": row["name"],
                "status": row["status"],
                "priority": row["priority"],
                "created_at": row["created_at"],
                "display_rules": json.loads(row["display_rules"] or "{}"),
            }
        )

    def _row_to_playlist(self, row: aiosqlite.Row) -> Playlist:
        return Playlist.from_dict(
            {
                "id": row["playlist_id"],
                "website_id": row["website_id"],
                "name": row["name"],
                "campaign_order": json.loads(row["campaign_order"] or "[]"),
                "rules": json.loads(row["rules"] or "{}"),
                "is_active": bool(row["is_active"]),
            }
        )

    # -------------------------------------------------------------------------
    # Widget Configuration
    # -------------------------------------------------------------------------

    async def create_widget_config(self, config: WidgetConfig) -> WidgetConfig | None:
        cursor = await self.db.execute(
            """
            INSERT OR IGNORE INTO widget_configs (
                widget_id, website_id, business_type, allowed_event_sources,
                target_ratio, graduated, graduated_at, version, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
            """,
            (
                config.widget_id,
                config.website_id,
                config.business_type,
                json.dumps([o.value for o in config.allowed_event_sources]),
                config.target_ratio,
                int(config.graduated),
                _ts(config.graduated_at),
                time.time(),
            ),
        )
        await self.db.commit()
        if cursor.rowcount == 0:
            return None
        return await self.get_widget_config(config.widget_id)

    async def get_widget_config(self, widget_id: str) -> WidgetConfig | None:
        cursor = await self.db.execute(
            "SELECT * FROM widget_configs WHERE widget_id = ?", (widget_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return WidgetConfig.from_dict(
            {
                "widget_id": row["widget_id"],
                "website_id": row["website_id"],
                "business_type": row["business_type"],
                "allowed_event_sources": json.loads(row["allowed_event_sources"] or "[]"),
                "target_ratio": row["target_ratio"],
                "graduated": bool(row["graduated"]),
                "graduated_at": row["graduated_at"],
                "version": row["version"],
            }
        )

    async def compare_and_set_widget_config(
        self,
        config: WidgetConfig,
        expected_version: int,
    ) -> WidgetConfig | None:
        cursor = await self.db.execute(
            """
            UPDATE widget_configs SET
                website_id = ?,
                business_type = ?,
                allowed_event_sources = ?,
                target_ratio = ?,
                graduated = ?,
                graduated_at = ?,
                version = version + 1,
                updated_at = ?
            WHERE widget_id = ? AND version = ?
            """,
            (
                config.website_id,
                config.business_type,
                json.dumps([o.value for o in config.allowed_event_sources]),
                config.target_ratio,
                int(config.graduated),
                _ts(config.graduated_at),
                time.time(),
                config.widget_id,
                expected_version,
            ),
        )
        await self.db.commit()
        if cursor.rowcount == 0:
            logger.debug(
                "Widget config CAS conflict for %s (expected version %d)",
                config.widget_id,
                expected_version,
            )
            return None
        return await self.get_widget_config(config.widget_id)

    async def list_widget_ids(self) -> list[str]:
        cursor = await self.db.execute("SELECT widget_id FROM widget_configs ORDER BY widget_id")
        rows = await cursor.fetchall()
        return [row["widget_id"] for row in rows]

    # -------------------------------------------------------------------------
    # Admission Snapshot
    # -------------------------------------------------------------------------

    async def load_snapshot(self, widget_id: str) -> PoolSnapshot:
        widget = await self.get_widget_config(widget_id)
        if widget is None:
            raise WidgetNotFoundError(widget_id)

        cursor = await self.db.execute(
            "SELECT * FROM campaigns WHERE widget_id = ? ORDER BY campaign_id", (widget_id,)
        )
        campaigns = [self._row_to_campaign(row) for row in await cursor.fetchall()]

        playlists: list[Playlist] = []
        if widget.website_id is not None:
            cursor = await self.db.execute(
                "SELECT * FROM playlists WHERE website_id = ? ORDER BY playlist_id",
                (widget.website_id,),
            )
            playlists = [self._row_to_playlist(row) for row in await cursor.fetchall()]

        # Only approved, unexpired events can ever be selected
        cursor = await self.db.execute(
            """
            SELECT * FROM events
            WHERE widget_id = ? AND status = ?
              AND (expires_at IS NULL OR expires_at > ?)
            ORDER BY created_at DESC, event_id
            """,
            (widget_id, EventStatus.APPROVED.value, time.time()),
        )
        events = [self._row_to_event(row) for row in await cursor.fetchall()]

        return PoolSnapshot(
            widget=widget, campaigns=campaigns, playlists=playlists, events=events
        )

    # -------------------------------------------------------------------------
    # Graduation Leases
    # -------------------------------------------------------------------------

    async def try_acquire_lease(self, widget_id: str, holder: str, ttl_seconds: int) -> bool:
        """Acquire the lease if free, expired, or already ours."""
        now = time.time()
        cursor = await self.db.execute(
            """
            INSERT INTO graduation_leases (widget_id, holder, acquired_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(widget_id) DO UPDATE SET
                holder = excluded.holder,
                acquired_at = excluded.acquired_at,
                expires_at = excluded.expires_at
            WHERE graduation_leases.expires_at <= ?
               OR graduation_leases.holder = excluded.holder
            """,
            (widget_id, holder, now, now + ttl_seconds, now),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def release_lease(self, widget_id: str, holder: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM graduation_leases WHERE widget_id = ? AND holder = ?",
            (widget_id, holder),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def get_lease(self, widget_id: str) -> GraduationLease | None:
        cursor = await self.db.execute(
            "SELECT * FROM graduation_leases WHERE widget_id = ?", (widget_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return GraduationLease(
            widget_id=row["widget_id"],
            holder=row["holder"],
            acquired_at=row["acquired_at"],
            expires_at=row["expires_at"],
        )

    # -------------------------------------------------------------------------
    # Lifecycle Maintenance
    # -------------------------------------------------------------------------

    async def delete_quick_wins_before(self, widget_id: str, cutoff: datetime) -> int:
        cursor = await self.db.execute(
            "DELETE FROM events WHERE widget_id = ? AND origin = ? AND created_at < ?",
            (widget_id, EventOrigin.QUICK_WIN.value, cutoff.timestamp()),
        )
        await self.db.commit()
        return cursor.rowcount

    async def delete_flagged_before(self, widget_id: str, cutoff: datetime) -> int:
        cursor = await self.db.execute(
            "DELETE FROM events WHERE widget_id = ? AND status = ? AND created_at < ?",
            (widget_id, EventStatus.FLAGGED.value, cutoff.timestamp()),
        )
        await self.db.commit()
        return cursor.rowcount

    async def get_stats(self) -> StoreStats:
        """Get storage statistics for observability."""
        counts = {}
        for table in ("widget_configs", "campaigns", "playlists", "events"):
            cursor = await self.db.execute(f"SELECT COUNT(*) FROM {table}")
            row = await cursor.fetchone()
            counts[table] = row[0]

        cursor = await self.db.execute("SELECT status, COUNT(*) FROM events GROUP BY status")
        by_status = {row[0]: row[1] for row in await cursor.fetchall()}

        cursor = await self.db.execute(
            "SELECT COUNT(*) FROM graduation_leases WHERE expires_at > ?", (time.time(),)
        )
        row = await cursor.fetchone()
        active_leases = row[0]

        try:
            db_size = self.db_path.stat().st_size
        except OSError:
            db_size = 0

        return StoreStats(
            total_widgets=counts["widget_configs"],
            total_campaigns=counts["campaigns"],
            total_playlists=counts["playlists"],
            total_events=counts["events"],
            events_by_status=by_status,
            active_leases=active_leases,
            database_size_bytes=db_size,
        )
