"""
Database Migration Runner for the Event Store.

Applies versioned SQL migrations on startup. Migration files live next to
this module in ``migrations/`` and are named ``NNN_description.sql``.
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_FILENAME_RE = re.compile(r"^(?P<version>\d+)_(?P<description>[\w-]+)\.sql$")


class MigrationRunner:
    """
    Apply pending migrations in version order.

    Applied versions are tracked in the schema_migrations table, so running
    the same migrations twice is a no-op.
    """

    def __init__(self, db: aiosqlite.Connection, migrations_dir: Path | None = None):
        """
        Initialize the migration runner.

        Args:
            db: Open database connection
            migrations_dir: Override the directory scanned for .sql files
        """
        self.db = db
        self.migrations_dir = migrations_dir or MIGRATIONS_DIR

    def available(self) -> list[tuple[int, str, Path]]:
        """
        Migration files found on disk as (version, description, path).

        Files not matching ``NNN_description.sql`` are skipped with a warning.
        """
        found = []
        for path in sorted(self.migrations_dir.glob("*.sql")):
            match = _FILENAME_RE.match(path.name)
            if match is None:
                logger.warning("Skipping invalid migration file: %s", path.name)
                continue
            description = match.group("description").replace("_", " ")
            found.append((int(match.group("version")), description, path))
        return sorted(found, key=lambda item: item[0])

    async def current_version(self) -> int:
        """Latest applied version, or 0 on a fresh database."""
        await self._ensure_migrations_table()
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_migrations")
        row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    async def run_migrations(self) -> int:
        """
        Apply pending migrations.

        Returns:
            Number of migrations applied
        """
        current = await self.current_version()
        applied = 0

        for version, description, path in self.available():
            if version <= current:
                continue
            await self._apply(version, description, path)
            applied += 1

        if applied:
            logger.info("Applied %d event store migration(s)", applied)
        return applied

    async def _ensure_migrations_table(self) -> None:
        await self.db.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL,
                description TEXT
            )
            """
        )
        await self.db.commit()

    async def _apply(self, version: int, description: str, path: Path) -> None:
        logger.info("Applying migration %03d: %s", version, description)
        await self.db.executescript(path.read_text())
        await self.db.execute(
            "INSERT INTO schema_migrations (version, applied_at, description) VALUES (?, ?, ?)",
            (version, int(time.time()), description),
        )
        await self.db.commit()
