"""Database repository for feed sources and subscription links.

Every public mutation is one logical operation executed in a single
transaction, touching only the rows it needs. Removing links always prunes
the sources they referenced in the same transaction, so no orphaned source
survives a committed unsubscribe or uninstall.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from src.storage.database import Database, affected_rows
from src.subscriptions.schemas import FeedSource

logger = logging.getLogger(__name__)

INSTALLATION_FK = "subscription_links_location_fkey"

# Requires the installations table (src/installations/repository.py).
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS feed_sources (
    source_id     TEXT PRIMARY KEY,
    name          TEXT,
    last_updated  BIGINT NOT NULL DEFAULT 0,
    failure_count INTEGER NOT NULL DEFAULT 0,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_feed_sources_last_updated
    ON feed_sources(last_updated, source_id);

CREATE TABLE IF NOT EXISTS subscription_links (
    location   TEXT NOT NULL,
    scope      TEXT NOT NULL,
    source_id  TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (scope, source_id),
    CONSTRAINT subscription_links_location_fkey FOREIGN KEY (location)
        REFERENCES installations(location) ON DELETE CASCADE,
    CONSTRAINT subscription_links_source_fkey FOREIGN KEY (source_id)
        REFERENCES feed_sources(source_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_subscription_links_source
    ON subscription_links(source_id);
CREATE INDEX IF NOT EXISTS idx_subscription_links_location
    ON subscription_links(location);
"""

_INSERT_SOURCE_SQL = """
INSERT INTO feed_sources (source_id, name, last_updated)
VALUES ($1, $2, $3)
ON CONFLICT (source_id) DO UPDATE SET
    name = COALESCE(EXCLUDED.name, feed_sources.name)
"""

_INSERT_LINK_SQL = """
INSERT INTO subscription_links (location, scope, source_id)
VALUES ($1, $2, $3)
ON CONFLICT (scope, source_id) DO NOTHING
RETURNING source_id
"""

_PRUNE_SQL = """
DELETE FROM feed_sources fs
WHERE NOT EXISTS (
    SELECT 1 FROM subscription_links sl WHERE sl.source_id = fs.source_id
)
"""

_PRUNE_SOME_SQL = _PRUNE_SQL + "AND fs.source_id = ANY($1::text[])\n"

_DUE_SOURCES_SQL = """
SELECT fs.* FROM feed_sources fs
WHERE EXISTS (
    SELECT 1 FROM subscription_links sl WHERE sl.source_id = fs.source_id
)
ORDER BY fs.last_updated ASC, fs.source_id ASC
LIMIT $1
"""

_LIST_FOR_SCOPE_SQL = """
SELECT fs.* FROM subscription_links sl
JOIN feed_sources fs ON fs.source_id = sl.source_id
WHERE sl.scope = $1
ORDER BY fs.source_id
"""

_ADVANCE_WATERMARK_SQL = """
UPDATE feed_sources SET last_updated = $2, failure_count = 0
WHERE source_id = $1 AND last_updated <= $2
"""


def _record_to_source(record: Any) -> FeedSource:
    """Convert an asyncpg Record to a FeedSource."""
    return FeedSource(
        source_id=record["source_id"],
        name=record["name"],
        last_updated=record["last_updated"] or 0,
        failure_count=record["failure_count"] or 0,
        created_at=record.get("created_at"),
    )


class SubscriptionRepository:
    """Row-level operations on ``feed_sources`` and ``subscription_links``.

    Methods that take ``conn`` join a transaction opened by the caller;
    without it they open their own.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        async with self._db.transaction() as conn:
            yield conn

    @asynccontextmanager
    async def _tx(
        self, conn: asyncpg.Connection | None
    ) -> AsyncIterator[asyncpg.Connection]:
        if conn is not None:
            yield conn
        else:
            async with self._db.transaction() as tx:
                yield tx

    async def create_tables(self) -> None:
        """Create registry tables and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Subscription tables ensured")

    # ── Reads ───────────────────────────────────────────────────

    async def get_source(self, source_id: str) -> FeedSource | None:
        row = await self._db.fetchrow(
            "SELECT * FROM feed_sources WHERE source_id = $1", source_id,
        )
        return _record_to_source(row) if row else None

    async def list_for_scope(self, scope_key: str) -> list[FeedSource]:
        """Sources linked from a scope, ordered by source id."""
        rows = await self._db.fetch(_LIST_FOR_SCOPE_SQL, scope_key)
        return [_record_to_source(r) for r in rows]

    async def due_sources(self, limit: int) -> list[FeedSource]:
        """Stalest linked sources first, ties broken by source id."""
        rows = await self._db.fetch(_DUE_SOURCES_SQL, limit)
        return [_record_to_source(r) for r in rows]

    async def links_for_sources(self, source_ids: list[str]) -> list[tuple[str, str]]:
        """(scope_key, source_id) pairs for the given sources."""
        if not source_ids:
            return []
        rows = await self._db.fetch(
            """
            SELECT scope, source_id FROM subscription_links
            WHERE source_id = ANY($1::text[])
            ORDER BY source_id, scope
            """,
            list(source_ids),
        )
        return [(r["scope"], r["source_id"]) for r in rows]

    # ── Writes ──────────────────────────────────────────────────

    async def add_link(
        self,
        location_key: str,
        scope_key: str,
        source_id: str,
        name: str | None,
        created_ms: int,
    ) -> bool:
        """Create the source if absent and link it to the scope.

        Returns True if a new link was created, False if it already existed.
        Raises asyncpg.ForeignKeyViolationError if the installation is gone.
        """
        async with self._db.transaction() as conn:
            await conn.execute(_INSERT_SOURCE_SQL, source_id, name, created_ms)
            created = await conn.fetchval(
                _INSERT_LINK_SQL, location_key, scope_key, source_id,
            )
        return created is not None

    async def remove_link(self, scope_key: str, source_id: str) -> bool:
        """Delete one link and prune its source if unreferenced."""
        async with self._db.transaction() as conn:
            status = await conn.execute(
                "DELETE FROM subscription_links WHERE scope = $1 AND source_id = $2",
                scope_key, source_id,
            )
            await conn.execute(_PRUNE_SOME_SQL, [source_id])
        return affected_rows(status) > 0

    async def remove_scope(self, scope_key: str) -> int:
        """Delete every link of a scope. Returns the number of links removed."""
        async with self._db.transaction() as conn:
            rows = await conn.fetch(
                "DELETE FROM subscription_links WHERE scope = $1 RETURNING source_id",
                scope_key,
            )
            source_ids = sorted({r["source_id"] for r in rows})
            if source_ids:
                await conn.execute(_PRUNE_SOME_SQL, source_ids)
        return len(rows)

    async def remove_location(
        self,
        location_key: str,
        conn: asyncpg.Connection | None = None,
    ) -> int:
        """Delete every link under an installation location."""
        async with self._tx(conn) as tx:
            rows = await tx.fetch(
                "DELETE FROM subscription_links WHERE location = $1 RETURNING source_id",
                location_key,
            )
            source_ids = sorted({r["source_id"] for r in rows})
            if source_ids:
                await tx.execute(_PRUNE_SOME_SQL, source_ids)
        return len(rows)

    async def delete_source(self, source_id: str) -> int:
        """Delete a source and all links to it. Returns links removed."""
        async with self._db.transaction() as conn:
            status = await conn.execute(
                "DELETE FROM subscription_links WHERE source_id = $1", source_id,
            )
            await conn.execute(
                "DELETE FROM feed_sources WHERE source_id = $1", source_id,
            )
        return affected_rows(status)

    async def prune_orphans(self, conn: asyncpg.Connection | None = None) -> int:
        """Delete sources with no links. Returns the number removed."""
        if conn is not None:
            status = await conn.execute(_PRUNE_SQL)
        else:
            status = await self._db.execute(_PRUNE_SQL)
        return affected_rows(status)

    async def advance_watermark(self, source_id: str, timestamp_ms: int) -> bool:
        """Move the watermark forward and reset the failure counter.

        A timestamp earlier than the stored watermark is ignored.
        """
        status = await self._db.execute(_ADVANCE_WATERMARK_SQL, source_id, timestamp_ms)
        return affected_rows(status) > 0

    async def increment_failure(self, source_id: str) -> int:
        """Bump the consecutive-failure counter. Returns the new value."""
        count = await self._db.fetchval(
            """
            UPDATE feed_sources SET failure_count = failure_count + 1
            WHERE source_id = $1
            RETURNING failure_count
            """,
            source_id,
        )
        return count or 0
