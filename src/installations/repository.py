"""Database repository for the installations table.

This is the installation directory: the only writer of installation rows.
Install and uninstall events are applied here; everything else reads.
"""

import json
import logging
from typing import Any

import asyncpg

from src.installations.schemas import Installation, InstallationLocation, Permissions
from src.storage.database import Database, affected_rows

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS installations (
    location               TEXT PRIMARY KEY,
    api_gateway            TEXT NOT NULL,
    autonomous_permissions JSONB NOT NULL DEFAULT '{}',
    command_permissions    JSONB NOT NULL DEFAULT '{}',
    created_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at             TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_UPSERT_SQL = """
INSERT INTO installations (location, api_gateway, autonomous_permissions, command_permissions)
VALUES ($1, $2, $3, $4)
ON CONFLICT (location) DO UPDATE SET
    api_gateway = EXCLUDED.api_gateway,
    autonomous_permissions = EXCLUDED.autonomous_permissions,
    command_permissions = EXCLUDED.command_permissions,
    updated_at = NOW()
"""


def _load_json(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _record_to_installation(record: Any) -> Installation:
    """Convert an asyncpg Record to an Installation."""
    return Installation(
        location=InstallationLocation.from_key(record["location"]),
        api_gateway=record["api_gateway"],
        autonomous_permissions=Permissions.from_dict(
            _load_json(record["autonomous_permissions"])
        ),
        command_permissions=Permissions.from_dict(
            _load_json(record["command_permissions"])
        ),
    )


class InstallationRepository:
    """CRUD operations for the installations table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the installations table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Installations table ensured")

    async def get(
        self,
        location: InstallationLocation,
        conn: asyncpg.Connection | None = None,
    ) -> Installation | None:
        """Fetch the installation at a location, or None if not installed."""
        sql = "SELECT * FROM installations WHERE location = $1"
        if conn is not None:
            row = await conn.fetchrow(sql, location.key)
        else:
            row = await self._db.fetchrow(sql, location.key)
        return _record_to_installation(row) if row else None

    async def upsert(self, installation: Installation) -> None:
        """Insert an installation or replace the existing one wholesale."""
        await self._db.execute(
            _UPSERT_SQL,
            installation.location.key,
            installation.api_gateway,
            json.dumps(installation.autonomous_permissions.to_dict()),
            json.dumps(installation.command_permissions.to_dict()),
        )
        logger.info("Installation saved at %s", installation.location)

    async def delete(
        self,
        location: InstallationLocation,
        conn: asyncpg.Connection | None = None,
    ) -> bool:
        """Delete the installation at a location. Returns True if a row was removed."""
        sql = "DELETE FROM installations WHERE location = $1"
        if conn is not None:
            status = await conn.execute(sql, location.key)
        else:
            status = await self._db.execute(sql, location.key)
        return affected_rows(status) > 0
