"""Storage layer: asyncpg connection management."""

from src.storage.database import Database, affected_rows

__all__ = ["Database", "affected_rows"]
