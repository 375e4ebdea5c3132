"""Subscription registry: which scopes follow which feed sources.

The registry is the only writer of subscription links and feed source
records. It reads installations through the installation directory and
delegates install/uninstall writes to it. Interactive commands and the poll
cycle both go through these operations, so link idempotence, orphan pruning
and the monotonic watermark hold regardless of caller.
"""

import logging
from collections.abc import Callable, Iterable

import asyncpg

from src.feeds.base_adapter import FeedSourceAdapter
from src.feeds.schemas import FetchFailed
from src.installations.repository import InstallationRepository
from src.installations.schemas import (
    TEXT_PERMISSION,
    ChatScope,
    Installation,
    InstallationLocation,
    ScopeParseError,
)
from src.storage.database import Database
from src.subscriptions.repository import INSTALLATION_FK, SubscriptionRepository
from src.subscriptions.schemas import FeedSource, SubscribeResult, now_ms

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Authoritative mapping of (scope, source) links and source watermarks.

    Usage:
        registry = SubscriptionRegistry.from_database(db, YouTubeFeedAdapter())
        result = await registry.subscribe(scope, "UC...")
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        installations: InstallationRepository,
        adapter: FeedSourceAdapter,
        required_permission: str = TEXT_PERMISSION,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._repo = repository
        self._installations = installations
        self._adapter = adapter
        self._required_permission = required_permission
        self._clock = clock

    @classmethod
    def from_database(
        cls,
        database: Database,
        adapter: FeedSourceAdapter,
        required_permission: str = TEXT_PERMISSION,
    ) -> "SubscriptionRegistry":
        return cls(
            SubscriptionRepository(database),
            InstallationRepository(database),
            adapter,
            required_permission=required_permission,
        )

    @property
    def repository(self) -> SubscriptionRepository:
        """Access the underlying repository for direct DB operations."""
        return self._repo

    @property
    def installations(self) -> InstallationRepository:
        return self._installations

    # ── Installations ───────────────────────────────────────────

    async def get_installation(self, scope: ChatScope) -> Installation | None:
        """Installation covering a scope, or None if not installed."""
        return await self._installations.get(scope.location)

    def can_notify(self, installation: Installation | None) -> bool:
        return installation is not None and installation.can_send(self._required_permission)

    async def on_install(
        self, location: InstallationLocation, installation: Installation
    ) -> None:
        """Record an install or re-install event."""
        if installation.location != location:
            raise ValueError(
                f"Installation for {installation.location} saved at {location}"
            )
        await self._installations.upsert(installation)

    async def on_uninstall(self, location: InstallationLocation) -> int:
        """Remove an installation and every link under it.

        Returns the number of links removed.
        """
        async with self._repo.transaction() as conn:
            # Links first: the FK cascade would remove them before pruning.
            removed = await self._repo.remove_location(location.key, conn=conn)
            await self._installations.delete(location, conn=conn)
        logger.info("Uninstalled %s, removed %d subscriptions", location, removed)
        return removed

    # ── Links ───────────────────────────────────────────────────

    async def subscribe(self, scope: ChatScope, source_id: str) -> SubscribeResult:
        """Link a scope to a source, creating the source record if needed."""
        source_id = (source_id or "").strip()
        if not self._adapter.is_valid_source_id(source_id):
            logger.info("Rejected invalid source id %r for %s", source_id, scope)
            return SubscribeResult.INVALID_SOURCE

        installation = await self.get_installation(scope)
        if not self.can_notify(installation):
            return SubscribeResult.NOT_INSTALLED

        name = None
        existing = await self._repo.get_source(source_id)
        if existing is None:
            info = await self._adapter.lookup(source_id)
            if isinstance(info, FetchFailed):
                logger.info(
                    "Could not resolve source %s for %s: %s",
                    source_id, scope, info.reason,
                )
                return SubscribeResult.SOURCE_UNRESOLVABLE
            name = info.name

        try:
            created = await self._repo.add_link(
                scope.location.key, scope.key, source_id, name, self._clock(),
            )
        except asyncpg.ForeignKeyViolationError as e:
            if getattr(e, "constraint_name", None) != INSTALLATION_FK:
                raise
            logger.info("Installation for %s vanished during subscribe", scope)
            return SubscribeResult.NOT_INSTALLED

        if created:
            logger.info("Subscribed %s to %s", scope, source_id)
            return SubscribeResult.SUBSCRIBED
        return SubscribeResult.ALREADY_SUBSCRIBED

    async def unsubscribe(self, scope: ChatScope, source_id: str) -> bool:
        """Remove a link. Missing links are a successful no-op.

        Returns True if a link was removed.
        """
        removed = await self._repo.remove_link(scope.key, source_id)
        if removed:
            logger.info("Unsubscribed %s from %s", scope, source_id)
        return removed

    async def unsubscribe_all(self, scope: ChatScope) -> int:
        """Remove every link of a scope. Returns the number removed."""
        removed = await self._repo.remove_scope(scope.key)
        logger.info("Unsubscribed %s from %d sources", scope, removed)
        return removed

    async def list_sources(self, scope: ChatScope) -> list[FeedSource]:
        """Sources the scope is subscribed to, ordered by source id."""
        return await self._repo.list_for_scope(scope.key)

    # ── Polling support ─────────────────────────────────────────

    async def prune(self) -> int:
        """Delete orphaned feed sources."""
        removed = await self._repo.prune_orphans()
        if removed:
            logger.info("Pruned %d orphaned sources", removed)
        return removed

    async def due_sources(self, limit: int) -> list[FeedSource]:
        """Up to ``limit`` sources, stalest watermark first."""
        if limit <= 0:
            return []
        return await self._repo.due_sources(limit)

    async def reverse_index(
        self, source_ids: Iterable[str]
    ) -> dict[str, set[ChatScope]]:
        """Build source_id -> subscribed scopes from the current links."""
        wanted = sorted(set(source_ids))
        index: dict[str, set[ChatScope]] = {sid: set() for sid in wanted}
        for scope_key, source_id in await self._repo.links_for_sources(wanted):
            try:
                scope = ChatScope.from_key(scope_key)
            except ScopeParseError as e:
                logger.warning("Skipping unreadable scope key for %s: %s", source_id, e)
                continue
            index.setdefault(source_id, set()).add(scope)
        return index

    async def scopes_interested_in(self, source_id: str) -> set[ChatScope]:
        index = await self.reverse_index([source_id])
        return index.get(source_id, set())

    async def advance_watermark(self, source_id: str, timestamp_ms: int) -> bool:
        """Advance a watermark; earlier timestamps are ignored."""
        return await self._repo.advance_watermark(source_id, timestamp_ms)

    async def record_failure(self, source_id: str) -> int:
        return await self._repo.increment_failure(source_id)

    async def drop_source(self, source_id: str) -> int:
        """Remove a source and unsubscribe every scope from it."""
        removed = await self._repo.delete_source(source_id)
        logger.warning("Dropped source %s and %d subscriptions", source_id, removed)
        return removed
