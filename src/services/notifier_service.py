"""
Notifier service - the external interface of the notifier.

Wires the registry, feed adapter, dispatcher and orchestrator around one
database and exposes the operations chat commands and lifecycle events use:

    subscribe / unsubscribe / unsubscribe_all / list / most_recent
    on_install / on_uninstall
    run_poll_cycle / refresh

Every caller goes through the same registry operations, so watermarks stay
monotonic and links stay idempotent whether a change comes from a command,
a lifecycle event or a poll cycle.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.feeds.base_adapter import FeedSourceAdapter
from src.feeds.config import FeedConfig
from src.feeds.youtube_adapter import YouTubeFeedAdapter
from src.installations.schemas import ChatScope, Installation, InstallationLocation
from src.notifications.config import NotificationConfig
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.schemas import render_message
from src.notifications.transport import HttpGatewayTransport, NotificationTransport
from src.observability.metrics import MetricsCollector, get_metrics
from src.polling.config import PollingConfig
from src.polling.orchestrator import PollCycleOrchestrator
from src.polling.schemas import PollCycleResult
from src.storage.database import Database
from src.subscriptions.registry import SubscriptionRegistry
from src.subscriptions.schemas import FeedSource, SubscribeResult

logger = structlog.get_logger(__name__)


class NotifierService:
    """
    Facade over the subscription registry and the poll cycle.

    Usage:
        async with NotifierService.create(db) as service:
            result = await service.subscribe(scope, "UC...")
            cycle = await service.run_poll_cycle()
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        adapter: FeedSourceAdapter,
        orchestrator: PollCycleOrchestrator,
        database: Database | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._registry = registry
        self._adapter = adapter
        self._orchestrator = orchestrator
        self._database = database
        self._http_client = http_client

    @classmethod
    def create(
        cls,
        database: Database,
        polling_config: PollingConfig | None = None,
        feed_config: FeedConfig | None = None,
        notification_config: NotificationConfig | None = None,
        transport: NotificationTransport | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "NotifierService":
        """
        Build a service with the YouTube adapter and the HTTP gateway transport.

        One ``httpx.AsyncClient`` is shared by the adapter and the transport
        and closed by ``close()``.

        Args:
            database: Database the registry stores links and installations in
            polling_config: Batch size and failure threshold
            feed_config: Feed URL and timeouts
            notification_config: Gateway path, token and required permission
            transport: Override the gateway transport
            metrics: Override the metrics collector
        """
        notification_config = notification_config or NotificationConfig()
        metrics = metrics or get_metrics()
        client = httpx.AsyncClient()

        adapter = YouTubeFeedAdapter(config=feed_config, client=client)
        registry = SubscriptionRegistry.from_database(
            database, adapter, notification_config.required_permission,
        )
        transport = transport or HttpGatewayTransport(
            config=notification_config, client=client,
        )
        dispatcher = NotificationDispatcher(transport, registry, metrics=metrics)
        orchestrator = PollCycleOrchestrator(
            registry, adapter, dispatcher, config=polling_config, metrics=metrics,
        )
        return cls(
            registry, adapter, orchestrator, database=database, http_client=client,
        )

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def orchestrator(self) -> PollCycleOrchestrator:
        return self._orchestrator

    async def initialize(self) -> None:
        """Create the tables if needed. Installations first, links reference them."""
        await self._registry.installations.create_table()
        await self._registry.repository.create_tables()
        logger.info("Notifier schema ready")

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "NotifierService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── Commands ────────────────────────────────────────────────

    async def subscribe(self, scope: ChatScope, source_id: str) -> SubscribeResult:
        result = await self._registry.subscribe(scope, source_id)
        logger.info(
            "Subscribe command", scope=str(scope), source_id=source_id, result=result.value,
        )
        return result

    async def unsubscribe(self, scope: ChatScope, source_id: str) -> bool:
        return await self._registry.unsubscribe(scope, source_id)

    async def unsubscribe_all(self, scope: ChatScope) -> int:
        return await self._registry.unsubscribe_all(scope)

    async def list(self, scope: ChatScope) -> list[FeedSource]:
        return await self._registry.list_sources(scope)

    async def most_recent(self, scope: ChatScope, source_id: str) -> str | None:
        """
        Render the newest item of a source, without touching any state.

        The scope does not need to be subscribed to the source.

        Returns:
            The rendered message, or None for an invalid id, a failed fetch
            or an empty feed.
        """
        source_id = (source_id or "").strip()
        if not self._adapter.is_valid_source_id(source_id):
            return None
        item = await self._adapter.most_recent(source_id)
        if item is None:
            logger.info("No recent content", scope=str(scope), source_id=source_id)
            return None
        return render_message([item])

    # ── Lifecycle events ────────────────────────────────────────

    async def on_install(
        self, location: InstallationLocation, installation: Installation
    ) -> None:
        await self._registry.on_install(location, installation)

    async def on_uninstall(self, location: InstallationLocation) -> int:
        return await self._registry.on_uninstall(location)

    # ── Polling ─────────────────────────────────────────────────

    async def run_poll_cycle(self) -> PollCycleResult:
        return await self._orchestrator.run_poll_cycle()

    async def refresh(self, scope: ChatScope) -> PollCycleResult | None:
        return await self._orchestrator.refresh_scope(scope)

    async def health_check(self) -> dict[str, bool]:
        """Report storage health."""
        healthy = True
        if self._database is not None:
            healthy = await self._database.health_check()
        return {"database": healthy}
