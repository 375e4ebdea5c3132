"""
Poll cycle orchestrator.

Drives one polling pass:

    prune -> select stale batch -> fetch concurrently -> advance watermarks
          -> resolve interested scopes -> dispatch concurrently -> report

Failures local to one source or one (scope, source) delivery are logged and
counted; only storage failures while pruning, selecting or resolving scopes
end the cycle early. Every dispatch is awaited before the cycle returns so
that unsubscribe side effects never race with the next cycle.
"""

import asyncio
import time
import uuid
from collections.abc import Callable

import structlog

from src.feeds.base_adapter import FeedSourceAdapter
from src.feeds.schemas import FeedItem, FeedItems, FeedResult, FetchFailed
from src.installations.schemas import ChatScope, Installation
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.schemas import DeliveryOutcome, render_message
from src.observability.metrics import MetricsCollector, get_metrics
from src.observability.tracing import get_tracer, traced
from src.polling.config import PollingConfig
from src.polling.schemas import PollCycleResult
from src.subscriptions.registry import SubscriptionRegistry
from src.subscriptions.schemas import FeedSource, now_ms

logger = structlog.get_logger(__name__)


class PollCycleOrchestrator:
    """
    Runs poll cycles over the subscription registry.

    At most one cycle runs at a time per orchestrator; a second call waits
    for the first to finish. Manual scope refreshes are not serialized
    against cycles.

    Usage:
        orchestrator = PollCycleOrchestrator(registry, adapter, dispatcher)
        result = await orchestrator.run_poll_cycle()
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        adapter: FeedSourceAdapter,
        dispatcher: NotificationDispatcher,
        config: PollingConfig | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._registry = registry
        self._adapter = adapter
        self._dispatcher = dispatcher
        self._config = config or PollingConfig()
        self._metrics = metrics or get_metrics()
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._tracer = get_tracer(__name__)

    @property
    def config(self) -> PollingConfig:
        return self._config

    async def run_poll_cycle(self) -> PollCycleResult:
        """Run one full poll cycle and report what happened."""
        async with self._cycle_lock:
            cycle_id = uuid.uuid4().hex[:12]
            with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
                return await self._run_cycle()

    async def _run_cycle(self) -> PollCycleResult:
        started = time.monotonic()
        result = PollCycleResult()
        batch_size = self._config.batch_size

        with traced(self._tracer, "poll_cycle", {"batch_size": batch_size}):
            try:
                await self._registry.prune()
                sources = await self._registry.due_sources(batch_size)
            except Exception as e:
                logger.error("Poll cycle aborted during selection", error=str(e))
                result.success = False
                result.error = f"selection failed: {e}"
                return self._finish(result, started)

            logger.info("Poll cycle started", sources=len(sources))
            await self._process_sources(sources, result)

        return self._finish(result, started)

    async def refresh_scope(self, scope: ChatScope) -> PollCycleResult | None:
        """Check every source the scope follows, right now.

        New content is delivered to every scope subscribed to the source,
        not only the requesting one, since the shared watermark advances.

        Returns:
            Cycle counters, or None if the scope cannot be notified.
        """
        installation = await self._registry.get_installation(scope)
        if not self._registry.can_notify(installation):
            logger.info("Refresh skipped, scope not installed", scope=str(scope))
            return None

        started = time.monotonic()
        result = PollCycleResult()
        with traced(self._tracer, "refresh_scope", {"scope": str(scope)}):
            sources = await self._registry.list_sources(scope)
            await self._process_sources(sources, result)
        result.duration_seconds = time.monotonic() - started
        logger.info("Scope refreshed", scope=str(scope), **result.to_dict())
        return result

    # ── Cycle steps ─────────────────────────────────────────────

    async def _process_sources(
        self, sources: list[FeedSource], result: PollCycleResult
    ) -> None:
        if not sources:
            return

        fetch_time = self._clock()
        fetched = await asyncio.gather(*(self._fetch(s) for s in sources))
        result.sources_polled = len(sources)

        new_content: dict[str, tuple[FeedItem, ...]] = {}
        for source, outcome in zip(sources, fetched):
            if isinstance(outcome, FeedItems):
                await self._advance(source, fetch_time)
                if outcome.has_content:
                    new_content[source.source_id] = outcome.items
                    self._metrics.record_source("new_content")
                else:
                    self._metrics.record_source("no_content")
            else:
                result.sources_failed += 1
                self._metrics.record_source("failed")
                if await self._handle_fetch_failure(source, outcome):
                    result.sources_dropped += 1

        result.sources_with_content = len(new_content)
        if not new_content:
            return

        try:
            index = await self._registry.reverse_index(new_content.keys())
        except Exception as e:
            logger.error("Could not resolve subscribers", error=str(e))
            result.success = False
            result.error = f"scope resolution failed: {e}"
            return

        await self._dispatch_all(new_content, index, result)

    async def _fetch(self, source: FeedSource) -> FeedResult:
        with traced(self._tracer, "fetch_source", {"source_id": source.source_id}):
            try:
                return await self._adapter.fetch_since(source.source_id, source.last_updated)
            except Exception as e:
                logger.error(
                    "Feed adapter raised", source_id=source.source_id, error=str(e),
                )
                return FetchFailed(source.source_id, f"adapter error: {e}")

    async def _advance(self, source: FeedSource, fetch_time: int) -> None:
        try:
            await self._registry.advance_watermark(source.source_id, fetch_time)
        except Exception as e:
            logger.error(
                "Failed to advance watermark", source_id=source.source_id, error=str(e),
            )

    async def _handle_fetch_failure(self, source: FeedSource, failure: FetchFailed) -> bool:
        """Count a failed fetch. Returns True if the source was dropped."""
        logger.warning(
            "Feed fetch failed", source_id=source.source_id, reason=failure.reason,
        )
        try:
            failures = await self._registry.record_failure(source.source_id)
            limit = self._config.max_consecutive_failures
            if limit and failures >= limit:
                removed = await self._registry.drop_source(source.source_id)
                self._metrics.record_subscription_removed("source_failing", removed)
                return True
        except Exception as e:
            logger.error(
                "Failed to record fetch failure", source_id=source.source_id, error=str(e),
            )
        return False

    async def _dispatch_all(
        self,
        new_content: dict[str, tuple[FeedItem, ...]],
        index: dict[str, set[ChatScope]],
        result: PollCycleResult,
    ) -> None:
        installations: dict[str, Installation | None] = {}
        deliveries = []

        for source_id, items in new_content.items():
            message = render_message(items)
            for scope in sorted(index.get(source_id, set()), key=str):
                installation = await self._installation_for(scope, installations)
                if not self._registry.can_notify(installation):
                    logger.debug(
                        "Skipping scope without send permission",
                        scope=str(scope), source_id=source_id,
                    )
                    continue
                deliveries.append(
                    self._deliver(installation, scope, source_id, message)
                )

        if not deliveries:
            return

        outcomes = await asyncio.gather(*deliveries, return_exceptions=True)
        for outcome in outcomes:
            if outcome is DeliveryOutcome.DELIVERED:
                result.notifications_sent += 1
            elif outcome is DeliveryOutcome.AUTHORIZATION_REVOKED:
                result.subscriptions_revoked += 1
            else:
                if isinstance(outcome, BaseException):
                    logger.error("Dispatch raised", error=str(outcome))
                result.notifications_failed += 1

    async def _installation_for(
        self,
        scope: ChatScope,
        cache: dict[str, Installation | None],
    ) -> Installation | None:
        key = scope.location.key
        if key not in cache:
            try:
                cache[key] = await self._registry.get_installation(scope)
            except Exception as e:
                logger.error(
                    "Installation lookup failed", location=str(scope.location), error=str(e),
                )
                cache[key] = None
        return cache[key]

    async def _deliver(
        self,
        installation: Installation,
        scope: ChatScope,
        source_id: str,
        message: str,
    ) -> DeliveryOutcome:
        with traced(self._tracer, "deliver", {"source_id": source_id, "scope": str(scope)}):
            return await self._dispatcher.deliver(installation, scope, source_id, message)

    def _finish(self, result: PollCycleResult, started: float) -> PollCycleResult:
        result.duration_seconds = time.monotonic() - started
        self._metrics.record_cycle(result.success, result.duration_seconds, time.time())
        log = logger.info if result.success else logger.error
        log("Poll cycle finished", **result.to_dict())
        return result
