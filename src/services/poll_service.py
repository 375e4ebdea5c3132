"""
Poll service - runs poll cycles on a fixed interval.

Runs continuously, triggering one poll cycle, waiting the configured
interval after it finishes, and repeating until stopped. A cycle that is
in progress is always allowed to finish; stop() takes effect between
cycles.

Features:
- One active cycle at a time
- Graceful shutdown
- Cycle metrics and health reporting
"""

import asyncio
import time
from typing import Any

import structlog

from src.polling.schemas import PollCycleResult
from src.services.notifier_service import NotifierService

logger = structlog.get_logger(__name__)


class PollService:
    """
    Scheduler that drives the notifier's poll cycle.

    Usage:
        service = PollService(notifier, interval_seconds=1800)
        await service.start()  # Runs until stopped
    """

    def __init__(
        self,
        notifier: NotifierService,
        interval_seconds: float | None = None,
    ):
        """
        Initialize poll service.

        Args:
            notifier: Service whose poll cycle is run
            interval_seconds: Pause between cycles (defaults to polling config)
        """
        self._notifier = notifier
        self._interval = (
            interval_seconds
            if interval_seconds is not None
            else notifier.orchestrator.config.interval_seconds
        )
        self._running = False
        self._stop_event = asyncio.Event()
        self._cycles_run = 0
        self._last_result: PollCycleResult | None = None
        self._last_finished_at: float | None = None

        logger.info("Poll service initialized", interval=self._interval)

    async def start(self) -> None:
        """
        Start the poll loop.

        Runs until stop() is called or the task is cancelled.
        """
        self._running = True
        self._stop_event.clear()
        logger.info("Starting poll service")

        try:
            while self._running:
                await self.run_once()

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("Poll service cancelled")
        finally:
            self._running = False
            logger.info("Poll service stopped", cycles=self._cycles_run)

    async def stop(self) -> None:
        """Stop the poll loop after the current cycle."""
        logger.info("Stopping poll service")
        self._running = False
        self._stop_event.set()

    async def run_once(self) -> PollCycleResult:
        """
        Run one poll cycle.

        Unexpected errors are logged and reported as a failed cycle so the
        loop keeps going.
        """
        try:
            result = await self._notifier.run_poll_cycle()
        except Exception as e:
            logger.error("Poll cycle raised", error=str(e))
            result = PollCycleResult(success=False, error=str(e))

        self._cycles_run += 1
        self._last_result = result
        self._last_finished_at = time.time()
        return result

    @property
    def is_running(self) -> bool:
        """Check if service is running."""
        return self._running

    async def health_check(self) -> dict[str, Any]:
        """
        Check health of the poll service.

        Returns:
            Dictionary with health status
        """
        notifier_health = await self._notifier.health_check()
        last = self._last_result

        return {
            "running": self._running,
            "cycles_run": self._cycles_run,
            "last_cycle_success": last.success if last else None,
            "last_cycle_finished_at": self._last_finished_at,
            **notifier_health,
        }
