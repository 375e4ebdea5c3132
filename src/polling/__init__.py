"""Polling: periodic fetch of stale sources and fan-out of new content.

Components:
- PollCycleOrchestrator: Runs one cycle (or one scope refresh)
- PollCycleResult: Counters reported by a cycle
- PollingConfig: ``POLLING_*`` settings
"""

from src.polling.config import PollingConfig
from src.polling.orchestrator import PollCycleOrchestrator
from src.polling.schemas import PollCycleResult

__all__ = [
    "PollCycleOrchestrator",
    "PollCycleResult",
    "PollingConfig",
]
