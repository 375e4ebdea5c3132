"""Result of a poll cycle, reported to the scheduler and CLI."""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class PollCycleResult:
    """Counters for one poll cycle (or one manual refresh).

    Attributes:
        success: False only when the cycle could not run to completion
            (storage failure while pruning, selecting or resolving scopes).
        sources_polled: Sources fetched this cycle.
        sources_failed: Fetches that returned FetchFailed.
        sources_with_content: Successful fetches that returned new items.
        sources_dropped: Sources removed by the consecutive-failure limit.
        notifications_sent: Deliveries that succeeded.
        notifications_failed: Deliveries that failed.
        subscriptions_revoked: Deliveries rejected for revoked authorization.
        error: Description of the failure that aborted the cycle.
        duration_seconds: Wall time of the cycle.
    """

    success: bool = True
    sources_polled: int = 0
    sources_failed: int = 0
    sources_with_content: int = 0
    sources_dropped: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    subscriptions_revoked: int = 0
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
