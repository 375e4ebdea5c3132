"""Data models for the subscription registry.

Maps to the ``feed_sources`` and ``subscription_links`` tables. A feed source
row exists only while at least one link references it; the watermark
(``last_updated``, epoch milliseconds) only moves forward.
"""

import enum
import time
from dataclasses import dataclass
from datetime import datetime


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class FeedSource:
    """A polled feed source (YouTube channel).

    Attributes:
        source_id: External channel id.
        name: Human-readable channel name, best effort.
        last_updated: Watermark in epoch milliseconds (0 = since epoch).
        failure_count: Consecutive failed fetches since the last success.
        created_at: When the record was first created.
    """

    source_id: str
    name: str | None = None
    last_updated: int = 0
    failure_count: int = 0
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.source_id


class SubscribeResult(str, enum.Enum):
    """Outcome of a subscribe request."""

    SUBSCRIBED = "subscribed"
    ALREADY_SUBSCRIBED = "already_subscribed"
    NOT_INSTALLED = "not_installed"
    SOURCE_UNRESOLVABLE = "source_unresolvable"
    INVALID_SOURCE = "invalid_source"

    @property
    def ok(self) -> bool:
        return self in (SubscribeResult.SUBSCRIBED, SubscribeResult.ALREADY_SUBSCRIBED)
