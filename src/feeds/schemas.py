"""Result types returned by feed adapters.

A fetch either produces ``FeedItems`` (possibly empty: checked, nothing new)
or ``FetchFailed``. Callers branch on the type; the adapter never raises for
network or feed errors.
"""

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class FeedItem:
    """Summary of one published item (a video)."""

    title: str
    link: str
    published_at: datetime

    @property
    def published_ms(self) -> int:
        """Publish time in epoch milliseconds, the unit watermarks use."""
        published = self.published_at
        if published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)
        return int(published.timestamp() * 1000)

    def to_markdown(self) -> str:
        return f"[{self.title}]({self.link})"


@dataclass(frozen=True)
class FeedItems:
    """Successful fetch: items newer than the watermark, newest first."""

    source_id: str
    items: tuple[FeedItem, ...] = ()

    @property
    def has_content(self) -> bool:
        return bool(self.items)


@dataclass(frozen=True)
class FetchFailed:
    """Failed fetch. Transient and permanent failures are not distinguished."""

    source_id: str
    reason: str


@dataclass(frozen=True)
class FeedSourceInfo:
    """Descriptive data for a source, looked up at subscribe time."""

    source_id: str
    name: str | None = None


FeedResult = FeedItems | FetchFailed
LookupResult = FeedSourceInfo | FetchFailed
