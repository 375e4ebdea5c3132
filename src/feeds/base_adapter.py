"""
Base interface for feed source adapters.

An adapter wraps one external content provider. Each call is a single
best-effort network read: no retries, no backoff and no access to the
subscription registry. Failures are reported as ``FetchFailed`` values so
that one unreachable feed never affects another.
"""

from abc import ABC, abstractmethod

from src.feeds.schemas import FeedItem, FeedItems, FeedResult, LookupResult


class FeedSourceAdapter(ABC):
    """Abstract base class for feed source adapters.

    Subclasses must implement:
        - is_valid_source_id(): provider-specific id format check
        - fetch_since(): items newer than a watermark
        - lookup(): display data for a source
    """

    @abstractmethod
    def is_valid_source_id(self, source_id: str) -> bool:
        """Check the provider's format constraints for a source id."""

    @abstractmethod
    async def fetch_since(self, source_id: str, watermark_ms: int) -> FeedResult:
        """
        Fetch items published after ``watermark_ms``.

        Args:
            source_id: Provider source identifier
            watermark_ms: Epoch milliseconds; 0 means since epoch

        Returns:
            FeedItems (newest first, possibly empty) or FetchFailed
        """

    @abstractmethod
    async def lookup(self, source_id: str) -> LookupResult:
        """Resolve descriptive data (display name) for a source."""

    async def most_recent(self, source_id: str) -> FeedItem | None:
        """Return the newest item of a source, ignoring any watermark."""
        result = await self.fetch_since(source_id, 0)
        if isinstance(result, FeedItems) and result.items:
            return result.items[0]
        return None
