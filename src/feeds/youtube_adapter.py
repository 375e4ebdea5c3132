"""
YouTube channel feed adapter.

Reads the public per-channel Atom feed
(``https://www.youtube.com/feeds/videos.xml?channel_id=...``), which lists
the channel's latest uploads. Handles:
- Channel id validation (``UC`` + 22 url-safe base64 characters)
- Feed parsing with feedparser
- Filtering entries newer than a watermark

No API key is needed. The feed only carries the most recent uploads, so a
source that is not polled for a long time can miss items; that is inherent
to the feed and not compensated here.
"""

import calendar
import logging
import re
from datetime import datetime, timezone
from typing import Any

import feedparser
import httpx

from src.feeds.base_adapter import FeedSourceAdapter
from src.feeds.config import FeedConfig
from src.feeds.schemas import (
    FeedItem,
    FeedItems,
    FeedResult,
    FeedSourceInfo,
    FetchFailed,
    LookupResult,
)

logger = logging.getLogger(__name__)

CHANNEL_ID_PATTERN = re.compile(r"^UC[A-Za-z0-9_-]{22}$")


def is_valid_channel_id(value: str) -> bool:
    """Check whether a string is a well-formed YouTube channel id."""
    return bool(CHANNEL_ID_PATTERN.match(value or ""))


def _parse_published(entry: Any) -> datetime | None:
    """Parse the publish time of a feed entry, or None if it has none."""
    for field in ("published_parsed", "updated_parsed"):
        parsed = entry.get(field)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)

    for field in ("published", "updated"):
        raw = entry.get(field)
        if raw:
            try:
                value = datetime.fromisoformat(raw)
            except ValueError:
                continue
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value
    return None


def _entry_to_item(entry: Any) -> FeedItem | None:
    title = (entry.get("title") or "").strip()
    link = (entry.get("link") or "").strip()
    published = _parse_published(entry)
    if not title or not link or published is None:
        return None
    return FeedItem(title=title, link=link, published_at=published)


class YouTubeFeedAdapter(FeedSourceAdapter):
    """
    Feed adapter for YouTube channels.

    A shared ``httpx.AsyncClient`` may be injected (e.g. by the poll worker
    to reuse connections across a batch); otherwise each call opens a
    short-lived client.
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or FeedConfig()
        self._client = client

    def feed_url(self, channel_id: str) -> str:
        return self._config.url_template.format(channel_id=channel_id)

    def is_valid_source_id(self, source_id: str) -> bool:
        return is_valid_channel_id(source_id)

    async def _get_feed(self, channel_id: str) -> Any:
        """Download and parse a channel feed. Raises on any failure."""
        headers = {"User-Agent": self._config.user_agent}
        url = self.feed_url(channel_id)

        if self._client is not None:
            response = await self._client.get(
                url, headers=headers, timeout=self._config.timeout_seconds,
            )
        else:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.get(url, headers=headers)
        response.raise_for_status()

        feed = feedparser.parse(response.text)
        if feed.get("bozo") and not feed.get("entries") and not feed.get("feed"):
            raise ValueError(f"unparseable feed: {feed.get('bozo_exception')}")
        return feed

    async def _fetch_or_fail(self, channel_id: str) -> Any | FetchFailed:
        try:
            return await self._get_feed(channel_id)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Feed for %s returned %d", channel_id, e.response.status_code,
            )
            return FetchFailed(channel_id, f"http_{e.response.status_code}")
        except httpx.TimeoutException:
            logger.warning("Feed for %s timed out", channel_id)
            return FetchFailed(channel_id, "timeout")
        except httpx.HTTPError as e:
            logger.warning("Feed request for %s failed: %s", channel_id, e)
            return FetchFailed(channel_id, "network")
        except ValueError as e:
            logger.warning("Feed for %s could not be parsed: %s", channel_id, e)
            return FetchFailed(channel_id, "parse_error")

    async def fetch_since(self, source_id: str, watermark_ms: int) -> FeedResult:
        feed = await self._fetch_or_fail(source_id)
        if isinstance(feed, FetchFailed):
            return feed

        items: list[FeedItem] = []
        for entry in feed.get("entries", []):
            item = _entry_to_item(entry)
            if item is not None and item.published_ms > watermark_ms:
                items.append(item)

        items.sort(key=lambda i: i.published_at, reverse=True)
        logger.debug(
            "Fetched %d new items for %s since %d", len(items), source_id, watermark_ms,
        )
        return FeedItems(source_id=source_id, items=tuple(items))

    async def lookup(self, source_id: str) -> LookupResult:
        feed = await self._fetch_or_fail(source_id)
        if isinstance(feed, FetchFailed):
            return feed
        title = (feed.get("feed", {}).get("title") or "").strip() or None
        return FeedSourceInfo(source_id=source_id, name=title)

    async def health_check(self, probe_channel_id: str) -> bool:
        """Check that the feed endpoint answers for a known channel."""
        result = await self.lookup(probe_channel_id)
        return isinstance(result, FeedSourceInfo)
