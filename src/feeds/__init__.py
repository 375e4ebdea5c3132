"""Feeds: adapters that fetch new items from external content sources."""

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
from src.feeds.youtube_adapter import YouTubeFeedAdapter, is_valid_channel_id

__all__ = [
    "FeedConfig",
    "FeedItem",
    "FeedItems",
    "FeedResult",
    "FeedSourceAdapter",
    "FeedSourceInfo",
    "FetchFailed",
    "LookupResult",
    "YouTubeFeedAdapter",
    "is_valid_channel_id",
]
