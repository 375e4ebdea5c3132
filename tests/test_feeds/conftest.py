"""Shared fixtures for feed adapter tests."""

from collections.abc import Callable

import httpx
import pytest

from src.feeds.config import FeedConfig
from src.feeds.youtube_adapter import YouTubeFeedAdapter

SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns="http://www.w3.org/2005/Atom">
  <link rel="self" href="http://www.youtube.com/feeds/videos.xml?channel_id=UCaaaaaaaaaaaaaaaaaaaaaa"/>
  <id>yt:channel:aaaaaaaaaaaaaaaaaaaaaa</id>
  <yt:channelId>aaaaaaaaaaaaaaaaaaaaaa</yt:channelId>
  <title>Semiconductor Weekly</title>
  <link rel="alternate" href="https://www.youtube.com/channel/UCaaaaaaaaaaaaaaaaaaaaaa"/>
  <published>2020-01-01T00:00:00+00:00</published>
  <entry>
    <id>yt:video:vid3</id>
    <yt:videoId>vid3</yt:videoId>
    <title>Episode 3</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=vid3"/>
    <published>2024-03-03T12:00:00+00:00</published>
    <updated>2024-03-03T12:30:00+00:00</updated>
  </entry>
  <entry>
    <id>yt:video:vid2</id>
    <yt:videoId>vid2</yt:videoId>
    <title>Episode 2</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=vid2"/>
    <published>2024-02-02T12:00:00+00:00</published>
    <updated>2024-02-02T12:30:00+00:00</updated>
  </entry>
  <entry>
    <id>yt:video:vid1</id>
    <yt:videoId>vid1</yt:videoId>
    <title>Episode 1</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=vid1"/>
    <published>2024-01-01T12:00:00+00:00</published>
    <updated>2024-01-01T12:30:00+00:00</updated>
  </entry>
</feed>
"""

EMPTY_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Quiet Channel</title>
  <link rel="alternate" href="https://www.youtube.com/channel/UCbbbbbbbbbbbbbbbbbbbbbb"/>
</feed>
"""


@pytest.fixture
def make_adapter() -> Callable[..., YouTubeFeedAdapter]:
    """Build an adapter whose HTTP client is served by a handler function."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> YouTubeFeedAdapter:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return YouTubeFeedAdapter(config=FeedConfig(), client=client)

    return _make


@pytest.fixture
def feed_adapter(make_adapter) -> YouTubeFeedAdapter:
    """Adapter that serves SAMPLE_FEED for every request."""
    return make_adapter(lambda request: httpx.Response(200, text=SAMPLE_FEED))


@pytest.fixture
def sample_feed_xml() -> str:
    """Atom feed with three uploads, newest first."""
    return SAMPLE_FEED


@pytest.fixture
def empty_feed_xml() -> str:
    """Atom feed of a channel with no uploads."""
    return EMPTY_FEED
