"""Delivery outcomes and message rendering."""

import enum
from collections.abc import Iterable

from src.feeds.schemas import FeedItem


class DeliveryOutcome(enum.Enum):
    """Result of one delivery attempt to one scope."""

    DELIVERED = "delivered"
    FAILED = "failed"
    AUTHORIZATION_REVOKED = "authorization_revoked"


def render_message(items: Iterable[FeedItem]) -> str:
    """One markdown link per item, newest first."""
    return "\n".join(item.to_markdown() for item in items)
