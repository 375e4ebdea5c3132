"""Subscriptions: the registry of scope-to-source links and watermarks."""

from src.subscriptions.registry import SubscriptionRegistry
from src.subscriptions.repository import SubscriptionRepository
from src.subscriptions.schemas import FeedSource, SubscribeResult, now_ms

__all__ = [
    "FeedSource",
    "SubscribeResult",
    "SubscriptionRegistry",
    "SubscriptionRepository",
    "now_ms",
]
