"""Notifications: delivering new-content messages to chat scopes.

Components:
- DeliveryOutcome: Delivered / failed / authorization revoked
- NotificationTransport / HttpGatewayTransport: One-attempt delivery
- NotificationDispatcher: Delivery plus unsubscribe on revoked auth
- NotificationConfig: ``NOTIFICATIONS_*`` settings
"""

from src.notifications.config import NotificationConfig
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.schemas import DeliveryOutcome, render_message
from src.notifications.transport import HttpGatewayTransport, NotificationTransport

__all__ = [
    "DeliveryOutcome",
    "HttpGatewayTransport",
    "NotificationConfig",
    "NotificationDispatcher",
    "NotificationTransport",
    "render_message",
]
