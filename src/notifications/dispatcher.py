"""Notification dispatcher: one message, one scope, one attempt.

Revoked authorization is handled here, at the point of failure: every future
delivery to that scope would fail the same way, so the dispatcher removes
the (scope, source) subscription itself. Other failures are logged and
reported; there is no retry and no re-delivery queue.
"""

import logging

from src.installations.schemas import ChatScope, Installation
from src.notifications.schemas import DeliveryOutcome
from src.notifications.transport import NotificationTransport
from src.observability.metrics import MetricsCollector, get_metrics
from src.subscriptions.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Delivers messages through a transport and self-heals on revoked auth."""

    def __init__(
        self,
        transport: NotificationTransport,
        registry: SubscriptionRegistry,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._metrics = metrics or get_metrics()

    async def deliver(
        self,
        installation: Installation,
        scope: ChatScope,
        source_id: str,
        message: str,
    ) -> DeliveryOutcome:
        """Send ``message`` about ``source_id`` to ``scope``.

        Args:
            installation: Installation covering the scope.
            scope: Destination chat scope.
            source_id: Source the message is about.
            message: Rendered message body.

        Returns:
            The delivery outcome. Never raises for transport errors.
        """
        try:
            outcome = await self._transport.send(installation, scope, message)
        except Exception as e:
            logger.error(
                "Unexpected error delivering %s to %s: %s", source_id, scope, e,
            )
            outcome = DeliveryOutcome.FAILED

        self._metrics.record_delivery(outcome.value)

        if outcome is DeliveryOutcome.AUTHORIZATION_REVOKED:
            await self._handle_revoked(scope, source_id)
        elif outcome is DeliveryOutcome.FAILED:
            logger.warning("Delivery of %s to %s failed", source_id, scope)
        else:
            logger.debug("Delivered %s to %s", source_id, scope)

        return outcome

    async def _handle_revoked(self, scope: ChatScope, source_id: str) -> None:
        logger.warning(
            "Authorization revoked for %s, unsubscribing from %s", scope, source_id,
        )
        try:
            await self._registry.unsubscribe(scope, source_id)
            self._metrics.record_subscription_removed("authorization_revoked")
        except Exception as e:
            logger.error(
                "Failed to unsubscribe %s from %s after revoked auth: %s",
                scope, source_id, e,
            )
