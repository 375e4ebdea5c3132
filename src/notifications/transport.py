"""Notification transports that hand a message to a chat gateway.

Provides an ABC for transports plus an HTTP implementation that posts JSON
to the installation's gateway. A transport makes one attempt and reports
the outcome; it never retries and never touches subscription state.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from src.installations.schemas import ChatScope, Installation
from src.notifications.config import NotificationConfig
from src.notifications.schemas import DeliveryOutcome

logger = logging.getLogger(__name__)

# Gateway responses meaning the bot's credential for the scope is no longer valid
UNAUTHORIZED_STATUSES = frozenset({401, 403})


class NotificationTransport(ABC):
    """Abstract base for message delivery."""

    @abstractmethod
    async def send(
        self,
        installation: Installation,
        scope: ChatScope,
        message: str,
    ) -> DeliveryOutcome:
        """Deliver a text message to a scope through its installation's gateway."""


class HttpGatewayTransport(NotificationTransport):
    """Posts messages as JSON to ``{api_gateway}{message_path}``.

    The request carries the target scope and the autonomous permission
    context the installation granted. 401/403 responses are reported as
    ``AUTHORIZATION_REVOKED``; any other non-2xx status, timeout or network
    error is ``FAILED``.
    """

    def __init__(
        self,
        config: NotificationConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._client = client

    def _build_url(self, installation: Installation) -> str:
        return installation.api_gateway.rstrip("/") + self._config.message_path

    def _build_payload(
        self, installation: Installation, scope: ChatScope, message: str
    ) -> dict:
        return {
            "scope": scope.to_dict(),
            "text": message,
            "permissions": installation.autonomous_permissions.to_dict(),
        }

    def _headers(self) -> dict[str, str]:
        if self._config.api_token:
            return {"Authorization": f"Bearer {self._config.api_token}"}
        return {}

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self._config.timeout_seconds,
            )
        async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
            return await client.post(url, json=payload, headers=self._headers())

    async def send(
        self,
        installation: Installation,
        scope: ChatScope,
        message: str,
    ) -> DeliveryOutcome:
        url = self._build_url(installation)
        payload = self._build_payload(installation, scope, message)
        try:
            resp = await self._post(url, payload)
        except httpx.TimeoutException:
            logger.warning("Gateway %s timed out for %s", url, scope)
            return DeliveryOutcome.FAILED
        except httpx.HTTPError as e:
            logger.warning("Gateway %s failed for %s: %s", url, scope, e)
            return DeliveryOutcome.FAILED

        if resp.is_success:
            return DeliveryOutcome.DELIVERED
        if resp.status_code in UNAUTHORIZED_STATUSES:
            logger.warning(
                "Gateway %s rejected credential for %s (%d)",
                url, scope, resp.status_code,
            )
            return DeliveryOutcome.AUTHORIZATION_REVOKED
        logger.warning("Gateway %s returned %d for %s", url, resp.status_code, scope)
        return DeliveryOutcome.FAILED
