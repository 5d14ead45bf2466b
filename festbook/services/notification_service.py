"""
Notification delivery
Hands rendered notifications to the external push/email/SMS gateway.
Delivery is fire-and-forget: callers get (success, error) and never retry here.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Optional

import httpx

from .. import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    kind: str
    title: str
    body: str
    url: Optional[str] = None
    tag: Optional[str] = None


class NotificationDelivery(ABC):
    @abstractmethod
    async def deliver(self, user_id: str, message: NotificationMessage) -> tuple[bool, Optional[str]]:
        """Send one message to one user. Returns (success, error_message)."""
        raise NotImplementedError


class LoggingDelivery(NotificationDelivery):
    """Development delivery: writes the notification to the log"""

    async def deliver(self, user_id: str, message: NotificationMessage) -> tuple[bool, Optional[str]]:
        logger.info(f"📨 [{message.kind}] to {user_id}: {message.title} - {message.body}")
        return True, None


class WebhookDelivery(NotificationDelivery):
    """Posts notifications as JSON to the messaging gateway"""

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = config.DELIVERY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.transport = transport

    async def deliver(self, user_id: str, message: NotificationMessage) -> tuple[bool, Optional[str]]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        payload = {"userId": user_id, **asdict(message)}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"❌ Delivery gateway unreachable for {message.kind} to {user_id}: {e}")
            return False, str(e)

        if response.status_code in (200, 201, 202, 204):
            logger.info(f"✅ {message.kind} delivered to {user_id}")
            return True, None

        error_message = f"Gateway responded {response.status_code}: {response.text[:200]}"
        logger.error(f"❌ Delivery of {message.kind} to {user_id} failed: {error_message}")
        return False, error_message


def get_delivery() -> NotificationDelivery:
    """Delivery configured from environment; log-only when no gateway is set"""
    if config.DELIVERY_WEBHOOK_URL:
        return WebhookDelivery(config.DELIVERY_WEBHOOK_URL, token=config.DELIVERY_WEBHOOK_TOKEN)

    logger.warning("⚠️ DELIVERY_WEBHOOK_URL not set - notifications will only be logged")
    return LoggingDelivery()
