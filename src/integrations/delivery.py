"""
Delivery - outbound messages to the messaging transport.

The transport (session, login, QR pairing) runs outside this service and
exposes a webhook that accepts notices and stickers for a chat.
"""

import base64
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from src.core.config import settings
from src.core.exceptions import DeliveryError
from src.core.logging import get_logger

logger = get_logger(__name__)

STICKER_MIMETYPE = "image/webp"


class IDelivery(ABC):
    """Interface for sending messages back to a user."""

    @abstractmethod
    def send_notice(self, identity: str, text: str) -> None:
        """Send a user-visible text notice."""
        pass

    @abstractmethod
    def send_sticker_result(self, identity: str, encoded_bytes: bytes) -> None:
        """Send an encoded sticker."""
        pass


class WebhookDelivery(IDelivery):
    """POSTs outbound messages as JSON to the transport webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def _post(self, payload: Dict[str, Any]) -> None:
        try:
            response = self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Transport unreachable: {e}")

        if response.status_code >= 300:
            raise DeliveryError(
                f"Transport rejected {payload['type']}: {response.text}",
                http_status=response.status_code
            )

    def send_notice(self, identity: str, text: str) -> None:
        self._post({"identity": identity, "type": "notice", "text": text})
        logger.info("notice_sent", identity=identity)

    def send_sticker_result(self, identity: str, encoded_bytes: bytes) -> None:
        self._post({
            "identity": identity,
            "type": "sticker",
            "mimetype": STICKER_MIMETYPE,
            "media_base64": base64.b64encode(encoded_bytes).decode("utf-8"),
            "send_as_sticker": True,
        })
        logger.info("sticker_sent", identity=identity, size=len(encoded_bytes))

    def close(self):
        self._client.close()


def create_delivery() -> IDelivery:
    return WebhookDelivery(settings.DELIVERY_WEBHOOK_URL, timeout=settings.DELIVERY_TIMEOUT_SECONDS)
