"""
WhatsApp Messaging Service
Sends outbound text messages (habit reminders, verification codes) through a
GOWA WhatsApp gateway.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class MessagingService:
    """Client for the GOWA ``/send/message`` endpoint.

    ``send`` either returns the gateway's JSON reply or raises
    ``ExternalServiceError``; a non-2xx reply is never treated as a partial
    success.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url or settings.gowa_url
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=(username if username is not None else settings.gowa_user,
                  password if password is not None else settings.gowa_pass),
            timeout=timeout or settings.messaging_timeout_s,
            transport=transport
        )

        logger.info("📱 MessagingService initialized")

    async def send(self, phone: str, message: str) -> Dict[str, Any]:
        """Send ``message`` to the WhatsApp account registered for ``phone`` (digits only)"""

        payload = {
            "phone": f"{phone}@s.whatsapp.net",
            "message": message,
        }

        try:
            response = await self.client.post("/send/message", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"❌ Gateway transport error: {e}")
            raise ExternalServiceError(f"Gowa request failed: {e}") from e

        if response.is_error:
            logger.error(f"❌ Gateway rejected message ({response.status_code})")
            raise ExternalServiceError(f"Gowa API error {response.status_code}: {response.text}")

        logger.info(f"📱 Message sent to ...{phone[-4:]}")
        try:
            return response.json()
        except ValueError:
            return {}

    async def close(self):
        await self.client.aclose()


# Global service instance
messaging_service = MessagingService()


def get_messaging_service() -> MessagingService:
    return messaging_service
