"""E-mail delivery through the Resend HTTP API."""

import logging
from typing import Optional

import httpx

from .base import DeliveryChannel, DeliveryError, SendReceipt

logger = logging.getLogger(__name__)


class ResendChannel(DeliveryChannel):
    """Send plain-text e-mail with Resend."""

    API_BASE = "https://api.resend.com"

    def __init__(
        self,
        api_key: str,
        sender: str,
        reply_to: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.reply_to = reply_to
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def send(self, address: str, subject: str, body: str) -> SendReceipt:
        payload = {
            "from": self.sender,
            "to": [address],
            "subject": subject,
            "text": body,
        }
        if self.reply_to:
            payload["reply_to"] = self.reply_to

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.post(
                    f"{self.API_BASE}/emails",
                    headers=self._headers(),
                    json=payload,
                )
            except httpx.HTTPError as e:
                raise DeliveryError(f"Resend request failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise DeliveryError(f"Resend rejected message ({response.status_code}): {detail}")

        message_id = response.json().get("id")
        if not message_id:
            raise DeliveryError("Resend response did not include a message id")

        logger.debug(f"Resend accepted message {message_id} for {address}")
        return SendReceipt(id=message_id)
