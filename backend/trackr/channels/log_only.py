"""Channel that only logs messages (no e-mail provider configured)."""

import logging
import uuid

from .base import DeliveryChannel, SendReceipt

logger = logging.getLogger(__name__)


class LogOnlyChannel(DeliveryChannel):
    """Logs each message instead of delivering it."""

    async def send(self, address: str, subject: str, body: str) -> SendReceipt:
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        logger.info(f"NO API KEY: would send {subject!r} to {address} ({message_id})")
        logger.debug(body)
        return SendReceipt(id=message_id)
