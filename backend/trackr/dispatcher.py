"""Notification dispatcher.

Delivers one notification to one recipient and always returns an outcome,
so one recipient's failure never aborts a batch. No retries here: a failed
dispatch is terminal for its ledger key.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .channels import DeliveryChannel
from .events import DispatchStatus, NotificationPayload

if TYPE_CHECKING:
    from .models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of a dispatch attempt.

    Attributes:
        status: Terminal status of the attempt
        message_id: Channel message ID when sent
        error: Failure detail when failed
    """

    status: DispatchStatus
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationDispatcher:
    """Sends notifications through a delivery channel with a timeout."""

    def __init__(self, channel: DeliveryChannel, timeout_seconds: float = 10.0):
        self.channel = channel
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self, recipient: "User", payload: NotificationPayload
    ) -> DispatchOutcome:
        """Deliver a payload to a user.

        Args:
            recipient: Resolved user (email may be None)
            payload: Subject and body to send

        Returns:
            DispatchOutcome; never raises for channel errors
        """
        address = (recipient.email or "").strip()
        if not address:
            logger.debug(f"User {recipient.id} has no email, skipping")
            return DispatchOutcome(DispatchStatus.SKIPPED_NO_ADDRESS)

        try:
            receipt = await asyncio.wait_for(
                self.channel.send(address, payload.subject, payload.body),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Delivery to user {recipient.id} timed out after {self.timeout_seconds}s"
            )
            return DispatchOutcome(
                DispatchStatus.FAILED,
                error=f"timed out after {self.timeout_seconds}s",
            )
        except Exception as e:
            logger.warning(f"Delivery to user {recipient.id} failed: {e}")
            return DispatchOutcome(DispatchStatus.FAILED, error=str(e) or repr(e))

        logger.info(f"Sent {payload.subject!r} to user {recipient.id}")
        return DispatchOutcome(DispatchStatus.SENT, message_id=receipt.id)
