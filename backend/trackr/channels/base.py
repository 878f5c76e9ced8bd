"""Base classes for delivery channels."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class SendReceipt:
    """Acknowledgement from a delivery channel.

    Attributes:
        id: Message ID assigned by the channel
    """

    id: str


class DeliveryError(Exception):
    """Raised when a channel rejects or cannot deliver a message."""


class DeliveryChannel(ABC):
    """Abstract base class for sending one message to one address."""

    @abstractmethod
    async def send(self, address: str, subject: str, body: str) -> SendReceipt:
        """Send a message.

        Args:
            address: Recipient address
            subject: Subject line
            body: Plain-text body

        Returns:
            SendReceipt with the channel's message ID

        Raises:
            DeliveryError: If the channel rejects the message
        """
        pass
