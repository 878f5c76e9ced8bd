"""Delivery channels for notifications."""

from typing import TYPE_CHECKING

from .base import DeliveryChannel, DeliveryError, SendReceipt
from .log_only import LogOnlyChannel
from .resend import ResendChannel

if TYPE_CHECKING:
    from ..config import Settings

__all__ = [
    "DeliveryChannel",
    "DeliveryError",
    "SendReceipt",
    "LogOnlyChannel",
    "ResendChannel",
    "get_channel",
]


def get_channel(settings: "Settings") -> DeliveryChannel:
    """Get the delivery channel for the configured environment.

    Args:
        settings: Application settings

    Returns:
        ResendChannel when an API key is set, LogOnlyChannel otherwise
    """
    api_key = settings.resend_api_key.strip()
    if not api_key or api_key == "your_resend_api_key_here":
        return LogOnlyChannel()
    return ResendChannel(
        api_key=api_key,
        sender=settings.email_from,
        reply_to=settings.email_reply_to or None,
    )
