"""Delivery of customer PINs issued at intake."""

import logging
from typing import Protocol

from repair_desk.database.models import Client

logger = logging.getLogger(__name__)


class PinSender(Protocol):
    """Anything that can hand a freshly generated PIN to a customer."""

    def __call__(self, client: Client, pin: str) -> None: ...


class LoggingPinSender:
    """Default sender: records that a PIN was issued, never the PIN itself."""

    def __call__(self, client: Client, pin: str) -> None:
        logger.info(
            f"PIN issued to client {client.id} ({client.phone}); "
            "delivery left to the SMS gateway"
        )
