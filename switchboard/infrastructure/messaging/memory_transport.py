"""In-process message transport used when no backend URL is configured."""

import logging
import uuid

from switchboard.domain.models.message import Message, MessageStatus
from switchboard.infrastructure.messaging.base import DeliveryReceipt, MessageTransport

logger = logging.getLogger(__name__)


class InMemoryMessageTransport(MessageTransport):
    """Accepts every message and records what was sent.

    Messages are acknowledged as ``sent`` only; later statuses must come from
    an actual recipient.
    """

    def __init__(self) -> None:
        self.delivered: list[Message] = []
        self.receipts: list[tuple[str, str, MessageStatus]] = []

    async def deliver(self, message: Message) -> DeliveryReceipt:
        self.delivered.append(message)
        logger.debug(f"Accepted message {message.id} in memory")
        return DeliveryReceipt(
            message_id=message.id,
            status=MessageStatus.SENT,
            server_id=uuid.uuid4().hex,
        )

    async def send_receipt(
        self, message_id: str, conversation_id: str, status: MessageStatus
    ) -> None:
        self.receipts.append((message_id, conversation_id, status))
