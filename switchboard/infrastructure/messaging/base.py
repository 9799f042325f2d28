"""Message transport abstraction: network hand-off for messages and receipts."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from switchboard.domain.models.message import Message, MessageStatus


@dataclass(frozen=True)
class DeliveryReceipt:
    """Acknowledgement returned by the server for a delivered message."""

    message_id: str
    status: MessageStatus = MessageStatus.SENT
    server_id: str | None = None


class MessageTransport(ABC):
    """Sends messages and status receipts to the messaging backend.

    Implementations raise ``TransientTransportError`` for failures worth
    retrying and ``PermanentTransportError`` when the payload was rejected.
    """

    @abstractmethod
    async def deliver(self, message: Message) -> DeliveryReceipt:
        """Hand a message to the backend."""
        pass

    @abstractmethod
    async def send_receipt(
        self, message_id: str, conversation_id: str, status: MessageStatus
    ) -> None:
        """Report that a received message was delivered to or read by this device."""
        pass

    async def close(self) -> None:
        pass
