"""Message, retry queue and conversation domain models."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MessageStatus(str, Enum):
    """Delivery status of a message."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


# Forward order of the happy path; FAILED sits outside it
_STATUS_RANK = {
    MessageStatus.SENDING: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
}

ACKNOWLEDGED_STATUSES = frozenset({
    MessageStatus.SENT,
    MessageStatus.DELIVERED,
    MessageStatus.READ,
})


def can_advance(current: MessageStatus, target: MessageStatus) -> bool:
    """Check whether a message may move from ``current`` to ``target``.

    Status only moves forward along sending < sent < delivered < read.
    ``failed`` is reachable from sending or sent and is terminal. Applying
    the current status again is not an advance (callers treat it as a no-op).
    """
    if current == MessageStatus.FAILED:
        return False
    if target == MessageStatus.FAILED:
        return current in (MessageStatus.SENDING, MessageStatus.SENT)
    return _STATUS_RANK[target] > _STATUS_RANK[current]


def predecessors(target: MessageStatus) -> frozenset[MessageStatus]:
    """All statuses from which ``target`` can be reached in one step."""
    return frozenset(status for status in MessageStatus if can_advance(status, target))


class MessageType(str, Enum):
    """Content kind of a message."""

    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
    LOCATION = "location"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    """A message in a conversation.

    ``body`` holds the text, or a JSON document for the other kinds
    (uploaded media references, or coordinates for a location).
    """

    id: str
    conversation_id: str
    sender_id: str
    body: str
    type: MessageType
    status: MessageStatus
    created_at: datetime
    server_id: str | None = None
    updated_at: datetime | None = None

    @property
    def payload(self) -> dict[str, Any] | None:
        """Structured payload of a media message, or None for text."""
        if self.type in (MessageType.TEXT, MessageType.SYSTEM):
            return None
        try:
            data = json.loads(self.body)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def to_payload(self) -> dict[str, Any]:
        """Serialized form stored in the retry queue and sent over the wire."""
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "senderId": self.sender_id,
            "body": self.body,
            "type": self.type.value,
            "createdAt": self.created_at.isoformat(),
        }


def preview_text(message_type: MessageType, body: str) -> str:
    """Human summary of a message for the conversation list."""
    if message_type in (MessageType.TEXT, MessageType.SYSTEM):
        return body
    try:
        payload = json.loads(body)
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    if message_type == MessageType.VOICE:
        duration = int(payload.get("duration") or 0)
        return f"Voice note ({duration}s)"
    if message_type == MessageType.IMAGE:
        return payload.get("caption") or "Photo"
    if message_type == MessageType.VIDEO:
        return payload.get("caption") or "Video"
    if message_type == MessageType.LOCATION:
        return payload.get("locationName") or payload.get("address") or "Location"
    return payload.get("fileName") or "File"


@dataclass
class RetryQueueEntry:
    """A not-yet-acknowledged message awaiting (re)delivery."""

    id: str
    conversation_id: str
    payload: dict[str, Any]
    created_at: datetime
    next_retry_at: datetime
    attempt_count: int = 0
    last_error: str | None = None
    kind: str = "message"


@dataclass(frozen=True)
class ConversationSummary:
    """Conversation list row."""

    id: str
    title: str | None
    last_message_preview: str | None
    last_message_at: datetime | None
    last_activity_at: datetime
    unread_count: int = 0
    participant_ids: list[str] = field(default_factory=list)
