"""Message and conversation schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from switchboard.domain.models.message import MessageStatus, MessageType


class SendMessageRequest(BaseModel):
    """Send message request."""

    content: str = Field(min_length=1)
    type: MessageType = MessageType.TEXT


class SendVoiceMessageRequest(BaseModel):
    """Send voice note request."""

    audio_uri: str = Field(min_length=1)
    duration: float = Field(ge=0)


class SendMediaMessageRequest(BaseModel):
    """Send photo or video request."""

    media_uri: str = Field(min_length=1)
    media_type: MessageType = MessageType.IMAGE
    caption: str | None = None


class SendFileMessageRequest(BaseModel):
    """Send file request."""

    file_uri: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: int | None = Field(default=None, ge=0)
    mime_type: str | None = None


class SendLocationMessageRequest(BaseModel):
    """Share location request."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = None
    name: str | None = None


class TypingIndicatorRequest(BaseModel):
    is_typing: bool = True


class TypingIndicatorResponse(BaseModel):
    sent: bool


class InboundMessageRequest(BaseModel):
    """Message pushed by the backend for the local participant."""

    id: str = Field(min_length=1)
    conversation_id: str = Field(min_length=1)
    sender_id: str = Field(min_length=1)
    body: str
    type: MessageType = MessageType.TEXT
    created_at: datetime | None = None
    server_id: str | None = None


class StatusUpdateRequest(BaseModel):
    """Delivery status reported for an outbound message."""

    status: MessageStatus
    server_id: str | None = None


class MarkReadRequest(BaseModel):
    """Mark conversation read request."""

    up_to: datetime | None = None


class MarkReadResponse(BaseModel):
    """Mark conversation read response."""

    marked: int


class MessageResponse(BaseModel):
    """Message response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    sender_id: str
    body: str
    type: MessageType
    status: MessageStatus
    created_at: datetime
    server_id: str | None = None


class ConversationResponse(BaseModel):
    """Conversation list entry."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str | None = None
    last_message_preview: str | None = None
    last_message_at: datetime | None = None
    last_activity_at: datetime
    unread_count: int = 0
    participant_ids: list[str] = []


class ConnectionStatusResponse(BaseModel):
    """Connectivity and queue status."""

    is_online: bool
    network_online: bool
    backend_connected: bool
    queued_messages: int
    in_flight_messages: int


class ConnectivityUpdate(BaseModel):
    """Connectivity report from the device."""

    network_online: bool | None = None
    backend_connected: bool | None = None
