"""Tests for message status ordering and message helpers."""

import json
from datetime import datetime

import pytest

from switchboard.core.ids import generate_message_id
from switchboard.domain.models.message import (
    Message,
    MessageStatus,
    MessageType,
    can_advance,
    predecessors,
    preview_text,
)


@pytest.mark.parametrize(
    "current,target,expected",
    [
        (MessageStatus.SENDING, MessageStatus.SENT, True),
        (MessageStatus.SENDING, MessageStatus.READ, True),
        (MessageStatus.SENT, MessageStatus.DELIVERED, True),
        (MessageStatus.DELIVERED, MessageStatus.READ, True),
        (MessageStatus.DELIVERED, MessageStatus.SENT, False),
        (MessageStatus.READ, MessageStatus.DELIVERED, False),
        (MessageStatus.SENT, MessageStatus.SENT, False),
        (MessageStatus.SENDING, MessageStatus.FAILED, True),
        (MessageStatus.SENT, MessageStatus.FAILED, True),
        (MessageStatus.DELIVERED, MessageStatus.FAILED, False),
        (MessageStatus.FAILED, MessageStatus.SENT, False),
        (MessageStatus.FAILED, MessageStatus.SENDING, False),
    ],
)
def test_status_only_moves_forward(current, target, expected):
    """Test the monotonic status order and the terminal failed status."""
    assert can_advance(current, target) is expected


def test_predecessors():
    assert predecessors(MessageStatus.FAILED) == {MessageStatus.SENDING, MessageStatus.SENT}
    assert predecessors(MessageStatus.DELIVERED) == {MessageStatus.SENDING, MessageStatus.SENT}
    assert predecessors(MessageStatus.SENDING) == frozenset()


def test_message_id_format():
    """Test that local IDs carry the creation time and are unique."""
    now = datetime(2024, 1, 1, 12, 0, 0)

    first = generate_message_id(now)
    second = generate_message_id(now)

    prefix, epoch_ms, suffix = first.split("_")
    assert prefix == "msg"
    assert epoch_ms == "1704110400000"
    assert len(suffix) == 9
    assert first != second


def test_preview_text():
    """Test conversation list previews for every message kind."""
    assert preview_text(MessageType.TEXT, "hello") == "hello"
    assert preview_text(MessageType.VOICE, json.dumps({"audioUri": "a", "duration": 7})) == (
        "Voice note (7s)"
    )
    assert preview_text(MessageType.IMAGE, json.dumps({"mediaUri": "m"})) == "Photo"
    assert preview_text(MessageType.IMAGE, json.dumps({"mediaUri": "m", "caption": "Beach"})) == (
        "Beach"
    )
    assert preview_text(MessageType.VIDEO, json.dumps({"mediaUri": "m"})) == "Video"
    assert preview_text(MessageType.FILE, json.dumps({"fileName": "cv.pdf"})) == "cv.pdf"
    assert preview_text(MessageType.FILE, "not json") == "File"
    assert preview_text(
        MessageType.LOCATION, json.dumps({"latitude": 1.0, "longitude": 2.0, "locationName": "Home"})
    ) == "Home"
    assert preview_text(
        MessageType.LOCATION, json.dumps({"latitude": 1.0, "longitude": 2.0, "address": "1 Main St"})
    ) == "1 Main St"
    assert preview_text(MessageType.LOCATION, json.dumps({"latitude": 1.0, "longitude": 2.0})) == (
        "Location"
    )


def test_payload_uses_camel_case_keys():
    message = Message(
        id="msg_1_abc",
        conversation_id="conv-1",
        sender_id="alice",
        body="hi",
        type=MessageType.TEXT,
        status=MessageStatus.SENDING,
        created_at=datetime(2024, 1, 1, 12, 0, 0),
    )

    payload = message.to_payload()

    assert payload == {
        "id": "msg_1_abc",
        "conversationId": "conv-1",
        "senderId": "alice",
        "body": "hi",
        "type": "text",
        "createdAt": "2024-01-01T12:00:00",
    }
    assert message.payload is None
