"""Tests for offline-aware message delivery."""

import asyncio
import json
from datetime import datetime, timedelta

import pytest

from switchboard.core.clock import utcnow
from switchboard.core.exceptions import (
    MessageNotFoundError,
    MessageStateError,
    PermanentTransportError,
    TransientTransportError,
)
from switchboard.domain.models.message import Message, MessageStatus, MessageType
from switchboard.domain.services.retry_policy import RetryPolicy
from switchboard.infrastructure.messaging.base import DeliveryReceipt
from switchboard.infrastructure.messaging.memory_transport import InMemoryMessageTransport


class GatedMessageTransport(InMemoryMessageTransport):
    """In-memory transport that holds every delivery until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def deliver(self, message: Message) -> DeliveryReceipt:
        self.entered.set()
        await self.gate.wait()
        return await super().deliver(message)


async def status_of(conversation_store, message_id):
    message = await conversation_store.get_message(message_id)
    return message.status if message else None


async def has_status(conversation_store, message_id, status):
    return await status_of(conversation_store, message_id) == status


@pytest.mark.asyncio
async def test_send_online_marks_message_sent(
    pipeline, conversation_store, retry_store, message_transport
):
    """Test that an online send is persisted, delivered and acknowledged."""
    message = await pipeline.send("conv-1", "Hello Bob")

    assert message.status == MessageStatus.SENDING
    assert message.id.startswith("msg_")

    await pipeline.join()

    stored = await conversation_store.get_message(message.id)
    assert stored.status == MessageStatus.SENT
    assert stored.server_id is not None
    assert await retry_store.get(message.id) is None
    assert [m.id for m in message_transport.delivered] == [message.id]


@pytest.mark.asyncio
async def test_send_publishes_updates(pipeline):
    updates = []
    pipeline.updates.subscribe(updates.append)

    message = await pipeline.send("conv-1", "Hello")
    await pipeline.join()

    assert [(m.id, m.status) for m in updates] == [
        (message.id, MessageStatus.SENDING),
        (message.id, MessageStatus.SENT),
    ]


@pytest.mark.asyncio
async def test_empty_message_rejected(pipeline):
    with pytest.raises(ValueError):
        await pipeline.send("conv-1", "   ")


@pytest.mark.asyncio
async def test_offline_send_is_queued_until_reconnect(
    pipeline, conversation_store, retry_store, message_transport, connectivity
):
    """Test that messages sent offline are delivered once connectivity returns."""
    connectivity.set_online(False)

    first = await pipeline.send("conv-1", "one")
    second = await pipeline.send("conv-1", "two")
    await pipeline.join()

    assert message_transport.attempts == 0
    assert await status_of(conversation_store, first.id) == MessageStatus.SENDING
    assert len(await retry_store.list_all()) == 2
    status = await pipeline.connection_status()
    assert status["is_online"] is False
    assert status["queued_messages"] == 2

    connectivity.set_online(True)
    await pipeline.join()

    assert await status_of(conversation_store, first.id) == MessageStatus.SENT
    assert await status_of(conversation_store, second.id) == MessageStatus.SENT
    assert [m.id for m in message_transport.delivered] == [first.id, second.id]
    assert await retry_store.list_all() == []


@pytest.mark.asyncio
async def test_backend_disconnect_counts_as_offline(pipeline, message_transport, connectivity):
    connectivity.set_backend_connected(False)

    await pipeline.send("conv-1", "queued")
    await pipeline.join()

    assert message_transport.attempts == 0
    status = await pipeline.connection_status()
    assert status["network_online"] is True
    assert status["backend_connected"] is False


@pytest.mark.asyncio
async def test_transient_errors_are_retried(
    pipeline, conversation_store, retry_store, message_transport, wait_for
):
    """Test that transient failures back off and retry until delivered."""
    message_transport.failures = [
        TransientTransportError("timeout"),
        TransientTransportError("HTTP 503"),
    ]

    message = await pipeline.send("conv-1", "eventually")

    await wait_for(lambda: has_status(conversation_store, message.id, MessageStatus.SENT))
    assert message_transport.attempts == 3
    assert await retry_store.get(message.id) is None


@pytest.mark.asyncio
async def test_retries_exhausted_marks_failed(
    pipeline, conversation_store, retry_store, message_transport, wait_for
):
    """Test that a message fails after max_attempts transient failures."""
    message_transport.always_fail = TransientTransportError("network unreachable")

    message = await pipeline.send("conv-1", "doomed")

    await wait_for(lambda: has_status(conversation_store, message.id, MessageStatus.FAILED))
    assert message_transport.attempts == 5
    assert await retry_store.get(message.id) is None


@pytest.mark.asyncio
async def test_retry_entry_records_attempts(
    make_pipeline, conversation_store, retry_store, message_transport, wait_for
):
    """Test that a pending retry keeps the attempt count and last error."""
    pipeline = make_pipeline(
        policy=RetryPolicy(base_delay_ms=60_000, max_delay_ms=60_000, jitter_ratio=0)
    )
    await pipeline.start()
    message_transport.failures = [TransientTransportError("HTTP 429")]

    message = await pipeline.send("conv-1", "later")
    await pipeline.join()

    entry = await wait_for(lambda: retry_store.get(message.id))
    assert entry.attempt_count == 1
    assert "429" in entry.last_error
    assert entry.next_retry_at > utcnow() + timedelta(seconds=30)
    assert await status_of(conversation_store, message.id) == MessageStatus.SENDING


@pytest.mark.asyncio
async def test_permanent_error_fails_immediately(
    pipeline, conversation_store, retry_store, message_transport, wait_for
):
    message_transport.failures = [PermanentTransportError("rejected: HTTP 400")]

    message = await pipeline.send("conv-1", "bad payload")
    await pipeline.join()

    assert await status_of(conversation_store, message.id) == MessageStatus.FAILED
    assert message_transport.attempts == 1
    assert await retry_store.get(message.id) is None


@pytest.mark.asyncio
async def test_status_updates_are_monotonic_and_idempotent(pipeline):
    """Test that repeated or older receipts never move a status backward."""
    message = await pipeline.send("conv-1", "Hi")
    await pipeline.join()

    delivered = await pipeline.apply_status_update(message.id, MessageStatus.DELIVERED)
    again = await pipeline.apply_status_update(message.id, MessageStatus.DELIVERED)
    older = await pipeline.apply_status_update(message.id, MessageStatus.SENT)
    failed = await pipeline.apply_status_update(message.id, MessageStatus.FAILED)
    read = await pipeline.apply_status_update(message.id, MessageStatus.READ)

    assert delivered.status == MessageStatus.DELIVERED
    assert again.status == MessageStatus.DELIVERED
    assert older.status == MessageStatus.DELIVERED
    assert failed.status == MessageStatus.DELIVERED
    assert read.status == MessageStatus.READ


@pytest.mark.asyncio
async def test_receipt_while_sending_clears_retry_entry(
    pipeline, retry_store, message_transport, connectivity
):
    """Test that a receipt for a queued message removes it from the retry queue."""
    connectivity.set_online(False)
    message = await pipeline.send("conv-1", "Hi")

    updated = await pipeline.apply_status_update(
        message.id, MessageStatus.DELIVERED, server_id="srv-1"
    )

    assert updated.status == MessageStatus.DELIVERED
    assert updated.server_id == "srv-1"
    assert await retry_store.get(message.id) is None

    connectivity.set_online(True)
    await pipeline.join()
    assert message_transport.attempts == 0


@pytest.mark.asyncio
async def test_status_update_for_unknown_message(pipeline):
    with pytest.raises(MessageNotFoundError):
        await pipeline.apply_status_update("msg_missing", MessageStatus.SENT)


@pytest.mark.asyncio
async def test_cancel_stops_delivery(pipeline, retry_store, message_transport, connectivity):
    """Test that a cancelled message is never delivered."""
    connectivity.set_online(False)
    message = await pipeline.send("conv-1", "never mind")

    cancelled = await pipeline.cancel(message.id)
    connectivity.set_online(True)
    await pipeline.join()

    assert cancelled.status == MessageStatus.FAILED
    assert await retry_store.get(message.id) is None
    assert message_transport.delivered == []


@pytest.mark.asyncio
async def test_cancel_discards_in_flight_attempt(make_pipeline, conversation_store, retry_store):
    """Test that an acknowledgement arriving after cancel does not revive the message."""
    transport = GatedMessageTransport()
    pipeline = make_pipeline(transport=transport)
    await pipeline.start()
    message = await pipeline.send("conv-1", "hold on")
    await asyncio.wait_for(transport.entered.wait(), timeout=3)

    cancelled = await pipeline.cancel(message.id)
    transport.gate.set()
    await pipeline.join()

    assert cancelled.status == MessageStatus.FAILED
    stored = await conversation_store.get_message(message.id)
    assert stored.status == MessageStatus.FAILED
    assert stored.server_id is None
    assert await retry_store.get(message.id) is None
    assert [m.id for m in transport.delivered] == [message.id]


@pytest.mark.asyncio
async def test_resend_failed_message(
    pipeline, conversation_store, message_transport, wait_for
):
    """Test that resending a failed message sends a new copy."""
    message_transport.failures = [PermanentTransportError("rejected")]
    message = await pipeline.send("conv-1", "try again")
    await pipeline.join()
    assert await status_of(conversation_store, message.id) == MessageStatus.FAILED

    resent = await pipeline.resend(message.id)
    await pipeline.join()

    assert resent.id != message.id
    assert resent.body == "try again"
    assert await conversation_store.get_message(message.id) is None
    assert await status_of(conversation_store, resent.id) == MessageStatus.SENT


@pytest.mark.asyncio
async def test_resend_requires_failed_status(pipeline):
    message = await pipeline.send("conv-1", "fine")
    await pipeline.join()

    with pytest.raises(MessageStateError):
        await pipeline.resend(message.id)


@pytest.mark.asyncio
async def test_delete_message(pipeline, conversation_store, retry_store, connectivity):
    connectivity.set_online(False)
    message = await pipeline.send("conv-1", "oops")

    assert await pipeline.delete_message(message.id) is True
    assert await pipeline.delete_message(message.id) is False
    assert await conversation_store.get_message(message.id) is None
    assert await retry_store.get(message.id) is None


@pytest.mark.asyncio
async def test_restore_after_restart(
    make_pipeline, conversation_store, message_transport, connectivity
):
    """Test that queued messages survive a restart and are flushed on start."""
    connectivity.set_online(False)
    before_restart = make_pipeline()
    await before_restart.start()
    message = await before_restart.send("conv-1", "survive me")
    await before_restart.stop()

    connectivity.set_online(True)
    after_restart = make_pipeline()
    await after_restart.start()
    await after_restart.join()

    assert await status_of(conversation_store, message.id) == MessageStatus.SENT
    assert [m.id for m in message_transport.delivered] == [message.id]


@pytest.mark.asyncio
async def test_restore_requeues_sending_message_without_entry(
    make_pipeline, conversation_store, retry_store, connectivity
):
    """Test that a local message stuck in sending is queued again on start."""
    connectivity.set_online(False)
    orphan = Message(
        id="msg_1704110400000_orphan001",
        conversation_id="conv-1",
        sender_id="alice",
        body="lost entry",
        type=MessageType.TEXT,
        status=MessageStatus.SENDING,
        created_at=datetime(2024, 1, 1, 12, 0, 0),
    )
    await conversation_store.save_message(orphan)

    pipeline = make_pipeline()
    restored = await pipeline.restore()

    assert restored == 1
    entry = await retry_store.get(orphan.id)
    assert entry is not None
    assert entry.payload["body"] == "lost entry"

    connectivity.set_online(True)
    assert await pipeline.flush() == 1
    assert await status_of(conversation_store, orphan.id) == MessageStatus.SENT


@pytest.mark.asyncio
async def test_flush_delivers_oldest_first(
    pipeline, message_transport, connectivity
):
    connectivity.set_online(False)
    sent = [await pipeline.send("conv-1", f"message {i}") for i in range(3)]
    connectivity.set_online(True)

    await pipeline.flush()
    await pipeline.join()

    assert [m.id for m in message_transport.delivered] == [m.id for m in sent]


@pytest.mark.asyncio
async def test_media_messages(pipeline, conversation_store):
    """Test voice, photo and file messages and their previews."""
    voice = await pipeline.send_voice_message("conv-1", "file:///voice.m4a", 12.7)
    assert voice.type == MessageType.VOICE
    assert json.loads(voice.body) == {"audioUri": "file:///voice.m4a", "duration": 12}

    photo = await pipeline.send_media_message(
        "conv-1", "file:///beach.jpg", MessageType.IMAGE, caption="Beach"
    )
    assert photo.payload == {"mediaUri": "file:///beach.jpg", "caption": "Beach"}

    document = await pipeline.send_file_message(
        "conv-1", "file:///cv.pdf", "cv.pdf", file_size=1024, mime_type="application/pdf"
    )
    assert document.payload["fileName"] == "cv.pdf"
    await pipeline.join()

    conversations = await conversation_store.list_conversations("alice")
    assert conversations[0].last_message_preview == "cv.pdf"

    with pytest.raises(ValueError):
        await pipeline.send_media_message("conv-1", "file:///a", MessageType.FILE)


@pytest.mark.asyncio
async def test_location_message(pipeline, conversation_store):
    """Test sharing a location and its conversation preview."""
    message = await pipeline.send_location_message(
        "conv-1", 48.8584, 2.2945, address="Champ de Mars, Paris", name="Eiffel Tower"
    )
    await pipeline.join()

    assert message.type == MessageType.LOCATION
    assert message.payload == {
        "latitude": 48.8584,
        "longitude": 2.2945,
        "address": "Champ de Mars, Paris",
        "locationName": "Eiffel Tower",
    }
    assert await has_status(conversation_store, message.id, MessageStatus.SENT)
    conversations = await conversation_store.list_conversations("alice")
    assert conversations[0].last_message_preview == "Eiffel Tower"

    await pipeline.send_location_message("conv-1", -33.86, 151.21)
    await pipeline.join()
    conversations = await conversation_store.list_conversations("alice")
    assert conversations[0].last_message_preview == "Location"


@pytest.mark.asyncio
async def test_location_out_of_range_rejected(pipeline, conversation_store):
    with pytest.raises(ValueError):
        await pipeline.send_location_message("conv-1", 91.0, 0.0)
    with pytest.raises(ValueError):
        await pipeline.send_location_message("conv-1", 0.0, -180.5)

    assert await conversation_store.list_messages("conv-1") == []


@pytest.mark.asyncio
async def test_receive_is_idempotent(pipeline, conversation_store, message_transport):
    """Test that a pushed message is stored and acknowledged once."""
    for _ in range(2):
        await pipeline.receive(
            message_id="msg_remote_1",
            conversation_id="conv-1",
            sender_id="bob",
            body="Hi Alice",
        )

    messages = await conversation_store.list_messages("conv-1")
    assert [m.id for m in messages] == ["msg_remote_1"]
    assert messages[0].status == MessageStatus.DELIVERED
    assert message_transport.receipts == [("msg_remote_1", "conv-1", MessageStatus.DELIVERED)]


@pytest.mark.asyncio
async def test_watch_conversation(pipeline):
    """Test that watchers see local and remote inserts for their conversation only."""
    seen = []
    unsubscribe = pipeline.watch_conversation("conv-1", seen.append)

    local = await pipeline.send("conv-1", "mine")
    await pipeline.receive("msg_remote_1", "conv-1", "bob", "theirs")
    await pipeline.receive("msg_remote_1", "conv-1", "bob", "theirs")
    await pipeline.receive("msg_remote_2", "conv-2", "carol", "elsewhere")
    unsubscribe()
    await pipeline.receive("msg_remote_3", "conv-1", "bob", "after unsubscribe")

    assert [m.id for m in seen] == [local.id, "msg_remote_1"]


@pytest.mark.asyncio
async def test_mark_read_sends_read_receipts(pipeline, conversation_store, message_transport):
    """Test that marking read reports each newly read inbound message once."""
    base = datetime(2024, 1, 1, 12, 0, 0)
    await pipeline.receive("msg_r1", "conv-1", "bob", "one", created_at=base)
    await pipeline.receive("msg_r2", "conv-1", "bob", "two", created_at=base + timedelta(seconds=1))
    assert await conversation_store.unread_count("conv-1", "alice") == 2

    marked = await pipeline.mark_read("conv-1")
    marked_again = await pipeline.mark_read("conv-1")

    assert marked == 2
    assert marked_again == 0
    assert await conversation_store.unread_count("conv-1", "alice") == 0
    read_receipts = [r for r in message_transport.receipts if r[2] == MessageStatus.READ]
    assert [r[0] for r in read_receipts] == ["msg_r1", "msg_r2"]


@pytest.mark.asyncio
async def test_no_receipts_while_offline(pipeline, message_transport, connectivity):
    connectivity.set_online(False)

    await pipeline.receive("msg_r1", "conv-1", "bob", "one")
    await pipeline.mark_read("conv-1")

    assert message_transport.receipts == []

