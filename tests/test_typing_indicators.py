"""Tests for typing indicators over the in-memory signal transport."""

import pytest

from switchboard.core.exceptions import SignalingUnavailableError
from switchboard.infrastructure.signaling.memory_transport import InMemorySignalTransport
from switchboard.infrastructure.signaling.typing_indicators import TypingChannel, TypingEvent


@pytest.fixture
def typing_channel(signal_transport):
    return TypingChannel(signal_transport)


@pytest.mark.asyncio
async def test_indicator_reaches_subscriber(typing_channel, signal_transport):
    """Test that published indicators reach listeners of the same conversation."""
    seen = []
    await typing_channel.subscribe("conv-1", seen.append)
    await typing_channel.subscribe("conv-2", lambda event: seen.append(("other", event)))

    sent = await typing_channel.publish(
        TypingEvent(conversation_id="conv-1", user_id="bob", is_typing=True)
    )
    await signal_transport.drain()

    assert sent is True
    assert seen == [TypingEvent(conversation_id="conv-1", user_id="bob", is_typing=True)]


@pytest.mark.asyncio
async def test_wire_format_uses_camel_case(typing_channel, signal_transport):
    raw = []

    async def capture(data: str) -> None:
        raw.append(data)

    await signal_transport.subscribe("typing:conv-1", capture)
    await typing_channel.publish(TypingEvent(conversation_id="conv-1", user_id="bob", is_typing=False))
    await signal_transport.drain()

    assert raw == ['{"conversationId":"conv-1","userId":"bob","isTyping":false}']


@pytest.mark.asyncio
async def test_malformed_indicators_are_discarded(typing_channel, signal_transport):
    seen = []
    await typing_channel.subscribe("conv-1", seen.append)

    await signal_transport.publish("typing:conv-1", "not json")
    await signal_transport.publish("typing:conv-1", '{"conversationId": "conv-1"}')
    await signal_transport.publish(
        "typing:conv-1", '{"conversationId": "conv-9", "userId": "bob", "isTyping": true}'
    )
    await signal_transport.publish(
        "typing:conv-1", '{"conversationId": "conv-1", "userId": "bob", "isTyping": true}'
    )
    await signal_transport.drain()

    assert [(e.conversation_id, e.user_id) for e in seen] == [("conv-1", "bob")]


@pytest.mark.asyncio
async def test_last_unsubscribe_releases_topic(typing_channel, signal_transport):
    """Test that one transport subscription is shared and released with the last listener."""
    first = await typing_channel.subscribe("conv-1", lambda event: None)
    second = await typing_channel.subscribe("conv-1", lambda event: None)
    assert signal_transport.subscriber_count("typing:conv-1") == 1

    await first()
    assert signal_transport.subscriber_count("typing:conv-1") == 1

    await second()
    assert signal_transport.subscriber_count("typing:conv-1") == 0


@pytest.mark.asyncio
async def test_publish_on_closed_transport_reports_failure():
    channel = TypingChannel(InMemorySignalTransport())

    sent = await channel.publish(TypingEvent(conversation_id="conv-1", user_id="bob", is_typing=True))

    assert sent is False


@pytest.mark.asyncio
async def test_pipelines_exchange_typing_indicators(make_pipeline, signal_transport):
    """Test started/stopped typing between two participants, ignoring one's own indicators."""
    alice = make_pipeline(typing=TypingChannel(signal_transport))
    bob = make_pipeline(participant_id="bob", typing=TypingChannel(signal_transport))
    seen = []
    unsubscribe = await alice.watch_typing("conv-1", seen.append)

    assert await alice.send_typing_indicator("conv-1") is True
    assert await bob.send_typing_indicator("conv-1") is True
    assert await bob.send_typing_indicator("conv-1", is_typing=False) is True
    await signal_transport.drain()

    assert [(e.user_id, e.is_typing) for e in seen] == [("bob", True), ("bob", False)]

    await unsubscribe()
    await bob.send_typing_indicator("conv-1")
    await signal_transport.drain()
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_no_typing_indicator_while_offline(make_pipeline, signal_transport, connectivity):
    raw = []

    async def capture(data: str) -> None:
        raw.append(data)

    await signal_transport.subscribe("typing:conv-1", capture)
    alice = make_pipeline(typing=TypingChannel(signal_transport))
    connectivity.set_online(False)

    assert await alice.send_typing_indicator("conv-1") is False
    await signal_transport.drain()
    assert raw == []


@pytest.mark.asyncio
async def test_typing_requires_channel(make_pipeline):
    pipeline = make_pipeline()

    assert await pipeline.send_typing_indicator("conv-1") is False
    with pytest.raises(SignalingUnavailableError):
        await pipeline.watch_typing("conv-1", lambda event: None)
