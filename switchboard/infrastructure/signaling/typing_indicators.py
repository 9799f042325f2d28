"""Typing indicators: ephemeral "user is typing" events per conversation.

Indicators travel over the same pub/sub transport as call signals, on one
topic per conversation. They are never stored or retried; a lost indicator
is simply superseded by the next one.
"""

import asyncio
import logging
from collections import defaultdict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from switchboard.core.events import KeyedEventStream, Listener
from switchboard.infrastructure.signaling.base import AsyncUnsubscribe, SignalTransport

logger = logging.getLogger(__name__)


class TypingEvent(BaseModel):
    """Wire form: ``{"conversationId": ..., "userId": ..., "isTyping": true}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    conversation_id: str = Field(alias="conversationId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    is_typing: bool = Field(alias="isTyping")


class TypingChannel:
    """Publishes and fans out typing indicators."""

    def __init__(self, transport: SignalTransport, topic_prefix: str = "typing") -> None:
        self._transport = transport
        self._topic_prefix = topic_prefix
        self._events: KeyedEventStream[TypingEvent] = KeyedEventStream("typing")
        self._subscriptions: dict[str, AsyncUnsubscribe] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def topic_for(self, conversation_id: str) -> str:
        return f"{self._topic_prefix}:{conversation_id}"

    async def publish(self, event: TypingEvent) -> bool:
        """Send an indicator. Failures are logged and reported as False."""
        try:
            await self._transport.publish(
                self.topic_for(event.conversation_id),
                event.model_dump_json(by_alias=True),
            )
        except Exception as e:
            logger.debug(
                f"Typing indicator for {event.conversation_id} not sent: {e}",
                extra={"conversation_id": event.conversation_id},
            )
            return False
        return True

    async def subscribe(self, conversation_id: str, listener: Listener) -> AsyncUnsubscribe:
        """Receive indicators for a conversation.

        Returns:
            Coroutine function that detaches the listener
        """
        async with self._locks[conversation_id]:
            if conversation_id not in self._subscriptions:

                async def handle(data: str) -> None:
                    self._dispatch(conversation_id, data)

                self._subscriptions[conversation_id] = await self._transport.subscribe(
                    self.topic_for(conversation_id), handle
                )
            detach = self._events.subscribe(conversation_id, listener)

        async def unsubscribe() -> None:
            async with self._locks[conversation_id]:
                detach()
                if self._events.listener_count(conversation_id):
                    return
                transport_unsubscribe = self._subscriptions.pop(conversation_id, None)
                if transport_unsubscribe is not None:
                    await transport_unsubscribe()

        return unsubscribe

    def _dispatch(self, conversation_id: str, data: str) -> None:
        try:
            event = TypingEvent.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding malformed typing indicator for {conversation_id}: {e}")
            return
        if event.conversation_id != conversation_id:
            return
        self._events.emit(conversation_id, event)
