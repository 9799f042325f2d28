"""Offline-aware message delivery with durable retry.

Outbound messages are persisted together with a retry-queue entry before any
network activity, so a message is never lost between being shown and being
acknowledged. Network hand-off happens outside the conversation's actor;
all bookkeeping that follows (acknowledgement, rescheduling, failure) runs
inside it, which serializes it with cancel and delete for the same
conversation.
"""

import asyncio
import json
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from switchboard.core.actors import ActorRegistry
from switchboard.core.clock import Clock
from switchboard.core.context import set_conversation_context
from switchboard.core.events import EventStream, Listener, Unsubscribe
from switchboard.core.exceptions import (
    MessageNotFoundError,
    MessageStateError,
    PermanentTransportError,
    SignalingUnavailableError,
    TransientTransportError,
)
from switchboard.core.ids import generate_message_id
from switchboard.core.scheduler import TaskScheduler
from switchboard.domain.models.message import (
    ACKNOWLEDGED_STATUSES,
    Message,
    MessageStatus,
    MessageType,
    RetryQueueEntry,
)
from switchboard.domain.services.retry_policy import RetryPolicy
from switchboard.infrastructure.connectivity import ConnectivityChange, ConnectivityMonitor
from switchboard.infrastructure.messaging.base import DeliveryReceipt, MessageTransport
from switchboard.infrastructure.signaling.base import AsyncUnsubscribe
from switchboard.infrastructure.signaling.typing_indicators import TypingChannel, TypingEvent
from switchboard.persistence.stores.conversation_store import ConversationStore
from switchboard.persistence.stores.retry_queue_store import RetryQueueStore

logger = logging.getLogger(__name__)


class MessageDeliveryPipeline:
    """Sends messages for one local participant and tracks their status."""

    def __init__(
        self,
        participant_id: str,
        conversation_store: ConversationStore,
        retry_store: RetryQueueStore,
        transport: MessageTransport,
        connectivity: ConnectivityMonitor,
        policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        flush_interval_ms: int = 100,
        rng: random.Random | None = None,
        typing: TypingChannel | None = None,
    ) -> None:
        self.participant_id = participant_id
        self._conversations = conversation_store
        self._retry_queue = retry_store
        self._transport = transport
        self._connectivity = connectivity
        self._policy = policy or RetryPolicy()
        self._clock = clock or Clock()
        self._flush_interval = flush_interval_ms / 1000
        self._rng = rng
        self._typing = typing

        self._actors = ActorRegistry(name="conversations")
        self._timers = TaskScheduler(owner="delivery")
        self._tasks: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()
        self._flushing = False
        self._flush_requested = False
        self._unsubscribe_connectivity: Unsubscribe | None = None

        self.updates: EventStream[Message] = EventStream("message-updates")

    # --- Lifecycle ---

    async def start(self) -> None:
        """Follow connectivity changes and restore persisted work."""
        if self._unsubscribe_connectivity is None:
            self._unsubscribe_connectivity = self._connectivity.subscribe(
                self._on_connectivity_change
            )
        await self.restore()

    async def stop(self) -> None:
        if self._unsubscribe_connectivity is not None:
            self._unsubscribe_connectivity()
            self._unsubscribe_connectivity = None
        self._timers.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._actors.close()

    async def join(self) -> None:
        """Wait for all background delivery work started so far (and what it starts)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Awaitable[Any], name: str) -> None:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"Background task {task.get_name()} failed",
                exc_info=task.exception(),
            )

    async def _in_conversation(
        self, conversation_id: str, job: Callable[[], Awaitable[Any]]
    ) -> Any:
        async def wrapped() -> Any:
            set_conversation_context(conversation_id)
            return await job()

        return await self._actors.submit(conversation_id, wrapped)

    def _publish(self, message: Message | None) -> None:
        if message is not None:
            self.updates.emit(message)

    # --- Sending ---

    async def send(
        self,
        conversation_id: str,
        content: str,
        type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Queue a message for delivery and return it in ``sending`` state.

        The message and its retry entry are persisted before this returns;
        delivery itself happens in the background.
        """
        if not content or (type == MessageType.TEXT and not content.strip()):
            raise ValueError("Message content cannot be empty")

        now = self._clock.now()
        message = Message(
            id=generate_message_id(now),
            conversation_id=conversation_id,
            sender_id=self.participant_id,
            body=content,
            type=type,
            status=MessageStatus.SENDING,
            created_at=now,
        )

        async def persist() -> None:
            await self._conversations.save_message(message)
            try:
                await self._retry_queue.upsert(
                    RetryQueueEntry(
                        id=message.id,
                        conversation_id=conversation_id,
                        payload=message.to_payload(),
                        created_at=now,
                        next_retry_at=now,
                    )
                )
            except Exception:
                # No message without a retry entry
                await self._conversations.delete_message(message.id)
                raise

        await self._in_conversation(conversation_id, persist)
        logger.info(
            f"Queued {type.value} message {message.id}",
            extra={"conversation_id": conversation_id},
        )
        self._publish(message)

        if self._connectivity.is_online:
            self._spawn(self._attempt(message.id), name=f"deliver:{message.id}")
        else:
            logger.info(
                f"Offline, message {message.id} stays queued",
                extra={"conversation_id": conversation_id},
            )
        return message

    async def send_voice_message(
        self, conversation_id: str, audio_uri: str, duration: float
    ) -> Message:
        body = json.dumps({"audioUri": audio_uri, "duration": int(duration)})
        return await self.send(conversation_id, body, MessageType.VOICE)

    async def send_media_message(
        self,
        conversation_id: str,
        media_uri: str,
        media_type: MessageType,
        caption: str | None = None,
    ) -> Message:
        if media_type not in (MessageType.IMAGE, MessageType.VIDEO):
            raise ValueError(f"Unsupported media type: {media_type.value}")
        payload: dict[str, Any] = {"mediaUri": media_uri}
        if caption:
            payload["caption"] = caption
        return await self.send(conversation_id, json.dumps(payload), media_type)

    async def send_file_message(
        self,
        conversation_id: str,
        file_uri: str,
        file_name: str,
        file_size: int | None = None,
        mime_type: str | None = None,
    ) -> Message:
        payload: dict[str, Any] = {"fileUri": file_uri, "fileName": file_name}
        if file_size is not None:
            payload["fileSize"] = file_size
        if mime_type:
            payload["mimeType"] = mime_type
        return await self.send(conversation_id, json.dumps(payload), MessageType.FILE)

    async def send_location_message(
        self,
        conversation_id: str,
        latitude: float,
        longitude: float,
        address: str | None = None,
        name: str | None = None,
    ) -> Message:
        """Share a location.

        Raises:
            ValueError: If the coordinates are out of range
        """
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValueError(f"Invalid coordinates: {latitude}, {longitude}")
        payload: dict[str, Any] = {"latitude": latitude, "longitude": longitude}
        if address:
            payload["address"] = address
        if name:
            payload["locationName"] = name
        return await self.send(conversation_id, json.dumps(payload), MessageType.LOCATION)

    # --- Delivery attempts ---

    async def _attempt(self, message_id: str) -> None:
        """One delivery attempt. Offline attempts do not count."""
        if message_id in self._in_flight:
            return
        if not self._connectivity.is_online:
            logger.debug(f"Offline, deferring {message_id}")
            return

        self._in_flight.add(message_id)
        try:
            entry = await self._retry_queue.get(message_id)
            if entry is None:
                return
            message = await self._conversations.get_message(message_id)
            if message is None or message.status != MessageStatus.SENDING:
                # Gone or no longer sending
                await self._in_conversation(
                    entry.conversation_id, lambda: self._drop_entry(message_id)
                )
                return

            try:
                receipt = await self._transport.deliver(message)
            except PermanentTransportError as e:
                await self._in_conversation(
                    message.conversation_id,
                    lambda: self._on_attempt_failed(message_id, e, permanent=True),
                )
            except TransientTransportError as e:
                await self._in_conversation(
                    message.conversation_id,
                    lambda: self._on_attempt_failed(message_id, e, permanent=False),
                )
            except Exception as e:
                logger.exception(f"Unexpected error delivering {message_id}")
                await self._in_conversation(
                    message.conversation_id,
                    lambda: self._on_attempt_failed(message_id, e, permanent=False),
                )
            else:
                await self._in_conversation(
                    message.conversation_id,
                    lambda: self._on_delivered(message_id, receipt),
                )
        finally:
            self._in_flight.discard(message_id)

    async def _drop_entry(self, message_id: str) -> None:
        self._timers.cancel(message_id)
        await self._retry_queue.remove(message_id)

    async def _on_delivered(self, message_id: str, receipt: DeliveryReceipt) -> None:
        await self._apply_status(message_id, receipt.status, receipt.server_id)

    async def _on_attempt_failed(
        self, message_id: str, error: Exception, permanent: bool
    ) -> None:
        entry = await self._retry_queue.get(message_id)
        if entry is None:
            # Cancelled or acknowledged while the attempt was in flight
            return
        if permanent:
            logger.warning(f"Message {message_id} rejected: {error}")
            await self._fail(message_id)
            return

        entry.attempt_count += 1
        entry.last_error = str(error)
        if self._policy.is_exhausted(entry.attempt_count):
            logger.warning(
                f"Message {message_id} failed after {entry.attempt_count} attempts: {error}"
            )
            await self._fail(message_id)
            return

        delay_ms = self._policy.delay_for(entry.attempt_count - 1, self._rng)
        entry.next_retry_at = self._clock.now() + timedelta(milliseconds=delay_ms)
        await self._retry_queue.upsert(entry)
        self._schedule_retry(message_id, delay_ms)
        logger.info(
            f"Retrying {message_id} in {delay_ms:.0f}ms "
            f"(attempt {entry.attempt_count}/{self._policy.max_attempts}): {error}"
        )

    def _schedule_retry(self, message_id: str, delay_ms: float) -> None:
        async def retry() -> None:
            await self._attempt(message_id)

        self._timers.schedule(message_id, delay_ms / 1000, retry)

    async def _fail(self, message_id: str) -> None:
        self._timers.cancel(message_id)
        await self._retry_queue.remove(message_id)
        if await self._conversations.update_status(message_id, MessageStatus.FAILED):
            self._publish(await self._conversations.get_message(message_id))

    # --- Status ---

    async def apply_status_update(
        self,
        message_id: str,
        status: MessageStatus,
        server_id: str | None = None,
    ) -> Message:
        """Apply a status change reported for a message.

        Idempotent and monotonic: repeating an update or reporting an older
        status leaves the message unchanged. Any acknowledgement removes the
        message from the retry queue.

        Raises:
            MessageNotFoundError: If the message is unknown
        """
        message = await self._conversations.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)

        async def apply() -> Message:
            await self._apply_status(message_id, status, server_id)
            return await self._conversations.get_message(message_id)

        return await self._in_conversation(message.conversation_id, apply)

    async def _apply_status(
        self,
        message_id: str,
        status: MessageStatus,
        server_id: str | None = None,
    ) -> bool:
        if status in ACKNOWLEDGED_STATUSES:
            await self._drop_entry(message_id)
        if status == MessageStatus.FAILED:
            changed = await self._conversations.update_status(message_id, status)
            if changed:
                await self._drop_entry(message_id)
        else:
            changed = await self._conversations.update_status(
                message_id, status, server_id=server_id
            )
        if changed:
            logger.debug(f"Message {message_id} is now {status.value}")
            self._publish(await self._conversations.get_message(message_id))
        return changed

    async def cancel(self, message_id: str) -> Message:
        """Stop delivering a message; it becomes ``failed``.

        An attempt already in flight finishes, but its outcome is discarded.
        """
        message = await self._conversations.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)

        async def cancel() -> Message:
            await self._drop_entry(message_id)
            if await self._conversations.update_status(message_id, MessageStatus.FAILED):
                logger.info(f"Cancelled message {message_id}")
            updated = await self._conversations.get_message(message_id)
            self._publish(updated)
            return updated

        return await self._in_conversation(message.conversation_id, cancel)

    async def resend(self, message_id: str) -> Message:
        """Send a failed message again as a new message, removing the failed one."""
        message = await self._conversations.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        if message.status != MessageStatus.FAILED:
            raise MessageStateError(message_id, "resend", message.status.value)

        async def remove() -> None:
            await self._drop_entry(message_id)
            await self._conversations.delete_message(message_id)

        await self._in_conversation(message.conversation_id, remove)
        return await self.send(message.conversation_id, message.body, message.type)

    async def delete_message(self, message_id: str) -> bool:
        """Delete a message and any pending delivery for it."""
        message = await self._conversations.get_message(message_id)
        if message is None:
            return False

        async def delete() -> bool:
            await self._drop_entry(message_id)
            return await self._conversations.delete_message(message_id)

        return await self._in_conversation(message.conversation_id, delete)

    # --- Inbound ---

    def watch_conversation(self, conversation_id: str, listener: Listener) -> Unsubscribe:
        """Receive every message inserted into a conversation, local or remote."""
        return self._conversations.subscribe_inserts(conversation_id, listener)

    async def receive(
        self,
        message_id: str,
        conversation_id: str,
        sender_id: str,
        body: str,
        type: MessageType = MessageType.TEXT,
        created_at: datetime | None = None,
        server_id: str | None = None,
    ) -> Message:
        """Ingest a message pushed from a remote sender.

        Receiving the same message twice stores it once and acknowledges it
        once.
        """
        message = Message(
            id=message_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            body=body,
            type=type,
            status=MessageStatus.DELIVERED,
            created_at=created_at or self._clock.now(),
            server_id=server_id,
        )

        async def store() -> bool:
            await self._conversations.ensure_conversation(
                conversation_id, [self.participant_id, sender_id]
            )
            return await self._conversations.save_message(message)

        inserted = await self._in_conversation(conversation_id, store)
        if inserted:
            self._publish(message)
            await self._send_receipt(message, MessageStatus.DELIVERED)
        return message

    async def mark_read(
        self, conversation_id: str, up_to: datetime | None = None
    ) -> int:
        """Mark inbound messages read and send read receipts for them.

        Returns:
            Number of messages that became read
        """

        async def mark() -> list[Message]:
            return await self._conversations.mark_read(
                conversation_id, self.participant_id, up_to
            )

        newly_read = await self._in_conversation(conversation_id, mark)
        for message in newly_read:
            await self._send_receipt(message, MessageStatus.READ)
        return len(newly_read)

    async def send_typing_indicator(self, conversation_id: str, is_typing: bool = True) -> bool:
        """Tell the other participants that the local user started or stopped typing.

        Best effort: nothing is sent while offline and nothing is retried.
        """
        if self._typing is None or not self._connectivity.is_online:
            return False
        return await self._typing.publish(
            TypingEvent(
                conversation_id=conversation_id,
                user_id=self.participant_id,
                is_typing=is_typing,
            )
        )

    async def watch_typing(self, conversation_id: str, listener: Listener) -> AsyncUnsubscribe:
        """Receive typing indicators from the other participants of a conversation."""
        if self._typing is None:
            raise SignalingUnavailableError("Typing indicators are not configured")

        def relay(event: TypingEvent) -> Any:
            if event.user_id != self.participant_id:
                return listener(event)
            return None

        return await self._typing.subscribe(conversation_id, relay)

    async def _send_receipt(self, message: Message, status: MessageStatus) -> None:
        if not self._connectivity.is_online:
            return
        try:
            await self._transport.send_receipt(message.id, message.conversation_id, status)
        except Exception as e:
            logger.warning(
                f"Could not send {status.value} receipt for {message.id}: {e}",
                extra={"conversation_id": message.conversation_id},
            )

    # --- Recovery ---

    async def restore(self) -> int:
        """Make all unacknowledged messages immediately eligible for delivery.

        Covers every persisted retry entry plus local messages still in
        ``sending`` whose entry was lost.

        Returns:
            Number of queued messages
        """
        now = self._clock.now()
        entries = {entry.id: entry for entry in await self._retry_queue.list_all()}
        pending = await self._conversations.list_by_status(
            MessageStatus.SENDING, sender_id=self.participant_id
        )
        for message in pending:
            if message.id not in entries:
                entries[message.id] = RetryQueueEntry(
                    id=message.id,
                    conversation_id=message.conversation_id,
                    payload=message.to_payload(),
                    created_at=message.created_at,
                    next_retry_at=now,
                )
        for entry in entries.values():
            entry.next_retry_at = now
            await self._retry_queue.upsert(entry)

        if entries:
            logger.info(f"Restored {len(entries)} queued messages")
            if self._connectivity.is_online:
                self._spawn(self.flush(), name="flush:restore")
        return len(entries)

    def _on_connectivity_change(self, change: ConnectivityChange) -> None:
        if change.online:
            self._spawn(self.flush(), name="flush:reconnect")

    async def flush(self) -> int:
        """Attempt every due retry entry, oldest message first.

        Only one flush runs at a time; a flush requested while one is running
        makes it go around once more.

        Returns:
            Number of delivery attempts made
        """
        if self._flushing:
            self._flush_requested = True
            return 0
        self._flushing = True
        attempted = 0
        try:
            while True:
                self._flush_requested = False
                due = await self._retry_queue.list_due(self._clock.now())
                for index, entry in enumerate(due):
                    if not self._connectivity.is_online:
                        logger.info("Connection lost during flush")
                        return attempted
                    self._timers.cancel(entry.id)
                    await self._attempt(entry.id)
                    attempted += 1
                    if index < len(due) - 1 and self._flush_interval:
                        await asyncio.sleep(self._flush_interval)
                if not self._flush_requested:
                    break
        finally:
            self._flushing = False
        if attempted:
            logger.info(f"Flushed {attempted} queued messages")
        return attempted

    async def connection_status(self) -> dict[str, Any]:
        queued = await self._retry_queue.list_all()
        return {
            "is_online": self._connectivity.is_online,
            "network_online": self._connectivity.network_online,
            "backend_connected": self._connectivity.backend_connected,
            "queued_messages": len(queued),
            "in_flight_messages": len(self._in_flight),
        }
