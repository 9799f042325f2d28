"""Durable conversations and messages with realtime insert push."""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from switchboard.core.events import KeyedEventStream, Listener, Unsubscribe
from switchboard.domain.models.message import (
    ConversationSummary,
    Message,
    MessageStatus,
    MessageType,
    predecessors,
    preview_text,
)
from switchboard.persistence.models.conversation import MessageRecord
from switchboard.persistence.repositories.conversation_repository import ConversationRepository
from switchboard.persistence.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)


def message_from_record(record: MessageRecord) -> Message:
    return Message(
        id=record.id,
        conversation_id=record.conversation_id,
        sender_id=record.sender_id,
        body=record.body,
        type=MessageType(record.type),
        status=MessageStatus(record.status),
        created_at=record.created_at,
        server_id=record.server_id,
        updated_at=record.updated_at,
    )


class ConversationStore:
    """Conversations, messages and read markers.

    Every newly inserted message is pushed to listeners subscribed to its
    conversation once the insert is committed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._inserts: KeyedEventStream[Message] = KeyedEventStream("message-inserts")

    def subscribe_inserts(self, conversation_id: str, listener: Listener) -> Unsubscribe:
        """Receive every message inserted into ``conversation_id``."""
        return self._inserts.subscribe(conversation_id, listener)

    async def ensure_conversation(
        self,
        conversation_id: str,
        participant_ids: list[str],
        title: str | None = None,
    ) -> None:
        async with self._session_factory() as session:
            await ConversationRepository(session).ensure(conversation_id, participant_ids, title)

    async def save_message(self, message: Message) -> bool:
        """Insert a message and update the conversation preview.

        Inserting an ID that already exists is a no-op.

        Returns:
            True if the message was new
        """
        async with self._session_factory() as session:
            conversations = ConversationRepository(session)
            await conversations.ensure(
                message.conversation_id, [message.sender_id], now=message.created_at
            )
            inserted = await MessageRepository(session).insert_ignore(
                {
                    "id": message.id,
                    "server_id": message.server_id,
                    "conversation_id": message.conversation_id,
                    "sender_id": message.sender_id,
                    "body": message.body,
                    "type": message.type.value,
                    "status": message.status.value,
                    "created_at": message.created_at,
                    "updated_at": message.created_at,
                },
                ["id"],
            )
            if not inserted:
                return False
            await conversations.touch(
                message.conversation_id,
                preview_text(message.type, message.body),
                message.created_at,
            )

        self._inserts.emit(message.conversation_id, message)
        return True

    async def get_message(self, message_id: str) -> Message | None:
        async with self._session_factory() as session:
            record = await MessageRepository(session).get_by_id(message_id)
            return message_from_record(record) if record else None

    async def update_status(
        self,
        message_id: str,
        status: MessageStatus,
        server_id: str | None = None,
    ) -> bool:
        """Advance a message's status if the transition is allowed.

        Returns:
            True if the status changed
        """
        allowed_from = [s.value for s in predecessors(status)]
        async with self._session_factory() as session:
            return await MessageRepository(session).update_status(
                message_id, status.value, allowed_from, server_id=server_id
            )

    async def delete_message(self, message_id: str) -> bool:
        async with self._session_factory() as session:
            return await MessageRepository(session).delete(message_id)

    async def list_messages(
        self,
        conversation_id: str,
        limit: int = 100,
        before: datetime | None = None,
    ) -> list[Message]:
        """Messages in display order (ascending ``created_at``)."""
        async with self._session_factory() as session:
            records = await MessageRepository(session).list_by_conversation(
                conversation_id, limit=limit, before=before
            )
            return [message_from_record(r) for r in records]

    async def list_by_status(
        self, status: MessageStatus, sender_id: str | None = None
    ) -> list[Message]:
        async with self._session_factory() as session:
            records = await MessageRepository(session).list_by_status(status.value, sender_id)
            return [message_from_record(r) for r in records]

    async def list_conversations(
        self, participant_id: str, limit: int = 100
    ) -> list[ConversationSummary]:
        """Conversations of a participant, most recent activity first."""
        async with self._session_factory() as session:
            repo = ConversationRepository(session)
            conversations = await repo.list_for_participant(participant_id, limit=limit)
            summaries = []
            for conversation in conversations:
                summaries.append(
                    ConversationSummary(
                        id=conversation.id,
                        title=conversation.title,
                        last_message_preview=conversation.last_message_preview,
                        last_message_at=conversation.last_message_at,
                        last_activity_at=conversation.last_activity_at,
                        unread_count=await repo.unread_count(conversation.id, participant_id),
                        participant_ids=await repo.list_member_ids(conversation.id),
                    )
                )
            return summaries

    async def unread_count(self, conversation_id: str, participant_id: str) -> int:
        async with self._session_factory() as session:
            return await ConversationRepository(session).unread_count(
                conversation_id, participant_id
            )

    async def mark_read(
        self,
        conversation_id: str,
        participant_id: str,
        up_to: datetime | None = None,
    ) -> list[Message]:
        """Advance the participant's read marker.

        Args:
            conversation_id: Conversation to mark
            participant_id: Reader
            up_to: Read everything created at or before this time
                (defaults to the newest message)

        Returns:
            Inbound messages that became read by this call, oldest first
        """
        async with self._session_factory() as session:
            conversations = ConversationRepository(session)
            messages = MessageRepository(session)
            if up_to is None:
                up_to = await messages.latest_created_at(conversation_id)
                if up_to is None:
                    return []
            await conversations.ensure(conversation_id, [participant_id])
            member = await conversations.get_member(conversation_id, participant_id)
            previous = member.last_read_at if member else None
            if previous is not None and previous >= up_to:
                return []
            newly_read = await messages.list_inbound_between(
                conversation_id, participant_id, previous, up_to
            )
            moved = await conversations.advance_read_marker(
                conversation_id, participant_id, up_to
            )
            if not moved:
                return []
            logger.debug(
                f"Marked {len(newly_read)} messages read",
                extra={"conversation_id": conversation_id},
            )
            return [message_from_record(r) for r in newly_read]
