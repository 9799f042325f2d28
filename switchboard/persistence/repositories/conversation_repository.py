"""Conversation and membership repository."""

from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.conversation import (
    Conversation,
    ConversationMember,
    MessageRecord,
)
from switchboard.persistence.repositories.base import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for conversations and their members."""

    def __init__(self, session: AsyncSession):
        super().__init__(Conversation, session)

    async def ensure(
        self,
        conversation_id: str,
        participant_ids: list[str],
        title: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Create the conversation and any missing memberships."""
        now = now or datetime.utcnow()
        await self.insert_ignore(
            {
                "id": conversation_id,
                "title": title,
                "last_activity_at": now,
                "created_at": now,
            },
            ["id"],
        )
        for participant_id in participant_ids:
            stmt = self._insert(ConversationMember).values(
                conversation_id=conversation_id,
                participant_id=participant_id,
                joined_at=now,
            ).on_conflict_do_nothing(index_elements=["conversation_id", "participant_id"])
            await self.session.execute(stmt)
        await self.session.commit()

    async def touch(self, conversation_id: str, preview: str, at: datetime) -> None:
        """Record the latest message preview, moving the conversation to the top.

        Older messages arriving late never overwrite a newer preview.
        """
        stmt = (
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                or_(
                    Conversation.last_message_at.is_(None),
                    Conversation.last_message_at <= at,
                ),
            )
            .values(last_message_preview=preview, last_message_at=at, last_activity_at=at)
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def get_member(
        self, conversation_id: str, participant_id: str
    ) -> ConversationMember | None:
        stmt = select(ConversationMember).where(
            ConversationMember.conversation_id == conversation_id,
            ConversationMember.participant_id == participant_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_member_ids(self, conversation_id: str) -> list[str]:
        stmt = (
            select(ConversationMember.participant_id)
            .where(ConversationMember.conversation_id == conversation_id)
            .order_by(ConversationMember.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_participant(
        self, participant_id: str, limit: int = 100
    ) -> list[Conversation]:
        """Conversations the participant belongs to, most recent activity first."""
        stmt = (
            select(Conversation)
            .join(ConversationMember, ConversationMember.conversation_id == Conversation.id)
            .where(ConversationMember.participant_id == participant_id)
            .order_by(Conversation.last_activity_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def advance_read_marker(
        self, conversation_id: str, participant_id: str, up_to: datetime
    ) -> bool:
        """Move ``last_read_at`` forward to ``up_to``; never moves it back.

        Returns:
            True if the marker moved
        """
        stmt = (
            update(ConversationMember)
            .where(
                ConversationMember.conversation_id == conversation_id,
                ConversationMember.participant_id == participant_id,
                or_(
                    ConversationMember.last_read_at.is_(None),
                    ConversationMember.last_read_at < up_to,
                ),
            )
            .values(last_read_at=up_to)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def unread_count(self, conversation_id: str, participant_id: str) -> int:
        """Count messages from others newer than the participant's read marker."""
        member = await self.get_member(conversation_id, participant_id)
        conditions = [
            MessageRecord.conversation_id == conversation_id,
            MessageRecord.sender_id != participant_id,
        ]
        if member is not None and member.last_read_at is not None:
            conditions.append(MessageRecord.created_at > member.last_read_at)
        stmt = select(func.count()).select_from(MessageRecord).where(and_(*conditions))
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
