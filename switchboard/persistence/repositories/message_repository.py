"""Message repository."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from switchboard.persistence.models.conversation import MessageRecord
from switchboard.persistence.repositories.base import BaseRepository


class MessageRepository(BaseRepository[MessageRecord]):
    """Repository for messages."""

    def __init__(self, session: AsyncSession):
        super().__init__(MessageRecord, session)

    async def list_by_conversation(
        self,
        conversation_id: str,
        limit: int = 100,
        before: datetime | None = None,
    ) -> list[MessageRecord]:
        """Most recent ``limit`` messages, returned in chronological order."""
        stmt = select(MessageRecord).where(MessageRecord.conversation_id == conversation_id)
        if before is not None:
            stmt = stmt.where(MessageRecord.created_at < before)
        stmt = stmt.order_by(MessageRecord.created_at.desc(), MessageRecord.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def update_status(
        self,
        message_id: str,
        status: str,
        allowed_from: list[str],
        server_id: str | None = None,
    ) -> bool:
        """Conditionally set the status of a message.

        The row is only touched if its current status is in ``allowed_from``,
        so concurrent writers cannot move a status backward.

        Returns:
            True if the row was updated
        """
        values = {"status": status, "updated_at": datetime.utcnow()}
        if server_id is not None:
            values["server_id"] = server_id
        stmt = (
            update(MessageRecord)
            .where(MessageRecord.id == message_id, MessageRecord.status.in_(allowed_from))
            .values(**values)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def list_by_status(
        self, status: str, sender_id: str | None = None
    ) -> list[MessageRecord]:
        stmt = select(MessageRecord).where(MessageRecord.status == status)
        if sender_id is not None:
            stmt = stmt.where(MessageRecord.sender_id == sender_id)
        stmt = stmt.order_by(MessageRecord.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_inbound_between(
        self,
        conversation_id: str,
        participant_id: str,
        after: datetime | None,
        up_to: datetime,
    ) -> list[MessageRecord]:
        """Messages from others in ``(after, up_to]``, oldest first."""
        stmt = select(MessageRecord).where(
            MessageRecord.conversation_id == conversation_id,
            MessageRecord.sender_id != participant_id,
            MessageRecord.created_at <= up_to,
        )
        if after is not None:
            stmt = stmt.where(MessageRecord.created_at > after)
        stmt = stmt.order_by(MessageRecord.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def latest_created_at(self, conversation_id: str) -> datetime | None:
        stmt = (
            select(MessageRecord.created_at)
            .where(MessageRecord.conversation_id == conversation_id)
            .order_by(MessageRecord.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
