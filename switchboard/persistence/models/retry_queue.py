"""Retry queue model."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from switchboard.persistence.database import Base


class RetryQueueRecord(Base):
    """A message awaiting (re)delivery. ``id`` equals the message ID."""

    __tablename__ = "retry_queue"

    id = Column(String(64), primary_key=True)
    kind = Column(String(20), nullable=False, default="message")
    conversation_id = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    attempt_count = Column(Integer, nullable=False, default=0)
    next_retry_at = Column(DateTime, nullable=False, index=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<RetryQueueRecord(id={self.id}, attempts={self.attempt_count})>"
