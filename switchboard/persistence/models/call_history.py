"""Call history model."""

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint

from switchboard.persistence.database import Base


class CallHistoryRecord(Base):
    """One finished call as seen by one participant (``owner_id``)."""

    __tablename__ = "call_history"
    __table_args__ = (
        UniqueConstraint("call_id", "owner_id", name="uq_call_history_call_owner"),
        Index("ix_call_history_owner_started", "owner_id", "started_at"),
    )

    id = Column(String(64), primary_key=True)
    call_id = Column(String(64), nullable=False, index=True)
    owner_id = Column(String(64), nullable=False)
    caller_id = Column(String(64), nullable=False)
    callee_id = Column(String(64), nullable=False)
    call_type = Column(String(10), nullable=False)  # voice, video
    final_status = Column(String(20), nullable=False)  # completed, missed, declined, no_answer, failed
    duration = Column(Integer, nullable=False, default=0)  # seconds
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<CallHistoryRecord(call_id={self.call_id}, status={self.final_status})>"
