"""Persistence models."""

from switchboard.persistence.models.call_history import CallHistoryRecord
from switchboard.persistence.models.conversation import (
    Conversation,
    ConversationMember,
    MessageRecord,
)
from switchboard.persistence.models.retry_queue import RetryQueueRecord

__all__ = [
    "CallHistoryRecord",
    "Conversation",
    "ConversationMember",
    "MessageRecord",
    "RetryQueueRecord",
]
