"""Context variables carrying the entity being worked on, for log correlation."""

from contextvars import ContextVar
from typing import Optional

participant_id_var: ContextVar[Optional[str]] = ContextVar("participant_id", default=None)
call_id_var: ContextVar[Optional[str]] = ContextVar("call_id", default=None)
conversation_id_var: ContextVar[Optional[str]] = ContextVar("conversation_id", default=None)


def set_participant_context(participant_id: str | None) -> None:
    """Set the local participant for the current context.

    Args:
        participant_id: Participant ID to set in context
    """
    participant_id_var.set(participant_id)


def get_participant_context() -> str | None:
    """Get the local participant of the current context."""
    return participant_id_var.get()


def set_call_context(call_id: str | None) -> None:
    call_id_var.set(call_id)


def get_call_context() -> str | None:
    return call_id_var.get()


def set_conversation_context(conversation_id: str | None) -> None:
    conversation_id_var.set(conversation_id)


def get_conversation_context() -> str | None:
    return conversation_id_var.get()

