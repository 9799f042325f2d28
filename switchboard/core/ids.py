"""Identifier generation for locally originated entities."""

import secrets
import uuid
from datetime import datetime, timezone

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_message_id(now: datetime) -> str:
    """Generate a globally unique local message ID.

    Format is ``msg_<epoch milliseconds>_<random suffix>``. The local ID is the
    stable correlation key for status updates even after the server assigns
    its own ID.

    Args:
        now: Creation time of the message

    Returns:
        Local message ID
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    epoch_ms = int(now.timestamp() * 1000)
    return f"msg_{epoch_ms}_{_random_suffix()}"


def generate_call_id() -> str:
    """Generate an opaque call ID."""
    return f"call_{uuid.uuid4().hex}"


def generate_history_id() -> str:
    """Generate a call history entry ID."""
    return uuid.uuid4().hex
