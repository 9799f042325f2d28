"""Call session and call history domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CallType(str, Enum):
    """Media kind of a call."""

    VOICE = "voice"
    VIDEO = "video"


class CallDirection(str, Enum):
    """Whether the local participant placed or received the call."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"


class CallState(str, Enum):
    """Lifecycle state of a call session."""

    IDLE = "idle"
    DIALING = "dialing"
    RINGING = "ringing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ENDED = "ended"
    FAILED = "failed"
    DECLINED = "declined"
    MISSED = "missed"
    NO_ANSWER = "no_answer"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    CallState.ENDED,
    CallState.FAILED,
    CallState.DECLINED,
    CallState.MISSED,
    CallState.NO_ANSWER,
})

# Allowed state transitions. Terminal states have no outgoing edges.
CALL_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.IDLE: frozenset({CallState.DIALING, CallState.RINGING, CallState.FAILED}),
    CallState.DIALING: frozenset({
        CallState.RINGING,
        CallState.CONNECTING,
        CallState.DECLINED,
        CallState.MISSED,
        CallState.NO_ANSWER,
        CallState.FAILED,
    }),
    CallState.RINGING: frozenset({
        CallState.CONNECTING,
        CallState.DECLINED,
        CallState.MISSED,
        CallState.NO_ANSWER,
        CallState.FAILED,
    }),
    CallState.CONNECTING: frozenset({
        CallState.CONNECTED,
        CallState.DECLINED,
        CallState.ENDED,
        CallState.FAILED,
    }),
    CallState.CONNECTED: frozenset({
        CallState.RECONNECTING,
        CallState.ENDED,
        CallState.FAILED,
    }),
    CallState.RECONNECTING: frozenset({
        CallState.CONNECTED,
        CallState.ENDED,
        CallState.FAILED,
    }),
}


def can_transition(current: CallState, target: CallState) -> bool:
    """Check whether ``current -> target`` is a defined transition."""
    return target in CALL_TRANSITIONS.get(current, frozenset())


class CallHistoryStatus(str, Enum):
    """Final classification recorded in call history."""

    COMPLETED = "completed"
    MISSED = "missed"
    DECLINED = "declined"
    NO_ANSWER = "no_answer"
    FAILED = "failed"


# Terminal state reached when a caller asks for a specific history status
OVERRIDE_STATES: dict[CallHistoryStatus, CallState] = {
    CallHistoryStatus.COMPLETED: CallState.ENDED,
    CallHistoryStatus.MISSED: CallState.MISSED,
    CallHistoryStatus.DECLINED: CallState.DECLINED,
    CallHistoryStatus.NO_ANSWER: CallState.NO_ANSWER,
    CallHistoryStatus.FAILED: CallState.FAILED,
}


class MediaEvent(str, Enum):
    """Connection events reported by the media / peer-connection layer."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECOVERED = "recovered"
    FAILED = "failed"


@dataclass
class CallControls:
    """Local media controls. Never shared with the remote peer."""

    muted: bool = False
    speaker_on: bool = False
    video_enabled: bool = False


@dataclass(frozen=True)
class CallHistoryEntry:
    """Durable record of one finished call session."""

    id: str
    call_id: str
    owner_id: str
    caller_id: str
    callee_id: str
    call_type: CallType
    final_status: CallHistoryStatus
    duration: int
    started_at: datetime
    ended_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValueError("Call duration cannot be negative")
        if self.final_status == CallHistoryStatus.COMPLETED and self.duration == 0:
            raise ValueError("A completed call must have a positive duration")

    @property
    def is_incoming(self) -> bool:
        return self.callee_id == self.owner_id

    @property
    def remote_participant_id(self) -> str:
        return self.caller_id if self.is_incoming else self.callee_id


@dataclass(frozen=True)
class CallSnapshot:
    """Immutable view of a call session handed to listeners and the API."""

    call_id: str
    local_participant_id: str
    remote_participant_id: str
    call_type: CallType
    direction: CallDirection
    state: CallState
    started_at: datetime
    connected_at: datetime | None
    ended_at: datetime | None
    controls: CallControls = field(default_factory=CallControls)
    previous_state: CallState | None = None


def format_duration(seconds: int) -> str:
    """Render a call duration the way call history shows it (``42s``, ``3:05``)."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"
