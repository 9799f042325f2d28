"""Call-related schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from switchboard.domain.models.call import (
    CallDirection,
    CallHistoryStatus,
    CallState,
    CallType,
    MediaEvent,
    format_duration,
)


class StartCallRequest(BaseModel):
    """Start call request."""

    remote_participant_id: str = Field(min_length=1)
    call_type: CallType = CallType.VOICE


class EndCallRequest(BaseModel):
    """End call request."""

    override_status: CallHistoryStatus | None = None


class MediaEventRequest(BaseModel):
    """Peer-connection event reported by the media layer."""

    event: MediaEvent


class IceCandidateRequest(BaseModel):
    """Local ICE candidate to relay to the remote peer."""

    candidate: dict[str, Any]


class CallControlsResponse(BaseModel):
    """Local media controls."""
    model_config = ConfigDict(from_attributes=True)

    muted: bool
    speaker_on: bool
    video_enabled: bool


class CallResponse(BaseModel):
    """Call session response."""
    model_config = ConfigDict(from_attributes=True)

    call_id: str
    local_participant_id: str
    remote_participant_id: str
    call_type: CallType
    direction: CallDirection
    state: CallState
    started_at: datetime
    connected_at: datetime | None = None
    ended_at: datetime | None = None
    controls: CallControlsResponse


class ToggleResponse(BaseModel):
    """New value of a toggled control."""

    enabled: bool


class CallHistoryResponse(BaseModel):
    """Call history entry response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    call_id: str
    caller_id: str
    callee_id: str
    call_type: CallType
    final_status: CallHistoryStatus
    duration: int
    started_at: datetime
    ended_at: datetime | None = None

    @computed_field
    @property
    def duration_label(self) -> str:
        """Duration as shown in the call log (``42s``, ``3:05``)."""
        return format_duration(self.duration)
