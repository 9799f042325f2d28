"""Peer-connection adapter boundary.

Codec negotiation and media transport live outside this package. A call
session only needs SDP strings to exchange and a stream of connection
events, which is what this adapter exposes.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from switchboard.core.events import EventStream, Listener, Unsubscribe
from switchboard.domain.models.call import CallType, MediaEvent

logger = logging.getLogger(__name__)


class PeerConnectionAdapter(ABC):
    """One peer connection, owned by one call session."""

    def __init__(self) -> None:
        self._events: EventStream[MediaEvent] = EventStream("media")

    def bind(self, listener: Listener) -> Unsubscribe:
        """Receive connection events (connected/disconnected/recovered/failed)."""
        return self._events.subscribe(listener)

    def _notify(self, event: MediaEvent) -> None:
        self._events.emit(event)

    @abstractmethod
    async def create_offer(self, call_type: CallType) -> str:
        """Start negotiation; returns the local SDP offer."""
        pass

    @abstractmethod
    async def create_answer(self, remote_sdp: str, call_type: CallType) -> str:
        """Accept a remote offer; returns the local SDP answer."""
        pass

    @abstractmethod
    async def apply_answer(self, remote_sdp: str) -> None:
        pass

    @abstractmethod
    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None:
        pass

    async def set_audio_muted(self, muted: bool) -> None:
        pass

    async def set_speaker(self, enabled: bool) -> None:
        pass

    async def set_video_enabled(self, enabled: bool) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class NullPeerConnection(PeerConnectionAdapter):
    """Adapter with no real media.

    Produces placeholder SDP and reports ``connected`` as soon as negotiation
    completes (answer applied on the caller side, answer created on the
    callee side).
    """

    def __init__(self, auto_connect: bool = True) -> None:
        super().__init__()
        self.auto_connect = auto_connect
        self.candidates: list[dict[str, Any]] = []
        self.closed = False

    async def create_offer(self, call_type: CallType) -> str:
        return f"v=0\r\ns=switchboard-offer\r\nm={call_type.value}\r\n"

    async def create_answer(self, remote_sdp: str, call_type: CallType) -> str:
        if self.auto_connect:
            self._notify(MediaEvent.CONNECTED)
        return f"v=0\r\ns=switchboard-answer\r\nm={call_type.value}\r\n"

    async def apply_answer(self, remote_sdp: str) -> None:
        if self.auto_connect:
            self._notify(MediaEvent.CONNECTED)

    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None:
        self.candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True
