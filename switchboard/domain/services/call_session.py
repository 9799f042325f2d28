"""Call session state machine.

A session owns one call's lifecycle. Its methods are only ever invoked from
the call's actor (see ``CallCoordinator``), so state changes never interleave.
Timers re-enter through the same actor via ``reenter``.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from switchboard.core.clock import Clock
from switchboard.core.exceptions import CallStateError
from switchboard.core.ids import generate_history_id
from switchboard.core.scheduler import TaskScheduler
from switchboard.domain.models.call import (
    OVERRIDE_STATES,
    CallControls,
    CallDirection,
    CallHistoryEntry,
    CallHistoryStatus,
    CallSnapshot,
    CallState,
    CallType,
    MediaEvent,
    can_transition,
)
from switchboard.domain.models.signals import (
    AnswerPayload,
    AnswerSignal,
    HangupSignal,
    IceCandidatePayload,
    IceCandidateSignal,
    OfferPayload,
    OfferSignal,
    RejectSignal,
    Signal,
    SignalPayload,
)
from switchboard.infrastructure.media import PeerConnectionAdapter
from switchboard.infrastructure.signaling.channel import SignalChannel

logger = logging.getLogger(__name__)

NO_ANSWER_TIMER = "no-answer"
RING_TIMER = "ring"
RECONNECT_TIMER = "reconnect"

Reenter = Callable[[Callable[[], Awaitable[Any]]], Awaitable[Any]]

# Direct mapping for terminal states other than ENDED
_HISTORY_STATUS = {
    CallState.MISSED: CallHistoryStatus.MISSED,
    CallState.DECLINED: CallHistoryStatus.DECLINED,
    CallState.NO_ANSWER: CallHistoryStatus.NO_ANSWER,
    CallState.FAILED: CallHistoryStatus.FAILED,
}


class CallSession:
    """One call between the local participant and a remote participant."""

    def __init__(
        self,
        call_id: str,
        local_participant_id: str,
        remote_participant_id: str,
        call_type: CallType,
        direction: CallDirection,
        channel: SignalChannel,
        peer: PeerConnectionAdapter,
        reenter: Reenter,
        on_change: Callable[[CallSnapshot], None],
        clock: Clock | None = None,
        no_answer_timeout: float = 30.0,
        reconnect_timeout: float = 10.0,
    ) -> None:
        self.call_id = call_id
        self.local_participant_id = local_participant_id
        self.remote_participant_id = remote_participant_id
        self.call_type = call_type
        self.direction = direction
        self.state = CallState.IDLE
        self.previous_state: CallState | None = None
        self.controls = CallControls(video_enabled=call_type == CallType.VIDEO)
        self.history_entry: CallHistoryEntry | None = None

        self._channel = channel
        self._peer = peer
        self._reenter = reenter
        self._on_change = on_change
        self._clock = clock or Clock()
        self._no_answer_timeout = no_answer_timeout
        self._reconnect_timeout = reconnect_timeout
        self._timers = TaskScheduler(owner=call_id)

        self.started_at: datetime = self._clock.now()
        self.connected_at: datetime | None = None
        self.ended_at: datetime | None = None

        self._next_seq = 0
        self._last_remote_seq = 0
        self._remote_offer_sdp: str | None = None

    # --- Derived state ---

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration(self) -> int:
        """Whole seconds between connection and end, 0 if never connected."""
        if self.connected_at is None or self.ended_at is None:
            return 0
        return max(0, int((self.ended_at - self.connected_at).total_seconds()))

    @property
    def caller_id(self) -> str:
        if self.direction == CallDirection.OUTGOING:
            return self.local_participant_id
        return self.remote_participant_id

    @property
    def callee_id(self) -> str:
        if self.direction == CallDirection.OUTGOING:
            return self.remote_participant_id
        return self.local_participant_id

    def snapshot(self) -> CallSnapshot:
        return CallSnapshot(
            call_id=self.call_id,
            local_participant_id=self.local_participant_id,
            remote_participant_id=self.remote_participant_id,
            call_type=self.call_type,
            direction=self.direction,
            state=self.state,
            started_at=self.started_at,
            connected_at=self.connected_at,
            ended_at=self.ended_at,
            controls=CallControls(
                muted=self.controls.muted,
                speaker_on=self.controls.speaker_on,
                video_enabled=self.controls.video_enabled,
            ),
            previous_state=self.previous_state,
        )

    # --- Transitions ---

    def _set_state(self, target: CallState) -> bool:
        if not can_transition(self.state, target):
            logger.warning(
                f"Ignoring transition {self.state.value} -> {target.value}",
                extra={"call_id": self.call_id},
            )
            return False
        self.previous_state = self.state
        self.state = target
        logger.info(
            f"Call {self.call_id}: {self.previous_state.value} -> {target.value}",
            extra={"call_id": self.call_id},
        )
        self._on_change(self.snapshot())
        return True

    def _history_status(self) -> CallHistoryStatus:
        if self.state == CallState.ENDED:
            if self.connected_at is not None and self.duration > 0:
                return CallHistoryStatus.COMPLETED
            return CallHistoryStatus.MISSED
        return _HISTORY_STATUS[self.state]

    def _finish(self, target: CallState) -> CallHistoryEntry:
        """Enter a terminal state and build the history entry for it."""
        self._timers.cancel_all()
        self.previous_state = self.state
        self.state = target
        self.ended_at = self._clock.now()
        self.history_entry = CallHistoryEntry(
            id=generate_history_id(),
            call_id=self.call_id,
            owner_id=self.local_participant_id,
            caller_id=self.caller_id,
            callee_id=self.callee_id,
            call_type=self.call_type,
            final_status=self._history_status(),
            duration=self.duration,
            started_at=self.started_at,
            ended_at=self.ended_at,
        )
        logger.info(
            f"Call {self.call_id} finished: {self.previous_state.value} -> {target.value} "
            f"({self.history_entry.final_status.value}, {self.duration}s)",
            extra={"call_id": self.call_id},
        )
        self._on_change(self.snapshot())
        return self.history_entry

    async def _terminate(self, target: CallState, send_hangup: bool) -> CallHistoryEntry:
        entry = self._finish(target)
        if send_hangup:
            await self._send(HangupSignal, SignalPayload(call_id=self.call_id))
        await self._close_peer()
        return entry

    async def _close_peer(self) -> None:
        try:
            await self._peer.close()
        except Exception:
            logger.exception(
                f"Closing peer connection for {self.call_id} failed",
                extra={"call_id": self.call_id},
            )

    async def _send(self, signal_cls: type, payload: Any) -> bool:
        self._next_seq += 1
        signal = signal_cls(
            sender=self.local_participant_id,
            to=self.remote_participant_id,
            seq=self._next_seq,
            payload=payload,
        )
        return await self._channel.send(signal)

    def _arm(self, name: str, delay: float, handler: Callable[[], Awaitable[None]]) -> None:
        async def fire() -> None:
            await self._reenter(handler)

        self._timers.schedule(name, delay, fire)

    # --- Local operations ---

    async def start_outgoing(self) -> None:
        """Place the call: dialing, offer, then ringing once the offer is out."""
        self._set_state(CallState.DIALING)
        self._arm(NO_ANSWER_TIMER, self._no_answer_timeout, self._on_no_answer_timeout)
        try:
            sdp = await self._peer.create_offer(self.call_type)
        except Exception as e:
            logger.error(
                f"Could not create offer for {self.call_id}: {e}",
                extra={"call_id": self.call_id},
            )
            await self._terminate(CallState.FAILED, send_hangup=False)
            return

        sent = await self._send(
            OfferSignal,
            OfferPayload(call_id=self.call_id, call_type=self.call_type, sdp=sdp),
        )
        if self.is_terminal:
            return
        if sent:
            self._set_state(CallState.RINGING)
        else:
            logger.warning(
                f"Offer for {self.call_id} was not published, waiting for the no-answer timeout",
                extra={"call_id": self.call_id},
            )

    async def start_incoming(self, offer: OfferSignal) -> None:
        """Ring for an inbound offer."""
        if offer.seq is not None:
            self._last_remote_seq = offer.seq
        self._remote_offer_sdp = offer.payload.sdp
        self._set_state(CallState.RINGING)
        self._arm(RING_TIMER, self._no_answer_timeout, self._on_ring_timeout)

    async def answer(self) -> None:
        if self.direction != CallDirection.INCOMING or self.state != CallState.RINGING:
            raise CallStateError(self.call_id, "answer", self.state.value)
        self._timers.cancel(RING_TIMER)
        self._set_state(CallState.CONNECTING)
        try:
            sdp = await self._peer.create_answer(self._remote_offer_sdp or "", self.call_type)
        except Exception as e:
            logger.error(
                f"Could not create answer for {self.call_id}: {e}",
                extra={"call_id": self.call_id},
            )
            await self._terminate(CallState.FAILED, send_hangup=True)
            return
        if not await self._send(AnswerSignal, AnswerPayload(call_id=self.call_id, sdp=sdp)):
            # Media events or the caller's hangup settle the call
            logger.warning(
                f"Answer for {self.call_id} was not published",
                extra={"call_id": self.call_id},
            )

    async def decline(self) -> CallHistoryEntry:
        if self.direction != CallDirection.INCOMING or self.state != CallState.RINGING:
            raise CallStateError(self.call_id, "decline", self.state.value)
        entry = self._finish(CallState.DECLINED)
        await self._send(RejectSignal, SignalPayload(call_id=self.call_id))
        await self._close_peer()
        return entry

    async def end(self, override: CallHistoryStatus | None = None) -> CallHistoryEntry:
        """Hang up from any non-terminal state.

        Without an override the call ends as ``ended`` once past ringing and
        ``missed`` before that.
        """
        if self.is_terminal:
            return self.history_entry
        if override is not None:
            target = OVERRIDE_STATES[override]
        elif self.state in (CallState.CONNECTING, CallState.CONNECTED, CallState.RECONNECTING):
            target = CallState.ENDED
        else:
            target = CallState.MISSED
        return await self._terminate(target, send_hangup=True)

    async def toggle_mute(self) -> bool:
        self.controls.muted = not self.controls.muted
        await self._peer.set_audio_muted(self.controls.muted)
        self._on_change(self.snapshot())
        return self.controls.muted

    async def toggle_speaker(self) -> bool:
        self.controls.speaker_on = not self.controls.speaker_on
        await self._peer.set_speaker(self.controls.speaker_on)
        self._on_change(self.snapshot())
        return self.controls.speaker_on

    async def toggle_video(self) -> bool:
        self.controls.video_enabled = not self.controls.video_enabled
        await self._peer.set_video_enabled(self.controls.video_enabled)
        self._on_change(self.snapshot())
        return self.controls.video_enabled

    async def send_ice_candidate(self, candidate: dict[str, Any]) -> bool:
        if self.is_terminal:
            return False
        return await self._send(
            IceCandidateSignal,
            IceCandidatePayload(call_id=self.call_id, candidate=candidate),
        )

    # --- Remote input ---

    async def handle_signal(self, signal: Signal) -> CallHistoryEntry | None:
        """Apply an inbound signal.

        Returns:
            The history entry if the signal ended the call
        """
        if self.is_terminal:
            logger.debug(
                f"Ignoring {signal.type} for finished call {self.call_id}",
                extra={"call_id": self.call_id},
            )
            return None
        if signal.seq is not None:
            if signal.seq <= self._last_remote_seq:
                logger.debug(
                    f"Ignoring stale {signal.type} (seq {signal.seq}) for {self.call_id}",
                    extra={"call_id": self.call_id},
                )
                return None
            self._last_remote_seq = signal.seq

        if isinstance(signal, AnswerSignal):
            await self._on_remote_answer(signal)
        elif isinstance(signal, RejectSignal):
            if self.state in (CallState.DIALING, CallState.RINGING, CallState.CONNECTING):
                return await self._terminate(CallState.DECLINED, send_hangup=False)
        elif isinstance(signal, HangupSignal):
            if self.state in (CallState.CONNECTING, CallState.CONNECTED, CallState.RECONNECTING):
                return await self._terminate(CallState.ENDED, send_hangup=False)
            return await self._terminate(CallState.MISSED, send_hangup=False)
        elif isinstance(signal, IceCandidateSignal):
            await self._peer.add_ice_candidate(signal.payload.candidate)
        elif isinstance(signal, OfferSignal):
            logger.debug(
                f"Duplicate offer for {self.call_id} ignored",
                extra={"call_id": self.call_id},
            )
        return None

    async def _on_remote_answer(self, signal: AnswerSignal) -> None:
        if self.direction != CallDirection.OUTGOING or self.state not in (
            CallState.DIALING,
            CallState.RINGING,
        ):
            logger.warning(
                f"Unexpected answer for {self.call_id} in state {self.state.value}",
                extra={"call_id": self.call_id},
            )
            return
        self._timers.cancel(NO_ANSWER_TIMER)
        self._set_state(CallState.CONNECTING)
        try:
            await self._peer.apply_answer(signal.payload.sdp)
        except Exception as e:
            logger.error(
                f"Could not apply answer for {self.call_id}: {e}",
                extra={"call_id": self.call_id},
            )
            await self._terminate(CallState.FAILED, send_hangup=True)

    async def handle_media_event(self, event: MediaEvent) -> CallHistoryEntry | None:
        """Apply a connection event from the peer-connection layer."""
        if self.is_terminal:
            return None

        if event == MediaEvent.CONNECTED:
            if self.state == CallState.CONNECTING:
                self.connected_at = self._clock.now()
                self._set_state(CallState.CONNECTED)
            elif self.state == CallState.RECONNECTING:
                self._timers.cancel(RECONNECT_TIMER)
                self._set_state(CallState.CONNECTED)
        elif event == MediaEvent.DISCONNECTED:
            if self.state == CallState.CONNECTED:
                self._set_state(CallState.RECONNECTING)
                self._arm(RECONNECT_TIMER, self._reconnect_timeout, self._on_reconnect_timeout)
        elif event == MediaEvent.RECOVERED:
            if self.state == CallState.RECONNECTING:
                self._timers.cancel(RECONNECT_TIMER)
                self._set_state(CallState.CONNECTED)
        elif event == MediaEvent.FAILED:
            return await self._terminate(CallState.FAILED, send_hangup=True)
        return None

    # --- Timers ---

    async def _on_no_answer_timeout(self) -> CallHistoryEntry | None:
        if self.state not in (CallState.DIALING, CallState.RINGING):
            return None
        logger.info(f"No answer for call {self.call_id}", extra={"call_id": self.call_id})
        return await self._terminate(CallState.MISSED, send_hangup=True)

    async def _on_ring_timeout(self) -> CallHistoryEntry | None:
        if self.state != CallState.RINGING:
            return None
        logger.info(f"Incoming call {self.call_id} not answered", extra={"call_id": self.call_id})
        return await self._terminate(CallState.NO_ANSWER, send_hangup=True)

    async def _on_reconnect_timeout(self) -> CallHistoryEntry | None:
        if self.state != CallState.RECONNECTING:
            return None
        logger.warning(f"Reconnection timeout for {self.call_id}", extra={"call_id": self.call_id})
        return await self._terminate(CallState.FAILED, send_hangup=True)

    def dispose(self) -> None:
        """Cancel all timers (coordinator shutdown)."""
        self._timers.cancel_all()
