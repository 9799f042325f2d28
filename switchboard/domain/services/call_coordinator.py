"""Call coordinator: creates call sessions and routes signals to them.

One coordinator exists per local participant. It holds the participant's
signal subscription, runs every session operation inside that call's actor,
writes call history when a session terminates and remembers recently
finished calls so that late signals for them are ignored.
"""

import logging
from collections import OrderedDict
from typing import Any, Awaitable, Callable

from switchboard.core.actors import ActorRegistry
from switchboard.core.clock import Clock
from switchboard.core.context import set_call_context
from switchboard.core.events import EventStream
from switchboard.core.exceptions import (
    CallNotFoundError,
    SignalingUnavailableError,
)
from switchboard.core.ids import generate_call_id
from switchboard.domain.models.call import (
    CallDirection,
    CallHistoryEntry,
    CallHistoryStatus,
    CallSnapshot,
    CallType,
    MediaEvent,
)
from switchboard.domain.models.signals import OfferSignal, Signal
from switchboard.domain.services.call_session import CallSession
from switchboard.infrastructure.media import PeerConnectionAdapter
from switchboard.infrastructure.signaling.channel import SignalChannel
from switchboard.persistence.stores.call_history_store import CallHistoryStore

logger = logging.getLogger(__name__)

PeerFactory = Callable[[], PeerConnectionAdapter]


class CallCoordinator:
    """Call session factory and signal router for one local participant."""

    def __init__(
        self,
        participant_id: str,
        channel: SignalChannel,
        history_store: CallHistoryStore,
        peer_factory: PeerFactory,
        clock: Clock | None = None,
        no_answer_timeout: float = 30.0,
        reconnect_timeout: float = 10.0,
        finished_cache_size: int = 256,
    ) -> None:
        self.participant_id = participant_id
        self._channel = channel
        self._history = history_store
        self._peer_factory = peer_factory
        self._clock = clock or Clock()
        self._no_answer_timeout = no_answer_timeout
        self._reconnect_timeout = reconnect_timeout
        self._finished_cache_size = finished_cache_size

        self._actors = ActorRegistry(name=f"calls:{participant_id}")
        self._sessions: dict[str, CallSession] = {}
        self._finished: OrderedDict[str, CallHistoryEntry] = OrderedDict()
        self._unsubscribe: Callable[[], Awaitable[None]] | None = None

        self.state_changes: EventStream[CallSnapshot] = EventStream("call-state")
        self.incoming_calls: EventStream[CallSnapshot] = EventStream("incoming-calls")
        self.history_written: EventStream[CallHistoryEntry] = EventStream("call-history")

    # --- Lifecycle ---

    async def start(self) -> None:
        """Subscribe to signals addressed to the local participant."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = await self._channel.subscribe(self.participant_id, self._on_signal)
        logger.info(f"Call coordinator listening for {self.participant_id}")

    async def stop(self) -> None:
        """Unsubscribe and drop every session's timers and actor."""
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None
        for session in self._sessions.values():
            session.dispose()
        await self._actors.close()

    # --- Queries ---

    def get_call(self, call_id: str) -> CallSnapshot | None:
        session = self._sessions.get(call_id)
        return session.snapshot() if session else None

    @property
    def active_call(self) -> CallSnapshot | None:
        """Most recently created call that has not terminated."""
        for session in reversed(list(self._sessions.values())):
            if not session.is_terminal:
                return session.snapshot()
        return None

    def list_calls(self) -> list[CallSnapshot]:
        return [session.snapshot() for session in self._sessions.values()]

    def is_finished(self, call_id: str) -> bool:
        return call_id in self._finished

    # --- Actor plumbing ---

    async def _run(self, session: CallSession, job: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``job`` in the session's actor, then persist history if it ended."""

        async def wrapped() -> Any:
            set_call_context(session.call_id)
            if session.call_id in self._finished:
                return None
            result = await job()
            if session.is_terminal:
                await self._retire(session)
            return result

        return await self._actors.submit(session.call_id, wrapped)

    async def _retire(self, session: CallSession) -> None:
        entry = session.history_entry
        try:
            entry = await self._history.append(entry)
        except Exception:
            logger.exception(
                f"Failed to write call history for {session.call_id}",
                extra={"call_id": session.call_id},
            )
        self._sessions.pop(session.call_id, None)
        self._finished[session.call_id] = entry
        while len(self._finished) > self._finished_cache_size:
            self._finished.popitem(last=False)
        self.history_written.emit(entry)

    def _new_session(
        self,
        call_id: str,
        remote_id: str,
        call_type: CallType,
        direction: CallDirection,
    ) -> CallSession:
        peer = self._peer_factory()
        holder: dict[str, CallSession] = {}

        async def reenter(job: Callable[[], Awaitable[Any]]) -> Any:
            return await self._run(holder["session"], job)

        session = CallSession(
            call_id=call_id,
            local_participant_id=self.participant_id,
            remote_participant_id=remote_id,
            call_type=call_type,
            direction=direction,
            channel=self._channel,
            peer=peer,
            reenter=reenter,
            on_change=self.state_changes.emit,
            clock=self._clock,
            no_answer_timeout=self._no_answer_timeout,
            reconnect_timeout=self._reconnect_timeout,
        )
        holder["session"] = session
        peer.bind(lambda event: self.report_media_event(call_id, event))
        self._sessions[call_id] = session
        return session

    def _require(self, call_id: str | None) -> CallSession:
        if call_id is None:
            for session in reversed(list(self._sessions.values())):
                if not session.is_terminal:
                    return session
            raise CallNotFoundError("active")
        session = self._sessions.get(call_id)
        if session is None:
            raise CallNotFoundError(call_id)
        return session

    # --- Local operations ---

    async def start_call(self, remote_id: str, call_type: CallType) -> CallSnapshot:
        """Place a call to ``remote_id``.

        Raises:
            SignalingUnavailableError: If the signal channel is not open;
                no session is created in that case
        """
        if not self._channel.is_open or self._unsubscribe is None:
            raise SignalingUnavailableError("Signal channel is not open")

        call_id = generate_call_id()
        session = self._new_session(call_id, remote_id, call_type, CallDirection.OUTGOING)
        logger.info(
            f"Starting {call_type.value} call to {remote_id}",
            extra={"call_id": call_id},
        )
        await self._run(session, session.start_outgoing)
        return session.snapshot()

    async def answer_call(self, call_id: str) -> CallSnapshot:
        session = self._require(call_id)
        await self._run(session, session.answer)
        return session.snapshot()

    async def decline_call(self, call_id: str) -> CallHistoryEntry:
        session = self._require(call_id)
        await self._run(session, session.decline)
        return self._finished.get(call_id, session.history_entry)

    async def end_call(
        self,
        call_id: str | None = None,
        override_status: CallHistoryStatus | None = None,
    ) -> CallHistoryEntry:
        """Hang up a call and return its history entry.

        Ending an already finished call returns the entry recorded for it.
        """
        if call_id is not None and call_id in self._finished:
            return self._finished[call_id]
        if call_id is not None and call_id not in self._sessions:
            existing = await self._history.get(call_id, self.participant_id)
            if existing is not None:
                return existing
        session = self._require(call_id)

        async def end() -> CallHistoryEntry:
            return await session.end(override_status)

        await self._run(session, end)
        return self._finished.get(session.call_id, session.history_entry)

    async def toggle_mute(self, call_id: str | None = None) -> bool:
        return await self._toggle(call_id, "toggle_mute")

    async def toggle_speaker(self, call_id: str | None = None) -> bool:
        return await self._toggle(call_id, "toggle_speaker")

    async def toggle_video(self, call_id: str | None = None) -> bool:
        return await self._toggle(call_id, "toggle_video")

    async def _toggle(self, call_id: str | None, operation: str) -> bool:
        try:
            session = self._require(call_id)
        except CallNotFoundError:
            return False
        if session.is_terminal:
            return False
        result = await self._run(session, getattr(session, operation))
        return bool(result)

    async def report_media_event(self, call_id: str, event: MediaEvent) -> None:
        """Feed a peer-connection event into the call's state machine."""
        session = self._sessions.get(call_id)
        if session is None:
            logger.debug(f"Media event {event.value} for unknown call {call_id} ignored")
            return

        async def apply() -> None:
            await session.handle_media_event(event)

        await self._run(session, apply)

    async def send_ice_candidate(self, call_id: str, candidate: dict[str, Any]) -> bool:
        session = self._require(call_id)

        async def relay() -> bool:
            return await session.send_ice_candidate(candidate)

        return bool(await self._run(session, relay))

    # --- Inbound signals ---

    async def _on_signal(self, signal: Signal) -> None:
        if signal.to != self.participant_id:
            logger.warning(f"Dropping {signal.type} addressed to {signal.to}")
            return
        call_id = signal.call_id
        if call_id in self._finished:
            logger.debug(
                f"Ignoring {signal.type} for finished call {call_id}",
                extra={"call_id": call_id},
            )
            return

        session = self._sessions.get(call_id)
        if session is None:
            if not isinstance(signal, OfferSignal):
                logger.warning(
                    f"Dropping {signal.type} for unknown call {call_id}",
                    extra={"call_id": call_id},
                )
                return
            if await self._history.get(call_id, self.participant_id) is not None:
                # Finished long enough ago to have left the cache
                logger.debug(
                    f"Ignoring offer for recorded call {call_id}",
                    extra={"call_id": call_id},
                )
                return
            await self._on_offer(signal)
            return

        async def apply() -> None:
            await session.handle_signal(signal)

        await self._run(session, apply)

    async def _on_offer(self, offer: OfferSignal) -> None:
        session = self._new_session(
            offer.call_id,
            offer.sender,
            offer.payload.call_type,
            CallDirection.INCOMING,
        )
        logger.info(
            f"Incoming {offer.payload.call_type.value} call from {offer.sender}",
            extra={"call_id": offer.call_id},
        )

        async def ring() -> None:
            await session.start_incoming(offer)

        await self._run(session, ring)
        if not session.is_terminal:
            self.incoming_calls.emit(session.snapshot())
