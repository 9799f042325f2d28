"""Call signaling wire format.

Signals are a closed union of five kinds, discriminated on ``type``::

    {"type": "offer", "from": "alice", "to": "bob", "seq": 1,
     "payload": {"callId": "call_...", "callType": "video", "sdp": "..."}}

``seq`` is optional. Numbered signals let a session drop duplicates and
reordered deliveries; unnumbered ones are filtered by call state only.
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from switchboard.core.exceptions import ProtocolError
from switchboard.domain.models.call import CallType


class SignalPayload(BaseModel):
    """Payload common to every signal."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    call_id: str = Field(alias="callId", min_length=1)


class OfferPayload(SignalPayload):
    call_type: CallType = Field(alias="callType")
    sdp: str


class AnswerPayload(SignalPayload):
    sdp: str


class IceCandidatePayload(SignalPayload):
    candidate: dict[str, Any]


class _SignalBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    sender: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    # Absent when the sender does not number its signals
    seq: int | None = Field(default=None, ge=0)

    @property
    def call_id(self) -> str:
        return self.payload.call_id


class OfferSignal(_SignalBase):
    type: Literal["offer"] = "offer"
    payload: OfferPayload


class AnswerSignal(_SignalBase):
    type: Literal["answer"] = "answer"
    payload: AnswerPayload


class RejectSignal(_SignalBase):
    type: Literal["reject"] = "reject"
    payload: SignalPayload


class HangupSignal(_SignalBase):
    type: Literal["hangup"] = "hangup"
    payload: SignalPayload


class IceCandidateSignal(_SignalBase):
    type: Literal["ice-candidate"] = "ice-candidate"
    payload: IceCandidatePayload


Signal = Annotated[
    Union[OfferSignal, AnswerSignal, RejectSignal, HangupSignal, IceCandidateSignal],
    Field(discriminator="type"),
]

_signal_adapter: TypeAdapter[Signal] = TypeAdapter(Signal)


def parse_signal(raw: str | bytes | dict[str, Any]) -> Signal:
    """Parse a wire payload into a typed signal.

    Args:
        raw: JSON text or an already-decoded dict

    Returns:
        One of the five signal models

    Raises:
        ProtocolError: If the payload is not valid JSON or not a known signal
    """
    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw)
        return _signal_adapter.validate_python(raw)
    except (ValueError, ValidationError) as e:
        raise ProtocolError(f"Malformed signal: {e}") from e


def signal_to_wire(signal: Signal) -> str:
    """Serialize a signal to its JSON wire form (camelCase keys)."""
    return signal.model_dump_json(by_alias=True, exclude_none=True)
