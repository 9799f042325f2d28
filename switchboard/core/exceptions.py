"""Error taxonomy shared by the call and messaging services."""


class SwitchboardError(Exception):
    """Base class for all switchboard errors."""
    pass


class TransientTransportError(SwitchboardError):
    """Network unreachable, timeout, rate limit or server error.

    Recovered locally with retry and backoff; never surfaced until retries
    are exhausted.
    """
    pass


class PermanentTransportError(SwitchboardError):
    """The remote side rejected the payload; retrying will not help."""
    pass


class ProtocolError(SwitchboardError):
    """Malformed or unexpected signal. Logged and discarded by consumers."""
    pass


class SignalingUnavailableError(SwitchboardError):
    """The signaling channel could not be established at all."""
    pass


class CallNotFoundError(SwitchboardError):
    """No call session exists for the given call ID."""

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Call {call_id} not found")
        self.call_id = call_id


class CallStateError(SwitchboardError):
    """A local call operation is not valid in the session's current state."""

    def __init__(self, call_id: str, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} call {call_id} in state {state}")
        self.call_id = call_id
        self.operation = operation
        self.state = state


class MessageNotFoundError(SwitchboardError):
    """No message exists for the given message ID."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found")
        self.message_id = message_id


class MessageStateError(SwitchboardError):
    """A message operation is not valid for the message's current status."""

    def __init__(self, message_id: str, operation: str, status: str) -> None:
        super().__init__(f"Cannot {operation} message {message_id} with status {status}")
        self.message_id = message_id
        self.operation = operation
        self.status = status
