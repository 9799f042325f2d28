"""Network / backend reachability tracking."""

import logging
from dataclasses import dataclass

from switchboard.core.events import EventStream, Unsubscribe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectivityChange:
    """Emitted whenever the effective online state flips."""

    online: bool
    network_online: bool
    backend_connected: bool


class ConnectivityMonitor:
    """Tracks whether the device has a network and a backend connection.

    The effective state is online only when both are up. Listeners are told
    about transitions of the effective state, not about every report.
    """

    def __init__(self, network_online: bool = True, backend_connected: bool = True) -> None:
        self._network_online = network_online
        self._backend_connected = backend_connected
        self._changes: EventStream[ConnectivityChange] = EventStream("connectivity")

    @property
    def is_online(self) -> bool:
        return self._network_online and self._backend_connected

    @property
    def network_online(self) -> bool:
        return self._network_online

    @property
    def backend_connected(self) -> bool:
        return self._backend_connected

    def subscribe(self, listener) -> Unsubscribe:
        return self._changes.subscribe(listener)

    def set_network_online(self, online: bool) -> None:
        self._update(network_online=online)

    def set_backend_connected(self, connected: bool) -> None:
        self._update(backend_connected=connected)

    def set_online(self, online: bool) -> None:
        """Report both network and backend state at once."""
        self._update(network_online=online, backend_connected=online)

    def _update(
        self,
        network_online: bool | None = None,
        backend_connected: bool | None = None,
    ) -> None:
        was_online = self.is_online
        if network_online is not None:
            self._network_online = network_online
        if backend_connected is not None:
            self._backend_connected = backend_connected
        if self.is_online == was_online:
            return

        if self.is_online:
            logger.info("Connection restored")
        else:
            logger.info("Connection lost, queueing messages for retry")
        self._changes.emit(
            ConnectivityChange(
                online=self.is_online,
                network_online=self._network_online,
                backend_connected=self._backend_connected,
            )
        )
