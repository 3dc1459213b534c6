"""Single named event with ordered, individually removable connections."""

from typing import Any, Callable, List, Optional

from common.logging_config import get_logger

logger = get_logger(__name__)


class Connection:
    """Handle returned by Signal.connect; disconnecting it is idempotent."""

    def __init__(self, signal: Optional["Signal"], callback: Callable[..., Any]):
        self._signal = signal
        self.callback = callback
        self.connected = signal is not None

    def disconnect(self) -> None:
        """Stop receiving events. Safe to call on a stale handle."""
        if not self.connected:
            return

        self.connected = False
        if self._signal is not None:
            self._signal._remove(self)
            self._signal = None

    def __repr__(self):
        return f"Connection(connected={self.connected})"


class Signal:
    """
    Minimal publish/subscribe primitive.

    Listeners are called in connection order. Firing iterates over a snapshot,
    so listeners may connect or disconnect while the signal is firing without
    affecting the current dispatch. A listener that raises is logged and does
    not prevent the remaining listeners from running.
    """

    def __init__(self, name: str = "signal"):
        self.name = name
        self._connections: List[Connection] = []

    def connect(self, callback: Callable[..., Any]) -> Connection:
        """
        Connect a callback.

        Args:
            callback: Function called with the fired arguments

        Returns:
            Connection handle
        """
        connection = Connection(self, callback)
        self._connections.append(connection)
        return connection

    def fire(self, *args: Any) -> None:
        """Call every connected listener with ``args``."""
        for connection in list(self._connections):
            if not connection.connected:
                continue
            try:
                connection.callback(*args)
            except Exception as e:
                logger.error(f"Listener error on {self.name}: {e}", exc_info=True)

    def disconnect_all(self) -> None:
        """Disconnect every listener."""
        for connection in list(self._connections):
            connection.disconnect()
        self._connections.clear()

    def destroy(self) -> None:
        self.disconnect_all()

    def _remove(self, connection: Connection) -> None:
        if connection in self._connections:
            self._connections.remove(connection)

    def __len__(self) -> int:
        return len(self._connections)
