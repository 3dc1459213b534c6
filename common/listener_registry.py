"""
Per-replica listener registry.

Listeners are keyed by (replica_id, operation kind, path). Every bucket is
backed by a Signal created lazily on first subscription. One registry exists
per process role and is owned by the ReplicaServer / ReplicaClient.
"""

from typing import Any, Callable, Dict

from common.constants import ROOT_PATH
from common.logging_config import get_logger
from common.signal import Connection, Signal
from common.types import OperationKind

logger = get_logger(__name__)


class ListenerRegistry:
    """Stores and dispatches path-scoped listeners for every live replica."""

    def __init__(self):
        self._listeners: Dict[str, Dict[OperationKind, Dict[str, Signal]]] = {}

    def subscribe(
        self,
        replica_id: str,
        kind: OperationKind,
        path: str,
        callback: Callable[..., Any]
    ) -> Connection:
        """
        Connect a listener to a (replica, kind, path) bucket.

        Args:
            replica_id: ID of the replica being listened to
            kind: Operation kind of the bucket
            path: Path of the bucket ("Root" for Raw and ChildAdded)
            callback: Function called on dispatch

        Returns:
            Connection handle; disconnect it to unsubscribe
        """
        kinds = self._listeners.setdefault(replica_id, {})
        paths = kinds.setdefault(OperationKind(kind), {})

        signal = paths.get(path)
        if signal is None:
            signal = Signal(name=f"{replica_id}:{OperationKind(kind).value}:{path}")
            paths[path] = signal

        return signal.connect(callback)

    def unsubscribe(self, connection: Connection) -> None:
        """Remove a single subscription; other listeners at the same key are unaffected."""
        connection.disconnect()

    def dispatch(self, replica_id: str, kind: OperationKind, path: str, *args: Any) -> None:
        """
        Fire listeners for an operation.

        The Raw bucket at "Root" receives ``(kind, path, *args)`` first, then
        the (kind, path) bucket receives ``args``. Missing buckets are ignored.
        """
        kind = OperationKind(kind)

        if kind != OperationKind.RAW:
            self.dispatch(replica_id, OperationKind.RAW, ROOT_PATH, kind, path, *args)

        kinds = self._listeners.get(replica_id)
        if not kinds:
            return

        paths = kinds.get(kind)
        if not paths:
            return

        signal = paths.get(path)
        if signal is None:
            return

        signal.fire(*args)

    def teardown(self, replica_id: str) -> None:
        """Disconnect and discard every listener of a replica."""
        kinds = self._listeners.pop(replica_id, None)
        if not kinds:
            return

        count = 0
        for paths in kinds.values():
            for signal in paths.values():
                count += len(signal)
                signal.destroy()

        logger.debug(f"Removed {count} listeners [replica_id={replica_id}]")

    def listener_count(self, replica_id: str) -> int:
        """Number of live listeners registered for a replica."""
        kinds = self._listeners.get(replica_id, {})
        return sum(len(signal) for paths in kinds.values() for signal in paths.values())

    def __contains__(self, replica_id: str) -> bool:
        return replica_id in self._listeners
