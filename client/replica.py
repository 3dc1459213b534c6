"""Read-only mirror of a server replica on a subscriber."""

from typing import Any, Callable, Dict, Optional

from common.listener_registry import ListenerRegistry
from common.logging_config import get_logger
from common.protocol import ReplicaEventMessage
from common.replica import BaseReplica
from common.replica_store import ReplicaStore
from common.signal import Connection, Signal
from common.transport import ClientTransport

logger = get_logger(__name__)


class ClientReplica(BaseReplica):
    """
    Subscriber-side replica.

    Its data only changes through operations received from the server.
    ``last_sequence`` is the sequence number of the last applied operation.
    """

    def __init__(
        self,
        replica_id: str,
        class_tag: str,
        data: Dict[str, Any],
        tags: Optional[Dict[str, Any]],
        store: ReplicaStore,
        listeners: ListenerRegistry,
        transport: ClientTransport,
        sequence: int = 0
    ):
        super().__init__(replica_id, class_tag, data, tags, store, listeners)
        self.last_sequence = sequence

        self._transport = transport
        self._client_event = self.add_cleanup_task(Signal(name=f"{replica_id}:client_event"))

    def adopt_child(self, child: "ClientReplica") -> None:
        """Link ``child`` under this replica and fire ChildAdded."""
        if child.parent_id != self.id:
            child._detach_from_parent()
            child.parent_id = self.id
            self.add_cleanup_task(child)
        self.attach_child(child)

    def fire_server(self, *args: Any) -> None:
        """Send a free-form payload to the server-side replica."""
        if self.destroyed:
            logger.warning(f"fire_server ignored, replica is destroyed [replica_id={self.id}]")
            return
        self._transport.send(ReplicaEventMessage(replica_id=self.id, args=list(args)))

    def on_client_event(self, listener: Callable[..., None]) -> Connection:
        """Listen to payloads sent by the server with fire_client / fire_all_clients."""
        if self.destroyed:
            return Connection(None, listener)
        return self._client_event.connect(listener)

    def receive_event(self, args: list) -> None:
        self._client_event.fire(*args)
