"""
Subscriber-side replication service.

Receives creation, children, destruction, operation and event messages from
the server and keeps the local replica store in sync.
"""

from typing import Callable, List, Optional

from common.listener_registry import ListenerRegistry
from common.logging_config import get_logger
from common.protocol import (
    ReplicaChildrenMessage,
    ReplicaCreatedMessage,
    ReplicaDestroyedMessage,
    ReplicaEventMessage,
    ReplicaOperationMessage,
)
from common.replica_store import ReplicaStore
from common.signal import Connection
from common.transport import ClientTransport
from common.types import MessageKind
from client.operation_applier import apply_operation
from client.replica import ClientReplica

logger = get_logger(__name__)


class ReplicaClient:
    """Mirrors server replicas delivered over a ClientTransport."""

    def __init__(self, transport: ClientTransport):
        self.transport = transport
        self.store = ReplicaStore(role="client")
        self.listeners = ListenerRegistry()

        self._connections: List[Connection] = [
            transport.on_receive(MessageKind.CREATED, self._on_created),
            transport.on_receive(MessageKind.CHILDREN, self._on_children),
            transport.on_receive(MessageKind.DESTROYED, self._on_destroyed),
            transport.on_receive(MessageKind.OPERATION, self._on_operation),
            transport.on_receive(MessageKind.EVENT, self._on_event),
            transport.reconnected.connect(self._on_reconnected),
        ]

    @property
    def subscriber_id(self) -> Optional[str]:
        return self.transport.subscriber_id

    def get(self, replica_id: str) -> Optional[ClientReplica]:
        return self.store.get(replica_id)

    def on_class_created(self, class_tag: str, listener: Callable[[ClientReplica], None]) -> Connection:
        """
        Listen for replicas of a class tag arriving from the server.

        Replicas already received are passed to the listener before this returns.
        """
        return self.store.on_class_created(class_tag, listener)

    def close(self) -> None:
        """Stop handling messages and destroy every local replica."""
        for connection in self._connections:
            connection.disconnect()
        self._connections.clear()

        for replica in self.store.values():
            replica.destroy()

    def _on_reconnected(self) -> None:
        """Drop every local replica; the server replays current state on connect."""
        logger.info(f"Transport reconnected, discarding {len(self.store)} local replicas")
        for replica in self.store.values():
            replica.destroy()

    def _on_created(self, message: ReplicaCreatedMessage) -> None:
        known = self.store.get(message.replica_id)
        if known is not None:
            if message.sequence > known.last_sequence:
                known.data = message.data
                known.last_sequence = message.sequence
                logger.info(f"Replica resynced from snapshot [replica_id={known.id}, sequence={known.last_sequence}]")
            else:
                logger.debug(f"Replica already known, ignoring creation [replica_id={message.replica_id}]")
            return

        replica = ClientReplica(
            replica_id=message.replica_id,
            class_tag=message.class_tag,
            data=message.data,
            tags=message.tags,
            store=self.store,
            listeners=self.listeners,
            transport=self.transport,
            sequence=message.sequence
        )
        self.store.add(replica)

        logger.debug(f"Replica received [replica_id={replica.id}, class_tag={replica.class_tag}]")

    def _on_children(self, message: ReplicaChildrenMessage) -> None:
        parent = self.store.get(message.parent_id)
        if parent is None:
            logger.debug(f"Children for unknown parent [parent_id={message.parent_id}]")
            return

        for child_id in message.child_ids:
            child = self.store.get(child_id)
            if child is None:
                logger.debug(f"Unknown child, skipping [parent_id={parent.id}, child_id={child_id}]")
                continue
            parent.adopt_child(child)

    def _on_destroyed(self, message: ReplicaDestroyedMessage) -> None:
        for replica_id in message.replica_ids:
            replica = self.store.get(replica_id)
            if replica is None:
                logger.debug(f"Destroy for unknown replica [replica_id={replica_id}]")
                continue
            replica.destroy()

    def _on_operation(self, message: ReplicaOperationMessage) -> None:
        replica = self.store.get(message.replica_id)
        if replica is None:
            logger.warning(
                f"Operation for unknown replica dropped [replica_id={message.replica_id}, "
                f"operation={message.operation.value}]"
            )
            return
        apply_operation(replica, message)

    def _on_event(self, message: ReplicaEventMessage) -> None:
        replica = self.store.get(message.replica_id)
        if replica is None:
            logger.debug(f"Event for unknown replica [replica_id={message.replica_id}]")
            return
        replica.receive_event(message.args)
