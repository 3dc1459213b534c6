"""
Authoritative replication service.

Owns the server-side replica store, listener registry and lifecycle batcher,
creates replicas, and brings late-joining subscribers up to date.
"""

import uuid
from typing import Any, Callable, List, Optional

from common.listener_registry import ListenerRegistry
from common.logging_config import get_logger
from common.protocol import ReplicaChildrenMessage, ReplicaEventMessage
from common.replica_store import ReplicaStore
from common.schemas import ReplicaParams
from common.signal import Connection
from common.transport import ServerTransport
from common.types import MessageKind
from server.config import FLUSH_INTERVAL_SECONDS
from server.lifecycle_batcher import LifecycleBatcher
from server.replica import ServerReplica

logger = get_logger(__name__)


class ReplicaServer:
    """Creates and replicates ServerReplicas over a ServerTransport."""

    def __init__(self, transport: ServerTransport, flush_interval: float = FLUSH_INTERVAL_SECONDS):
        """
        Initialize the replica server.

        Args:
            transport: Server side of the transport to replicate over
            flush_interval: Seconds between lifecycle flushes
        """
        self.transport = transport
        self.store = ReplicaStore(role="server")
        self.listeners = ListenerRegistry()
        self.batcher = LifecycleBatcher(self.store, transport, interval=flush_interval)

        self._connections: List[Connection] = [
            transport.subscriber_added.connect(self._on_subscriber_added),
            transport.on_receive(MessageKind.EVENT, self._on_event),
        ]

    async def start(self):
        """Start the lifecycle flush loop."""
        await self.batcher.start()
        logger.info("Replica server started")

    async def stop(self):
        """Stop the flush loop, flushing anything still queued."""
        await self.batcher.stop()
        logger.info("Replica server stopped")

    def create(self, **params: Any) -> ServerReplica:
        """
        Create a replica and announce it to its replication target.

        Args:
            class_tag: Non-empty class label
            data: Initial data tree (a map)
            tags: Optional immutable metadata
            replication: "All" (default) or a set of subscriber ids

        Returns:
            The new ServerReplica

        Raises:
            MalformedReplicaParamsError: If class_tag or data is missing or invalid
        """
        replica_params = ReplicaParams.parse(**params)
        replica = ServerReplica(uuid.uuid4().hex, replica_params, self)

        self.transport.send(replica.replication, replica.creation_message())
        self.store.add(replica)

        logger.info(f"Created replica [replica_id={replica.id}, class_tag={replica.class_tag}]")
        return replica

    def get(self, replica_id: str) -> Optional[ServerReplica]:
        return self.store.get(replica_id)

    def on_class_created(self, class_tag: str, listener: Callable[[ServerReplica], None]) -> Connection:
        """
        Listen for server replicas of a class tag.

        Replicas that already exist are passed to the listener before this returns.
        """
        return self.store.on_class_created(class_tag, listener)

    def _on_subscriber_added(self, subscriber_id: str) -> None:
        """Replay every replica visible to a new subscriber, then the hierarchy."""
        replicas = [replica for replica in self.store.values() if replica.replicates_to(subscriber_id)]
        target = frozenset({subscriber_id})

        for replica in replicas:
            self.transport.send(target, replica.creation_message())

        for replica in replicas:
            if replica.child_ids:
                self.transport.send(
                    target,
                    ReplicaChildrenMessage(parent_id=replica.id, child_ids=list(replica.child_ids))
                )

        logger.info(f"Replayed {len(replicas)} replicas to new subscriber [subscriber_id={subscriber_id}]")

    def _on_event(self, subscriber_id: str, message: ReplicaEventMessage) -> None:
        replica = self.store.get(message.replica_id)
        if replica is None:
            logger.debug(f"Event for unknown replica [replica_id={message.replica_id}]")
            return
        replica.receive_event(subscriber_id, message.args)

    def close(self) -> None:
        """Disconnect from the transport."""
        for connection in self._connections:
            connection.disconnect()
        self._connections.clear()
