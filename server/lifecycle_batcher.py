"""
Lifecycle batcher.

Coalesces child attachments and destructions that happen within one flush
period into one wire message per parent (children) and one message overall
(destructions). Flushes run on a PeriodicTask.
"""

from typing import Dict, List, Tuple

from common.constants import ALL_SUBSCRIBERS, UPDATE_RATE_SECONDS
from common.logging_config import get_logger
from common.protocol import ReplicaChildrenMessage, ReplicaDestroyedMessage
from common.replica_store import ReplicaStore
from common.scheduler import PeriodicTask
from common.transport import ServerTransport
from common.types import ReplicationTarget

logger = get_logger(__name__)


def merge_targets(targets: List[ReplicationTarget]) -> ReplicationTarget:
    """Union of replication targets; ALL_SUBSCRIBERS absorbs everything."""
    merged = set()
    for target in targets:
        if target == ALL_SUBSCRIBERS:
            return ALL_SUBSCRIBERS
        merged.update(target)
    return frozenset(merged)


class LifecycleBatcher:
    """
    Pending-children and pending-destruction queues of the authoritative side.

    Sends nothing for an empty queue.
    """

    def __init__(
        self,
        store: ReplicaStore,
        transport: ServerTransport,
        interval: float = UPDATE_RATE_SECONDS
    ):
        self.store = store
        self.transport = transport
        self.pending_children: Dict[str, List[str]] = {}
        self.pending_destructions: List[Tuple[str, ReplicationTarget]] = []
        self._timer = PeriodicTask(interval, self.flush, name="lifecycle-flush")

    @property
    def running(self) -> bool:
        return self._timer.running

    async def start(self):
        await self._timer.start()

    async def stop(self):
        """Stop the flush loop and flush whatever is still queued."""
        await self._timer.stop()
        self.flush()

    def queue_child(self, parent_id: str, child_id: str) -> None:
        queue = self.pending_children.setdefault(parent_id, [])
        if child_id not in queue:
            queue.append(child_id)

    def discard_child(self, parent_id: str, child_id: str) -> None:
        queue = self.pending_children.get(parent_id)
        if queue and child_id in queue:
            queue.remove(child_id)

    def discard_parent(self, parent_id: str) -> None:
        self.pending_children.pop(parent_id, None)

    def queue_destruction(self, replica_id: str, replication: ReplicationTarget) -> None:
        self.pending_destructions.append((replica_id, replication))

    def flush(self) -> None:
        """Send every pending batch."""
        self.flush_children()
        self.flush_destructions()

    def flush_children(self) -> int:
        """
        Send queued child attachments and materialize them.

        For each parent with pending children, one ReplicaChildrenMessage goes
        to the parent's replication target, then each child is added to the
        parent's children and ChildAdded fires once per child.

        Returns:
            Number of children attached
        """
        if not self.pending_children:
            return 0

        pending = self.pending_children
        self.pending_children = {}

        attached = 0
        for parent_id, child_ids in pending.items():
            parent = self.store.get(parent_id)
            if parent is None:
                continue

            children = [
                child for child in (self.store.get(child_id) for child_id in child_ids)
                if child is not None and child.parent_id == parent_id
            ]
            if not children:
                continue

            self.transport.send(
                parent.replication,
                ReplicaChildrenMessage(parent_id=parent_id, child_ids=[child.id for child in children])
            )

            for child in children:
                parent.attach_child(child)
            attached += len(children)

            logger.debug(f"Flushed {len(children)} children [parent_id={parent_id}]")

        return attached

    def flush_destructions(self) -> int:
        """
        Broadcast queued destructions as a single message.

        Returns:
            Number of replica ids sent
        """
        if not self.pending_destructions:
            return 0

        batch = self.pending_destructions
        self.pending_destructions = []

        replica_ids = [replica_id for replica_id, _ in batch]
        target = merge_targets([replication for _, replication in batch])

        self.transport.send(target, ReplicaDestroyedMessage(replica_ids=replica_ids))
        logger.debug(f"Flushed {len(replica_ids)} destructions")

        return len(replica_ids)
