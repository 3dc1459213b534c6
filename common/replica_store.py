"""Identity-keyed store of live replicas for one process role."""

from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Optional

from common.exceptions import DuplicateReplicaError
from common.logging_config import get_logger
from common.signal import Connection, Signal

if TYPE_CHECKING:
    from common.replica import BaseReplica

logger = get_logger(__name__)


class ReplicaStore:
    """
    Maps replica ids to live replicas.

    The only place replicas are looked up for incoming remote messages.
    ``replica_created`` fires after a replica is registered.
    """

    def __init__(self, role: str):
        self.role = role
        self._replicas: Dict[str, "BaseReplica"] = {}
        self.replica_created = Signal(name=f"{role}:replica_created")

    def add(self, replica: "BaseReplica") -> None:
        """
        Register a replica and announce its creation.

        Raises:
            DuplicateReplicaError: If the id is already registered
        """
        if replica.id in self._replicas:
            raise DuplicateReplicaError(
                f"Replica {replica.id} is already registered in the {self.role} store"
            )

        self._replicas[replica.id] = replica
        logger.debug(
            f"Registered replica [role={self.role}, replica_id={replica.id}, "
            f"class_tag={replica.class_tag}]"
        )
        self.replica_created.fire(replica)

    def remove(self, replica_id: str) -> Optional["BaseReplica"]:
        """Unregister a replica. Returns it, or None if it was not registered."""
        replica = self._replicas.pop(replica_id, None)
        if replica is not None:
            logger.debug(f"Unregistered replica [role={self.role}, replica_id={replica_id}]")
        return replica

    def get(self, replica_id: Optional[str]) -> Optional["BaseReplica"]:
        if replica_id is None:
            return None
        return self._replicas.get(replica_id)

    def values(self) -> List["BaseReplica"]:
        """Live replicas in creation order."""
        return list(self._replicas.values())

    def of_class(self, class_tag: str) -> List["BaseReplica"]:
        return [replica for replica in self._replicas.values() if replica.class_tag == class_tag]

    def on_class_created(
        self,
        class_tag: str,
        listener: Callable[["BaseReplica"], None]
    ) -> Connection:
        """
        Listen for replicas of a class tag.

        Existing replicas of the class are passed to the listener immediately,
        before the call returns, so they always arrive before any replica
        created afterwards.

        Args:
            class_tag: Class tag to filter on
            listener: Function called with each matching replica

        Returns:
            Connection for future creations
        """
        for replica in self.of_class(class_tag):
            listener(replica)

        def _on_created(replica: "BaseReplica"):
            if replica.class_tag == class_tag:
                listener(replica)

        return self.replica_created.connect(_on_created)

    def __contains__(self, replica_id: str) -> bool:
        return replica_id in self._replicas

    def __len__(self) -> int:
        return len(self._replicas)

    def __iter__(self) -> Iterator["BaseReplica"]:
        return iter(self.values())
