"""
Authoritative replica.

Every mutation updates the local tree, fires local listeners and emits the
operation, stamped with a per-replica sequence number, to the replica's
replication target. Child attachments and destructions are queued in the
LifecycleBatcher.
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from common.constants import ALL_SUBSCRIBERS
from common.exceptions import ReplicaHierarchyError
from common.logging_config import get_logger
from common.path_resolver import has_key, join_path, parent_path, resolve_container
from common.protocol import (
    ReplicaCreatedMessage,
    ReplicaDestroyedMessage,
    ReplicaEventMessage,
    ReplicaOperationMessage,
)
from common.replica import BaseReplica
from common.schemas import ReplicaParams
from common.signal import Connection, Signal
from common.types import OperationKind

if TYPE_CHECKING:
    from server.replica_server import ReplicaServer

logger = get_logger(__name__)


class ServerReplica(BaseReplica):
    """Server-owned replica; create instances through ReplicaServer.create."""

    def __init__(self, replica_id: str, params: ReplicaParams, server: "ReplicaServer"):
        super().__init__(
            replica_id,
            params.class_tag,
            params.data,
            params.tags,
            server.store,
            server.listeners
        )
        self.replication = params.replication
        self.sequence = 0

        self._transport = server.transport
        self._batcher = server.batcher
        self._server_event = self.add_cleanup_task(Signal(name=f"{replica_id}:server_event"))

    @property
    def replicates_to_all(self) -> bool:
        return self.replication == ALL_SUBSCRIBERS

    def replicates_to(self, subscriber_id: str) -> bool:
        return self.replicates_to_all or subscriber_id in self.replication

    def creation_message(self) -> ReplicaCreatedMessage:
        return ReplicaCreatedMessage(
            replica_id=self.id,
            class_tag=self.class_tag,
            data=self.data,
            tags=dict(self.tags),
            sequence=self.sequence
        )

    def _accepts_mutation(self, operation: str) -> bool:
        if self.destroyed:
            logger.warning(f"{operation} ignored, replica is destroyed [replica_id={self.id}]")
            return False
        return True

    def _emit(self, kind: OperationKind, path: str, *args: Any) -> None:
        self.sequence += 1
        self._transport.send(
            self.replication,
            ReplicaOperationMessage(
                replica_id=self.id,
                sequence=self.sequence,
                operation=kind,
                path=path,
                args=list(args)
            )
        )

    # Mutation protocol

    def set_value(self, path: str, value: Any) -> None:
        """
        Set the value at a path.

        Fires NewKey on the parent container path if the key was absent, then
        Change with (new_value, old_value).

        Args:
            path: The path to update
            value: The value to update the path to
        """
        if not self._accepts_mutation("set_value"):
            return

        pointer = self._resolve_writable(path)
        if pointer is None:
            return

        container, key = pointer
        if not has_key(container, key):
            self._announce_new_key(parent_path(path), key, value)

        self._write(container, key, path, value)

    def set_values(self, path: str, values: Dict[str, Any]) -> None:
        """
        Set several keys of the map at ``path``.

        Args:
            path: Path of the map container ("" for the root)
            values: Mapping of key to new value
        """
        if not self._accepts_mutation("set_values"):
            return

        container = resolve_container(path, self.data)
        if not isinstance(container, dict):
            logger.warning(f"set_values path does not address a map [replica_id={self.id}, path={path}]")
            return

        for key, value in values.items():
            if key not in container:
                self._announce_new_key(path, key, value)
            self._write(container, key, join_path(path, key), value)

    def array_insert(self, path: str, value: Any) -> int:
        """
        Append a value to the array at ``path``.

        Returns:
            New length of the array (the 1-based index of the value), or 0 if
            the path does not address an array
        """
        if not self._accepts_mutation("array_insert"):
            return 0
        return self._apply_array_insert(path, value)

    def array_set(self, path: str, index: int, value: Any) -> Optional[int]:
        """
        Replace the value at an existing 1-based index.

        Returns:
            The index, or None if nothing was set
        """
        if not self._accepts_mutation("array_set"):
            return None
        return self._apply_array_set(path, index, value)

    def array_remove(self, path: str, index: int) -> Any:
        """
        Remove the value at a 1-based index, shifting later values down.

        Returns:
            The removed value, or None if nothing was removed
        """
        if not self._accepts_mutation("array_remove"):
            return None
        _, removed_value = self._apply_array_remove(path, index)
        return removed_value

    # Hierarchy

    def set_parent(self, parent: Optional["ServerReplica"]) -> None:
        """
        Make this replica a child of ``parent``.

        The child is queued on the parent and attached at the next flush.
        Destroying the parent destroys this replica; destroying this replica
        removes it from the parent.

        Raises:
            ReplicaHierarchyError: If ``parent`` is this replica or one of its descendants
        """
        if parent is None:
            logger.warning(f"set_parent called without a parent [replica_id={self.id}]")
            return

        if self.destroyed or parent.destroyed:
            logger.warning(
                f"set_parent ignored, replica is destroyed [replica_id={self.id}, parent_id={parent.id}]"
            )
            return

        if parent is self or self.is_ancestor_of(parent):
            raise ReplicaHierarchyError(
                f"Replica {parent.id} cannot become the parent of its ancestor {self.id}"
            )

        if self.parent_id == parent.id:
            return

        self._detach_from_parent()
        self.parent_id = parent.id
        parent.add_cleanup_task(self)
        self._batcher.queue_child(parent.id, self.id)

    def _detach_from_parent(self) -> None:
        if self.parent_id is not None:
            self._batcher.discard_child(self.parent_id, self.id)
        super()._detach_from_parent()

    # Custom events

    def fire_client(self, subscriber_id: str, *args: Any) -> None:
        """Send a free-form payload to one subscriber of this replica."""
        if not self.replicates_to(subscriber_id):
            logger.warning(
                f"fire_client ignored, subscriber is not replicated to "
                f"[replica_id={self.id}, subscriber_id={subscriber_id}]"
            )
            return
        self._transport.send(frozenset({subscriber_id}), ReplicaEventMessage(replica_id=self.id, args=list(args)))

    def fire_all_clients(self, *args: Any) -> None:
        """Send a free-form payload to every subscriber of this replica."""
        self._transport.send(self.replication, ReplicaEventMessage(replica_id=self.id, args=list(args)))

    def on_server_event(self, listener: Callable[..., None]) -> Connection:
        """
        Listen to payloads sent by subscribers with ``fire_server``.

        Args:
            listener: Called with (subscriber_id, *args)
        """
        if self.destroyed:
            return Connection(None, listener)
        return self._server_event.connect(listener)

    def receive_event(self, subscriber_id: str, args: list) -> None:
        if not self.replicates_to(subscriber_id):
            logger.debug(
                f"Ignoring event from subscriber outside replication "
                f"[replica_id={self.id}, subscriber_id={subscriber_id}]"
            )
            return
        self._server_event.fire(subscriber_id, *args)

    # Teardown

    def destroy_for(self, *subscribers: str) -> None:
        """
        Destroy the replica for the given subscribers.

        The subscribers are told immediately; the replica is then destroyed on
        the server, which also reaches the rest of its target at the next flush.
        """
        targets = []
        for subscriber_id in subscribers:
            if not isinstance(subscriber_id, str):
                logger.warning(f"destroy_for ignoring non-subscriber value {subscriber_id!r}")
                continue
            targets.append(subscriber_id)

        if not targets or self.destroyed:
            return

        self._transport.send(frozenset(targets), ReplicaDestroyedMessage(replica_ids=[self.id]))
        self.destroy()

    def _teardown(self) -> None:
        super()._teardown()
        self._batcher.discard_parent(self.id)
        self._batcher.queue_destruction(self.id, self.replication)
