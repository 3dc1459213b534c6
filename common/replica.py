"""
Replica state shared by the authoritative and replicated roles.

Holds the data tree, tags, hierarchy links and cleanup scope of a replica, the
listener subscription API, and the local-apply primitives that mutate the tree
and dispatch listeners. Subclasses decide whether a mutation is also emitted
to subscribers (server) or is the terminal application of a remote one
(client).
"""

import json
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.cleanup import CleanupScope
from common.constants import ROOT_PATH
from common.listener_registry import ListenerRegistry
from common.logging_config import get_logger
from common.path_resolver import (
    can_write,
    get_value,
    has_key,
    read_key,
    resolve_container,
    resolve_pointer,
    to_index,
    write_key,
)
from common.replica_store import ReplicaStore
from common.signal import Connection
from common.types import OperationKind

logger = get_logger(__name__)

PathListener = Callable[..., None]


def is_sub_path(prefix: str, path: str) -> bool:
    """True if ``path`` equals ``prefix`` or lies beneath it."""
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + ".")


class BaseReplica:
    """Addressable data object; see ServerReplica and ClientReplica."""

    def __init__(
        self,
        replica_id: str,
        class_tag: str,
        data: Dict[str, Any],
        tags: Optional[Dict[str, Any]],
        store: ReplicaStore,
        listeners: ListenerRegistry
    ):
        self.id = replica_id
        self.class_tag = class_tag
        self.data = data
        self.tags = MappingProxyType(dict(tags or {}))
        self.parent_id: Optional[str] = None
        self.child_ids: List[str] = []
        self.destroyed = False

        self._store = store
        self._listeners = listeners
        self._cleanup = CleanupScope()
        self._cleanup.add(self._teardown)

    def __repr__(self):
        return f"{type(self).__name__}(id={self.id!r}, class_tag={self.class_tag!r})"

    # Read views

    @property
    def parent(self) -> Optional["BaseReplica"]:
        return self._store.get(self.parent_id)

    @property
    def children(self) -> Tuple["BaseReplica", ...]:
        return tuple(
            child for child in (self._store.get(child_id) for child_id in self.child_ids)
            if child is not None
        )

    def get_value(self, path: str, default: Any = None) -> Any:
        """Read the value at ``path``; the empty path returns the whole tree."""
        if not path:
            return self.data
        return get_value(path, self.data, default)

    def identify(self) -> str:
        """Return a JSON description of this replica."""
        return json.dumps({
            'replica_id': self.id,
            'class_tag': self.class_tag,
            'data': self.data,
            'tags': dict(self.tags),
            'parent_id': self.parent_id,
            'child_ids': list(self.child_ids)
        })

    # Listeners

    def on_change(self, path: str, listener: PathListener) -> Connection:
        """
        Listen to value changes at a path.

        Args:
            path: The path to listen to changes to
            listener: Called with (new_value, old_value)
        """
        return self._create_listener(OperationKind.CHANGE, path, listener)

    def on_new_key(self, path: str, listener: PathListener) -> Connection:
        """
        Listen to new keys being added to the container at ``path``.

        Args:
            path: Path of the container ("" for the root)
            listener: Called with (value, key)
        """
        return self._create_listener(OperationKind.NEW_KEY, path, listener)

    def on_array_insert(self, path: str, listener: PathListener) -> Connection:
        """Listener is called with (index, value)."""
        return self._create_listener(OperationKind.ARRAY_INSERT, path, listener)

    def on_array_set(self, path: str, listener: PathListener) -> Connection:
        """Listener is called with (index, value)."""
        return self._create_listener(OperationKind.ARRAY_SET, path, listener)

    def on_array_remove(self, path: str, listener: PathListener) -> Connection:
        """Listener is called with (index, removed_value)."""
        return self._create_listener(OperationKind.ARRAY_REMOVE, path, listener)

    def on_child_added(self, listener: Callable[["BaseReplica"], None]) -> Connection:
        return self._create_listener(OperationKind.CHILD_ADDED, ROOT_PATH, listener)

    def on_raw(self, listener: Callable[..., None]) -> Connection:
        """Listener is called with (operation_kind, path, *args) for every operation."""
        return self._create_listener(OperationKind.RAW, ROOT_PATH, listener)

    def on_key_changed(self, path: str, listener: PathListener) -> Connection:
        """
        Listen to changes anywhere beneath ``path``.

        Args:
            path: Path prefix
            listener: Called with (new_value, old_value)
        """
        def _on_raw(kind: OperationKind, changed_path: str, *args: Any):
            if kind == OperationKind.CHANGE and is_sub_path(path, changed_path):
                listener(*args)

        return self.on_raw(_on_raw)

    def _create_listener(self, kind: OperationKind, path: str, listener: PathListener) -> Connection:
        if self.destroyed:
            logger.warning(
                f"Listener ignored, replica is destroyed [replica_id={self.id}, "
                f"kind={kind.value}, path={path}]"
            )
            return Connection(None, listener)

        return self._listeners.subscribe(self.id, kind, path, listener)

    def _dispatch(self, kind: OperationKind, path: str, *args: Any) -> None:
        self._listeners.dispatch(self.id, kind, path, *args)

    def _emit(self, kind: OperationKind, path: str, *args: Any) -> None:
        """Hand an applied operation to subscribers. Replicated copies never emit."""

    # Local apply primitives

    def _resolve_writable(self, path: str) -> Optional[Tuple[Any, str]]:
        pointer = resolve_pointer(path, self.data)
        if pointer is None:
            logger.warning(f"Path is not a valid member of replica hierarchy [replica_id={self.id}, path={path}]")
            return None

        container, key = pointer
        if not can_write(container, key):
            logger.warning(
                f"Path does not address a writable slot [replica_id={self.id}, path={path}]"
            )
            return None

        return pointer

    def _write(self, container: Any, key: str, path: str, value: Any) -> Any:
        """Store a value through a resolved pointer and fire Change. Returns the old value."""
        old_value = read_key(container, key)
        write_key(container, key, value)
        self._emit(OperationKind.CHANGE, path, value)
        self._dispatch(OperationKind.CHANGE, path, value, old_value)
        return old_value

    def _apply_change(self, path: str, value: Any) -> bool:
        pointer = self._resolve_writable(path)
        if pointer is None:
            return False

        container, key = pointer
        self._write(container, key, path, value)
        return True

    def _announce_new_key(self, container_path: str, key: str, value: Any) -> None:
        self._emit(OperationKind.NEW_KEY, container_path, value, key)
        self._dispatch(OperationKind.NEW_KEY, container_path, value, key)

    def _resolve_array(self, path: str) -> Optional[list]:
        array = resolve_container(path, self.data)
        if array is None:
            return None

        if not isinstance(array, list):
            logger.warning(f"Path does not address an array [replica_id={self.id}, path={path}]")
            return None

        return array

    def _apply_array_insert(self, path: str, value: Any) -> int:
        array = self._resolve_array(path)
        if array is None:
            return 0

        array.append(value)
        index = len(array)
        self._emit(OperationKind.ARRAY_INSERT, path, value)
        self._dispatch(OperationKind.ARRAY_INSERT, path, index, value)
        return index

    def _apply_array_set(self, path: str, index: int, value: Any) -> Optional[int]:
        array = self._resolve_array(path)
        if array is None:
            return None

        if not has_key(array, index):
            logger.warning(f"Array index out of range [replica_id={self.id}, path={path}, index={index}]")
            return None

        index = to_index(index)
        array[index - 1] = value
        self._emit(OperationKind.ARRAY_SET, path, index, value)
        self._dispatch(OperationKind.ARRAY_SET, path, index, value)
        return index

    def _apply_array_remove(self, path: str, index: int) -> Tuple[bool, Any]:
        array = self._resolve_array(path)
        if array is None:
            return False, None

        if not has_key(array, index):
            logger.warning(f"Array index out of range [replica_id={self.id}, path={path}, index={index}]")
            return False, None

        index = to_index(index)
        removed_value = array.pop(index - 1)
        self._emit(OperationKind.ARRAY_REMOVE, path, index)
        self._dispatch(OperationKind.ARRAY_REMOVE, path, index, removed_value)
        return True, removed_value

    # Hierarchy

    def attach_child(self, child: "BaseReplica") -> None:
        """Materialize a child link and fire ChildAdded once per link."""
        if child.id in self.child_ids:
            return
        self.child_ids.append(child.id)
        self._dispatch(OperationKind.CHILD_ADDED, ROOT_PATH, child)

    def _detach_from_parent(self) -> None:
        parent = self._store.get(self.parent_id)
        if parent is not None:
            if self.id in parent.child_ids:
                parent.child_ids.remove(self.id)
            parent.remove_cleanup_task(self)
        self.parent_id = None

    def is_ancestor_of(self, other: "BaseReplica") -> bool:
        """True if ``other`` is a (transitive) child of this replica."""
        node = other
        while node is not None and node.parent_id is not None:
            if node.parent_id == self.id:
                return True
            node = self._store.get(node.parent_id)
        return False

    # Lifecycle

    def add_cleanup_task(self, task: Any) -> Any:
        """
        Add a task to run when this replica is destroyed.

        Args:
            task: Callable, or object with destroy()/disconnect()
        """
        return self._cleanup.add(task)

    def remove_cleanup_task(self, task: Any) -> bool:
        """Remove a previously added cleanup task without running it."""
        return self._cleanup.remove(task)

    def destroy(self) -> None:
        """
        Destroy the replica.

        Listeners are purged, the replica leaves the store, its parent link is
        dropped and every child is destroyed. Calling it again is a no-op.
        """
        if self.destroyed:
            return

        self.destroyed = True
        logger.debug(f"Destroying replica [replica_id={self.id}, class_tag={self.class_tag}]")
        self._cleanup.dispose()
        self.child_ids.clear()

    def _teardown(self) -> None:
        self._listeners.teardown(self.id)
        self._store.remove(self.id)
        self._detach_from_parent()
