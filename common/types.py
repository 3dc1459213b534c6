"""Shared type definitions (operation kinds, replication targets)."""

from enum import Enum
from typing import FrozenSet, Union


class OperationKind(str, Enum):
    """Discriminator for replica mutations and listener buckets."""
    CHANGE = "Change"
    NEW_KEY = "NewKey"
    ARRAY_INSERT = "ArrayInsert"
    ARRAY_SET = "ArraySet"
    ARRAY_REMOVE = "ArrayRemove"
    CHILD_ADDED = "ChildAdded"
    RAW = "Raw"


class MessageKind(str, Enum):
    """Wire message kinds exchanged between the server and its subscribers."""
    CREATED = "ReplicaCreated"
    CHILDREN = "ReplicaChildren"
    DESTROYED = "ReplicaDestroyed"
    OPERATION = "ReplicaListeners"
    EVENT = "ReplicaEvent"


# Either ALL_SUBSCRIBERS or an explicit set of subscriber ids.
ReplicationTarget = Union[str, FrozenSet[str]]
