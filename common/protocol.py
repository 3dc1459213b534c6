"""Wire message definitions exchanged between the server and its subscribers."""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Union
import json

from common.exceptions import UnknownMessageError
from common.types import MessageKind, OperationKind


@dataclass
class ReplicaCreatedMessage:
    """Announces a replica and carries a snapshot of its data."""
    kind: ClassVar[MessageKind] = MessageKind.CREATED

    replica_id: str
    class_tag: str
    data: Dict[str, Any]
    tags: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'replica_id': self.replica_id,
            'class_tag': self.class_tag,
            'data': self.data,
            'tags': self.tags,
            'sequence': self.sequence
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'ReplicaCreatedMessage':
        return cls(
            replica_id=obj['replica_id'],
            class_tag=obj['class_tag'],
            data=obj['data'],
            tags=obj.get('tags') or {},
            sequence=obj.get('sequence', 0)
        )

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return encode_message(self)


@dataclass
class ReplicaChildrenMessage:
    """Batch of children attached to one parent since the last flush."""
    kind: ClassVar[MessageKind] = MessageKind.CHILDREN

    parent_id: str
    child_ids: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'parent_id': self.parent_id,
            'child_ids': list(self.child_ids)
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'ReplicaChildrenMessage':
        return cls(parent_id=obj['parent_id'], child_ids=list(obj['child_ids']))

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return encode_message(self)


@dataclass
class ReplicaDestroyedMessage:
    """Batch of replica ids destroyed since the last flush."""
    kind: ClassVar[MessageKind] = MessageKind.DESTROYED

    replica_ids: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {'replica_ids': list(self.replica_ids)}

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'ReplicaDestroyedMessage':
        return cls(replica_ids=list(obj['replica_ids']))

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return encode_message(self)


@dataclass
class ReplicaOperationMessage:
    """
    A single path-addressed mutation.

    ``args`` per kind:
        Change: [value]
        NewKey: [value, key]
        ArrayInsert: [value]
        ArraySet: [index, value]
        ArrayRemove: [index]
    """
    kind: ClassVar[MessageKind] = MessageKind.OPERATION

    replica_id: str
    sequence: int
    operation: OperationKind
    path: str
    args: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'replica_id': self.replica_id,
            'sequence': self.sequence,
            'operation': OperationKind(self.operation).value,
            'path': self.path,
            'args': list(self.args)
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'ReplicaOperationMessage':
        return cls(
            replica_id=obj['replica_id'],
            sequence=obj['sequence'],
            operation=OperationKind(obj['operation']),
            path=obj['path'],
            args=list(obj.get('args') or [])
        )

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return encode_message(self)


@dataclass
class ReplicaEventMessage:
    """Free-form payload addressed to a replica, in either direction."""
    kind: ClassVar[MessageKind] = MessageKind.EVENT

    replica_id: str
    args: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'replica_id': self.replica_id, 'args': list(self.args)}

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'ReplicaEventMessage':
        return cls(replica_id=obj['replica_id'], args=list(obj.get('args') or []))

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return encode_message(self)


Message = Union[
    ReplicaCreatedMessage,
    ReplicaChildrenMessage,
    ReplicaDestroyedMessage,
    ReplicaOperationMessage,
    ReplicaEventMessage,
]

MESSAGE_TYPES = {
    MessageKind.CREATED: ReplicaCreatedMessage,
    MessageKind.CHILDREN: ReplicaChildrenMessage,
    MessageKind.DESTROYED: ReplicaDestroyedMessage,
    MessageKind.OPERATION: ReplicaOperationMessage,
    MessageKind.EVENT: ReplicaEventMessage,
}


def encode_message(message: Message) -> bytes:
    """
    Serialize a message into a JSON envelope.

    Args:
        message: Any wire message

    Returns:
        UTF-8 JSON bytes of the form {"kind": ..., "body": {...}}
    """
    return json.dumps({
        'kind': message.kind.value,
        'body': message.to_dict()
    }).encode('utf-8')


def decode_message(data: Union[bytes, str]) -> Message:
    """
    Deserialize a JSON envelope into a message.

    Raises:
        UnknownMessageError: If the payload is not a valid envelope
    """
    try:
        obj = json.loads(data)
        kind = MessageKind(obj['kind'])
        body = obj['body']
    except (ValueError, KeyError, TypeError) as e:
        raise UnknownMessageError(f"Malformed replica message: {e}") from e

    try:
        return MESSAGE_TYPES[kind].from_dict(body)
    except (KeyError, TypeError, ValueError) as e:
        raise UnknownMessageError(f"Malformed {kind.value} message: {e}") from e
