"""
Operation applier for subscribers.

Applies operations received from the server to the local replica and fires
the same listeners the server fired. Operations at or below the replica's
last applied sequence number are skipped, so redelivery is harmless.
"""

from common.logging_config import get_logger
from common.protocol import ReplicaOperationMessage
from common.types import OperationKind
from client.replica import ClientReplica

logger = get_logger(__name__)


def apply_operation(replica: ClientReplica, message: ReplicaOperationMessage) -> bool:
    """
    Apply a remote operation to a local replica.

    Args:
        replica: Replica the operation addresses
        message: Operation to apply

    Returns:
        True if applied, False if skipped (already applied or not applicable)
    """
    if message.sequence <= replica.last_sequence:
        logger.debug(
            f"Operation {message.sequence} already applied, skipping [replica_id={replica.id}]"
        )
        return False

    if message.sequence > replica.last_sequence + 1:
        logger.warning(
            f"Operation sequence gap [replica_id={replica.id}, "
            f"expected={replica.last_sequence + 1}, received={message.sequence}]"
        )

    replica.last_sequence = message.sequence

    try:
        applied = _apply(replica, message)
    except (IndexError, ValueError, TypeError) as e:
        logger.warning(
            f"Malformed {message.operation.value} operation [replica_id={replica.id}, "
            f"path={message.path}]: {e}"
        )
        return False

    if not applied:
        logger.warning(
            f"Operation could not be applied [replica_id={replica.id}, "
            f"operation={message.operation.value}, path={message.path}]"
        )
    return applied


def _apply(replica: ClientReplica, message: ReplicaOperationMessage) -> bool:
    operation = message.operation
    path = message.path
    args = message.args

    if operation == OperationKind.NEW_KEY:
        value, key = args[0], args[1]
        replica._announce_new_key(path, key, value)
        return True
    elif operation == OperationKind.CHANGE:
        return replica._apply_change(path, args[0])
    elif operation == OperationKind.ARRAY_INSERT:
        return replica._apply_array_insert(path, args[0]) > 0
    elif operation == OperationKind.ARRAY_SET:
        return replica._apply_array_set(path, args[0], args[1]) is not None
    elif operation == OperationKind.ARRAY_REMOVE:
        removed, _ = replica._apply_array_remove(path, args[0])
        return removed
    else:
        logger.warning(f"Unknown operation type: {operation.value}")
        return False
