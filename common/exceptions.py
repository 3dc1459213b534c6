"""Custom exception classes for the replication engine."""


class ReplicaError(Exception):
    """
    Base exception class for all replica-related errors.
    """
    pass


class MalformedReplicaParamsError(ReplicaError):
    """
    Raised when replica construction parameters are missing or invalid.
    """
    pass


class ReplicaHierarchyError(ReplicaError):
    """
    Raised when a parent assignment would make a replica its own ancestor.
    """
    pass


class DuplicateReplicaError(ReplicaError):
    """
    Raised when a replica id is registered twice in the same store.
    """
    pass


class UnknownMessageError(ReplicaError):
    """
    Raised when a wire message cannot be decoded into a known message kind.
    """
    pass
