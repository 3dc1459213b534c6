"""Shared pytest fixtures for all tests."""

from unittest.mock import MagicMock

import pytest

from common.listener_registry import ListenerRegistry
from common.loopback import LoopbackHub
from common.replica_store import ReplicaStore
from common.signal import Signal
from common.transport import ServerTransport
from server.replica_server import ReplicaServer


@pytest.fixture
def hub():
    """
    Create an in-process transport hub.

    Returns:
        LoopbackHub with no subscribers connected
    """
    return LoopbackHub()


@pytest.fixture
def server(hub):
    """
    Create a replica server on the loopback hub.

    The flush loop is not started; tests flush the batcher explicitly.

    Args:
        hub: Loopback hub fixture

    Returns:
        ReplicaServer instance
    """
    return ReplicaServer(hub.server)


@pytest.fixture
def mock_transport():
    """
    Create a server transport mock that records sends.

    Returns:
        MagicMock specced as a ServerTransport
    """
    transport = MagicMock(spec=ServerTransport)
    transport.subscribers.return_value = []
    transport.subscriber_added = Signal(name="subscriber_added")
    transport.subscriber_removed = Signal(name="subscriber_removed")
    return transport


@pytest.fixture
def mock_server(mock_transport):
    """
    Create a replica server over a mock transport.

    Args:
        mock_transport: Mock transport fixture

    Returns:
        ReplicaServer whose sends are recorded on ``mock_transport.send``
    """
    return ReplicaServer(mock_transport)


@pytest.fixture
def store():
    return ReplicaStore(role="test")


@pytest.fixture
def registry():
    return ListenerRegistry()
