"""
Transport interfaces used by the replication engine.

A transport moves wire messages between the authoritative server and its
subscribers. Implementations must preserve send order per connection and must
never invoke receive handlers inline from ``send``.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List

from common.constants import ALL_SUBSCRIBERS
from common.logging_config import get_logger
from common.protocol import Message
from common.signal import Connection, Signal
from common.types import MessageKind, ReplicationTarget

logger = get_logger(__name__)


def resolve_targets(target: ReplicationTarget, subscribers: Iterable[str]) -> List[str]:
    """
    Expand a replication target into connected subscriber ids.

    Args:
        target: ALL_SUBSCRIBERS or a set of subscriber ids
        subscribers: Currently connected subscriber ids

    Returns:
        Subscriber ids to deliver to, in connection order
    """
    connected = list(subscribers)
    if target == ALL_SUBSCRIBERS:
        return connected
    return [subscriber for subscriber in connected if subscriber in target]


class ServerTransport(ABC):
    """Authoritative side of a transport."""

    def __init__(self):
        self._handlers: Dict[MessageKind, Signal] = {}
        self.subscriber_added = Signal(name="subscriber_added")
        self.subscriber_removed = Signal(name="subscriber_removed")

    @abstractmethod
    def send(self, target: ReplicationTarget, message: Message) -> None:
        """Queue a message for every connected subscriber in ``target``."""

    @abstractmethod
    def subscribers(self) -> List[str]:
        """Currently connected subscriber ids."""

    def on_receive(self, kind: MessageKind, handler: Callable[[str, Any], None]) -> Connection:
        """
        Listen for messages from subscribers.

        Args:
            kind: Message kind to listen for
            handler: Called with (subscriber_id, message)
        """
        signal = self._handlers.setdefault(MessageKind(kind), Signal(name=f"server:{kind}"))
        return signal.connect(handler)

    def _dispatch(self, subscriber_id: str, message: Message) -> None:
        signal = self._handlers.get(message.kind)
        if signal is None:
            logger.debug(f"No handler for {message.kind.value} from {subscriber_id}")
            return
        signal.fire(subscriber_id, message)


class ClientTransport(ABC):
    """Subscriber side of a transport."""

    def __init__(self):
        self._handlers: Dict[MessageKind, Signal] = {}
        self.subscriber_id = None
        self.reconnected = Signal(name="reconnected")

    @abstractmethod
    def send(self, message: Message) -> None:
        """Queue a message for the server."""

    def on_receive(self, kind: MessageKind, handler: Callable[[Any], None]) -> Connection:
        """
        Listen for messages from the server.

        Args:
            kind: Message kind to listen for
            handler: Called with the decoded message
        """
        signal = self._handlers.setdefault(MessageKind(kind), Signal(name=f"client:{kind}"))
        return signal.connect(handler)

    def _dispatch(self, message: Message) -> None:
        signal = self._handlers.get(message.kind)
        if signal is None:
            logger.debug(f"No handler for {message.kind.value} [subscriber_id={self.subscriber_id}]")
            return
        signal.fire(message)
