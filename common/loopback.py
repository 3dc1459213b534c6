"""
In-process transport.

Connects one ServerTransport to any number of ClientTransports living on the
same event loop. Messages are encoded when sent and decoded when delivered, so
server and subscribers never share data structures. Deliveries are posted to
the loop with ``call_soon`` and therefore run in send order, on a later step
than the call that produced them.
"""

import asyncio
import uuid
from typing import Callable, Dict, List, Optional

from common.logging_config import get_logger
from common.protocol import Message, decode_message, encode_message
from common.transport import ClientTransport, ServerTransport, resolve_targets
from common.types import ReplicationTarget

logger = get_logger(__name__)


class LoopbackServerTransport(ServerTransport):

    def __init__(self, hub: "LoopbackHub"):
        super().__init__()
        self._hub = hub

    def send(self, target: ReplicationTarget, message: Message) -> None:
        payload = encode_message(message)
        for subscriber_id in resolve_targets(target, self.subscribers()):
            client = self._hub.clients.get(subscriber_id)
            if client is not None:
                self._hub.post(client._receive, payload)

    def subscribers(self) -> List[str]:
        return list(self._hub.clients)

    def _receive(self, subscriber_id: str, payload: bytes) -> None:
        if subscriber_id not in self._hub.clients:
            logger.debug(f"Dropping message from disconnected subscriber {subscriber_id}")
            return
        self._dispatch(subscriber_id, decode_message(payload))


class LoopbackClientTransport(ClientTransport):

    def __init__(self, hub: "LoopbackHub", subscriber_id: str):
        super().__init__()
        self._hub = hub
        self.subscriber_id = subscriber_id
        self.connected = True

    def send(self, message: Message) -> None:
        if not self.connected:
            logger.warning(f"Send on closed loopback transport [subscriber_id={self.subscriber_id}]")
            return
        self._hub.post(self._hub.server._receive, self.subscriber_id, encode_message(message))

    def _receive(self, payload: bytes) -> None:
        if not self.connected:
            return
        self._dispatch(decode_message(payload))

    def close(self) -> None:
        self._hub.disconnect(self.subscriber_id)


class LoopbackHub:
    """Owns the server endpoint and the connected subscriber endpoints."""

    def __init__(self):
        self.server = LoopbackServerTransport(self)
        self.clients: Dict[str, LoopbackClientTransport] = {}
        self._in_flight = 0

    def connect(self, subscriber_id: Optional[str] = None) -> LoopbackClientTransport:
        """
        Connect a new subscriber.

        Args:
            subscriber_id: Identity to use; a random one is generated if omitted

        Returns:
            Client endpoint for the subscriber
        """
        subscriber_id = subscriber_id or uuid.uuid4().hex
        client = LoopbackClientTransport(self, subscriber_id)
        self.clients[subscriber_id] = client
        logger.info(f"Subscriber connected [subscriber_id={subscriber_id}]")
        self.server.subscriber_added.fire(subscriber_id)
        return client

    def disconnect(self, subscriber_id: str) -> None:
        client = self.clients.pop(subscriber_id, None)
        if client is None:
            return
        client.connected = False
        logger.info(f"Subscriber disconnected [subscriber_id={subscriber_id}]")
        self.server.subscriber_removed.fire(subscriber_id)

    def post(self, callback: Callable, *args) -> None:
        """Schedule a delivery on the running loop."""
        self._in_flight += 1
        asyncio.get_running_loop().call_soon(self._deliver, callback, args)

    def _deliver(self, callback: Callable, args: tuple) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Loopback delivery failed: {e}", exc_info=True)
        finally:
            self._in_flight -= 1

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def drain(self) -> None:
        """Wait until every posted delivery (and those it triggered) has run."""
        while self._in_flight:
            await asyncio.sleep(0)
