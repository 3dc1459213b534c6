"""
FastAPI websocket transport for the replica server.

Each connected peer gets a subscriber id, an outbound queue and a writer task,
so ``send`` never blocks and per-peer send order is preserved.
"""

import asyncio
import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from common.exceptions import UnknownMessageError
from common.logging_config import get_logger
from common.protocol import Message, decode_message, encode_message
from common.transport import ServerTransport, resolve_targets
from common.types import ReplicationTarget
from server.config import WS_PATH

logger = get_logger(__name__)


class _Peer:

    def __init__(self, subscriber_id: str, websocket: WebSocket):
        self.subscriber_id = subscriber_id
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue()
        self.writer: Optional[asyncio.Task] = None


class WebSocketServerTransport(ServerTransport):
    """Serves subscribers on a websocket route of a FastAPI application."""

    def __init__(self, path: str = WS_PATH):
        super().__init__()
        self.path = path
        self._peers: Dict[str, _Peer] = {}

    def attach(self, app: FastAPI) -> None:
        """Register the websocket route on ``app``."""
        app.add_api_websocket_route(self.path, self.endpoint)

    def subscribers(self) -> List[str]:
        return list(self._peers)

    def send(self, target: ReplicationTarget, message: Message) -> None:
        payload = encode_message(message)
        for subscriber_id in resolve_targets(target, self.subscribers()):
            self._peers[subscriber_id].queue.put_nowait(payload)

    async def endpoint(self, websocket: WebSocket):
        """
        Serve one subscriber connection.

        The peer is registered, and the replay for it queued, before the
        handshake completes, so nothing sent after the client connects is missed.
        """
        peer = _Peer(uuid.uuid4().hex, websocket)
        self._peers[peer.subscriber_id] = peer

        logger.info(f"Subscriber connected [subscriber_id={peer.subscriber_id}]")
        self.subscriber_added.fire(peer.subscriber_id)

        try:
            await websocket.accept()
            peer.writer = asyncio.create_task(self._write_loop(peer))

            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break

                data = frame.get("bytes")
                if data is None:
                    data = frame.get("text")
                if data is not None:
                    self._receive(peer.subscriber_id, data)
        except WebSocketDisconnect:
            pass
        finally:
            await self._remove_peer(peer)

    def _receive(self, subscriber_id: str, data) -> None:
        try:
            message = decode_message(data)
        except UnknownMessageError as e:
            logger.warning(f"Dropping malformed message [subscriber_id={subscriber_id}]: {e}")
            return
        self._dispatch(subscriber_id, message)

    async def _write_loop(self, peer: _Peer) -> None:
        while True:
            payload = await peer.queue.get()
            try:
                await peer.websocket.send_bytes(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning(f"Send failed, dropping peer [subscriber_id={peer.subscriber_id}]: {e}")
                self._discard_peer(peer)
                return

    def _discard_peer(self, peer: _Peer) -> None:
        """Forget a peer and fire subscriber_removed, at most once per peer."""
        if self._peers.get(peer.subscriber_id) is not peer:
            return
        del self._peers[peer.subscriber_id]

        logger.info(f"Subscriber disconnected [subscriber_id={peer.subscriber_id}]")
        self.subscriber_removed.fire(peer.subscriber_id)

    async def _remove_peer(self, peer: _Peer) -> None:
        if peer.writer is not None:
            peer.writer.cancel()
            try:
                await peer.writer
            except asyncio.CancelledError:
                pass

        self._discard_peer(peer)
