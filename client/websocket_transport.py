"""aiohttp websocket transport for replica subscribers."""

import asyncio
from typing import Optional

import aiohttp

from common.exceptions import UnknownMessageError
from common.logging_config import get_logger
from common.protocol import Message, decode_message, encode_message
from common.transport import ClientTransport
from client.config import CONNECT_TIMEOUT_SECONDS, SERVER_URL

logger = get_logger(__name__)


class WebSocketClientTransport(ClientTransport):
    """
    Connects to a replica server websocket route.

    Incoming messages are dispatched from a reader task; outgoing messages are
    queued and written by a writer task in send order.
    """

    def __init__(self, url: str = SERVER_URL, timeout: float = CONNECT_TIMEOUT_SECONDS):
        super().__init__()
        self.url = url
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.Task] = None
        self._has_connected = False

    @property
    def connected(self) -> bool:
        return self.ws is not None and not self.ws.closed

    async def connect(self):
        """Open the websocket and start the reader and writer tasks."""
        if self.connected:
            logger.warning(f"Already connected to {self.url}")
            return

        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, connect=self.timeout))
        try:
            self.ws = await self.session.ws_connect(self.url)
        except aiohttp.ClientError:
            await self.session.close()
            self.session = None
            raise

        if self._has_connected:
            logger.info(f"Reconnected to replica server at {self.url}")
            self.reconnected.fire()
        self._has_connected = True

        self._reader = asyncio.create_task(self._read_loop())
        self._writer = asyncio.create_task(self._write_loop())
        logger.info(f"Connected to replica server at {self.url}")

    async def close(self):
        """Close the websocket and stop background tasks."""
        try:
            for task in (self._writer, self._reader):
                if task is None:
                    continue
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Transport task failed before close [url={self.url}]: {e}")
        finally:
            self._reader = None
            self._writer = None

            if self.ws is not None:
                await self.ws.close()
                self.ws = None

            if self.session is not None:
                await self.session.close()
                self.session = None

            logger.info(f"Disconnected from replica server at {self.url}")

    def send(self, message: Message) -> None:
        if not self.connected:
            logger.warning(f"Send on closed websocket transport [url={self.url}]")
            return
        self._queue.put_nowait(encode_message(message))

    async def _read_loop(self):
        async for msg in self.ws:
            if msg.type in (aiohttp.WSMsgType.BINARY, aiohttp.WSMsgType.TEXT):
                try:
                    message = decode_message(msg.data)
                except UnknownMessageError as e:
                    logger.warning(f"Dropping malformed message: {e}")
                    continue
                self._dispatch(message)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"Websocket error: {self.ws.exception()}")

        logger.info("Replica server closed the connection")

    async def _write_loop(self):
        while True:
            payload = await self._queue.get()
            try:
                await self.ws.send_bytes(payload)
            except (aiohttp.ClientError, ConnectionResetError) as e:
                logger.warning(f"Send failed, stopping writer [url={self.url}]: {e}")
                return
