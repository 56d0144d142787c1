from __future__ import annotations
import asyncio
from contextlib import suppress
from typing import Optional, Tuple, Union

import websockets

from shared.errors import MalformedMessageError, TransportError
from shared.log import get_logger
from shared.messages import Message, decode_message, encode_message
from shared.utils import websocket_url

logger = get_logger(__name__)

# Queue markers
_CLOSE = object()
_EOF = object()

Inbound = Union[Message, Exception, object]


class Sender:
    """Writing half of a connection. Frames are written by the Worker."""

    def __init__(self, outbound: asyncio.Queue, stopped: asyncio.Event) -> None:
        self._outbound = outbound
        self._stopped = stopped
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Message) -> None:
        """
        Queue a message and wait until the worker has written it.

        Raises:
            TransportError: connection closed or the write failed
        """
        if self._closed or self._stopped.is_set():
            raise TransportError(f"cannot send {message.TYPE.value}: connection closed")
        done = asyncio.get_running_loop().create_future()
        self._outbound.put_nowait((encode_message(message), done))
        await done
        logger.debug("Sent %s", message.TYPE.value)

    def close(self) -> None:
        """Request a graceful close once already queued frames are written."""
        if self._closed:
            return
        self._closed = True
        self._outbound.put_nowait(_CLOSE)


class Receiver:
    """Reading half of a connection."""

    def __init__(self, inbound: asyncio.Queue) -> None:
        self._inbound = inbound
        self._eof = False

    async def recv(self) -> Optional[Message]:
        """
        Next inbound message, or None once the stream has ended.

        Raises:
            MalformedMessageError: this frame was not a valid message
            TransportError: the connection failed
        """
        if self._eof:
            return None
        item = await self._inbound.get()
        if item is _EOF:
            self._eof = True
            return None
        if isinstance(item, Exception):
            if isinstance(item, TransportError):
                self._eof = True
            raise item
        return item


class Worker:
    """
    Owns the websocket: pumps inbound frames into the receiver's queue and
    outbound frames from the sender's queue. Run it as its own task and
    await that task on shutdown.
    """

    def __init__(self, websocket, inbound: asyncio.Queue, outbound: asyncio.Queue, stopped: asyncio.Event) -> None:
        self.websocket = websocket
        self._inbound = inbound
        self._outbound = outbound
        self._stopped = stopped
        # future of the frame the writer is currently sending
        self._in_flight: Optional[asyncio.Future] = None

    async def run(self) -> None:
        reader = asyncio.create_task(self._read_loop())
        writer = asyncio.create_task(self._write_loop())
        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            if writer in done:
                # close requested, or a write failed: end the session and let the reader drain
                await self._close_websocket()
                await reader
            else:
                writer.cancel()
                with suppress(asyncio.CancelledError):
                    await writer
                await self._close_websocket()
        finally:
            for task in (reader, writer):
                if not task.done():
                    task.cancel()
                    with suppress(asyncio.CancelledError):
                        await task
            self._stopped.set()
            self._fail_pending("connection closed")

    async def _read_loop(self) -> None:
        try:
            async for raw in self.websocket:
                try:
                    self._inbound.put_nowait(decode_message(raw))
                except MalformedMessageError as e:
                    self._inbound.put_nowait(e)
        except websockets.exceptions.ConnectionClosedError as e:
            logger.warning("Connection lost: %s", e)
            self._inbound.put_nowait(TransportError(f"connection lost: {e}"))
        except Exception as e:
            logger.exception("Reader failed")
            self._inbound.put_nowait(TransportError(f"reader failed: {e}"))
        finally:
            self._inbound.put_nowait(_EOF)

    async def _write_loop(self) -> None:
        while True:
            item = await self._outbound.get()
            if item is _CLOSE:
                return
            frame, done = item
            self._in_flight = done
            try:
                await self.websocket.send(frame)
            except websockets.exceptions.ConnectionClosed as e:
                if not done.done():
                    done.set_exception(TransportError(f"write failed: {e}"))
                return
            self._in_flight = None
            if not done.done():
                done.set_result(None)

    async def _close_websocket(self) -> None:
        try:
            await self.websocket.close(code=1000)
        except Exception as e:
            logger.error(f"Error closing connection: {e}")

    def _fail_pending(self, reason: str) -> None:
        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.set_exception(TransportError(reason))
        self._in_flight = None
        while not self._outbound.empty():
            item = self._outbound.get_nowait()
            if item is _CLOSE:
                continue
            _, done = item
            if not done.done():
                done.set_exception(TransportError(reason))


async def connect(address: str, *, open_timeout: float = 10.0) -> Tuple[Sender, Receiver, Worker]:
    """
    Connect to a game server.

    Args:
        address: "host:port" or a ws:// / wss:// URL

    Raises:
        ValueError: malformed address
        TransportError: the connection could not be opened
    """
    url = websocket_url(address)
    try:
        websocket = await websockets.connect(url, open_timeout=open_timeout, ping_interval=15, ping_timeout=45)
    except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
        raise TransportError(f"could not connect to {url}: {e}") from e
    logger.info("Connected to %s", url)
    return attach(websocket)


def attach(websocket) -> Tuple[Sender, Receiver, Worker]:
    """Wrap an open websocket into its sender, receiver and worker."""
    inbound: asyncio.Queue = asyncio.Queue()
    outbound: asyncio.Queue = asyncio.Queue()
    stopped = asyncio.Event()
    return Sender(outbound, stopped), Receiver(inbound), Worker(websocket, inbound, outbound, stopped)
