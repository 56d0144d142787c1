"""
Test doubles: an in-memory transport and the server side of SRP.

The server-side SRP math uses hashlib on purpose so it cross-checks the
client implementation instead of reusing it.
"""

import asyncio
import hashlib
import secrets
from typing import Callable, List, Optional

from shared.crypto import srp
from shared.errors import TransportError
from shared.messages import Message


def _h(*parts: bytes) -> bytes:
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part)
    return digest.digest()


def _b(value: int) -> bytes:
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


class SrpServer:
    def __init__(self, username: str, password: bytes, salt: Optional[bytes] = None) -> None:
        self.username = username.lower()
        self.salt = salt if salt is not None else secrets.token_bytes(16)
        self.verifier = int.from_bytes(srp.compute_verifier(username, password, self.salt), "big")
        self.a_pub = 0
        self.b_pub = 0
        self._b = 0

    def challenge(self, a_pub: bytes) -> bytes:
        N, g = srp.N, srp.G
        n_len = (N.bit_length() + 7) // 8
        k = int.from_bytes(_h(_b(N), g.to_bytes(n_len, "big")), "big")
        self.a_pub = int.from_bytes(a_pub, "big")
        self._b = int.from_bytes(secrets.token_bytes(32), "big")
        self.b_pub = (k * self.verifier + pow(g, self._b, N)) % N
        return _b(self.b_pub)

    def expected_proof(self) -> bytes:
        N, g = srp.N, srp.G
        n_len = (N.bit_length() + 7) // 8
        u = int.from_bytes(_h(self.a_pub.to_bytes(n_len, "big"), self.b_pub.to_bytes(n_len, "big")), "big")
        shared = pow(self.a_pub * pow(self.verifier, u, N) % N, self._b, N)
        session_key = _h(_b(shared))
        h_xor = bytes(x ^ y for x, y in zip(_h(_b(N)), _h(_b(g))))
        return _h(
            h_xor,
            _h(self.username.encode()),
            self.salt,
            _b(self.a_pub),
            _b(self.b_pub),
            session_key,
        )


class FakeSender:
    def __init__(self, *, fail_with: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.sent: List[Message] = []
        self.closed = False
        self.close_event = asyncio.Event()
        self.fail_with = fail_with
        self.delay = delay
        self.on_send: Optional[Callable[[Message], None]] = None

    async def send(self, message: Message) -> None:
        if self.closed:
            raise TransportError(f"cannot send {message.TYPE.value}: connection closed")
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)
        if self.on_send is not None:
            self.on_send(message)

    def close(self) -> None:
        self.closed = True
        self.close_event.set()

    def sent_types(self) -> List[str]:
        return [m.TYPE.value for m in self.sent]


class FakeReceiver:
    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self._eof = False

    def feed(self, *messages: Message) -> None:
        for message in messages:
            self.queue.put_nowait(message)

    def fail(self, error: Exception) -> None:
        self.queue.put_nowait(error)

    def end(self) -> None:
        self.queue.put_nowait(None)

    async def recv(self) -> Optional[Message]:
        if self._eof:
            return None
        item = await self.queue.get()
        if item is None:
            self._eof = True
            return None
        if isinstance(item, Exception):
            raise item
        return item


class FakeWorker:
    """Ends the inbound stream once the sender is closed, like the real worker."""

    def __init__(self, sender: FakeSender, receiver: FakeReceiver, *, drain_delay: float = 0.0) -> None:
        self.sender = sender
        self.receiver = receiver
        self.drain_delay = drain_delay
        self.started = False
        self.finished = False

    async def run(self) -> None:
        self.started = True
        await self.sender.close_event.wait()
        if self.drain_delay:
            await asyncio.sleep(self.drain_delay)
        self.receiver.end()
        self.finished = True


def fake_transport(**sender_kwargs):
    sender = FakeSender(**sender_kwargs)
    receiver = FakeReceiver()
    worker = FakeWorker(sender, receiver)
    return sender, receiver, worker


class DummyWebSocket:
    """Scripted websocket: frames fed in are yielded by iteration until closed."""

    def __init__(self, *, block_send: bool = False) -> None:
        self.sent_frames: List[str] = []
        self.block_send = block_send
        self.closed = asyncio.Event()
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, *frames) -> None:
        for frame in frames:
            self._incoming.put_nowait(frame)

    def __aiter__(self):
        return self

    async def __anext__(self):
        get = asyncio.ensure_future(self._incoming.get())
        closed = asyncio.ensure_future(self.closed.wait())
        done, pending = await asyncio.wait({get, closed}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if get in done:
            item = get.result()
            if isinstance(item, Exception):
                raise item
            return item
        raise StopAsyncIteration

    async def send(self, data: str) -> None:
        if self.block_send:
            await asyncio.Event().wait()
        self.sent_frames.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed.set()
