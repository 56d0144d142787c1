from __future__ import annotations
import asyncio
from contextlib import suppress
from enum import Enum
from typing import Optional

from client.auth import Auth
from client.dispatcher import TextureDispatcher
from client.state import phase_name
from client.transport import Receiver, Sender, Worker
from shared.errors import Kicked, MalformedMessageError
from shared.log import get_logger
from shared.messages import Kick, Message

logger = get_logger(__name__)


class LoopState(str, Enum):
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Why a connection ended without an error."""
    STREAM_END = "stream_end"          # server closed the connection
    TIME_BUDGET = "time_budget"        # quit-after-seconds elapsed
    INTERRUPT = "interrupt"            # cancellation event (SIGINT)
    CLIENT_CLOSED = "client_closed"    # dispatcher closed it, e.g. all definitions received


class RetryTimer:
    """Recurring timer: first tick fires immediately, then every `interval` seconds."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._deadline: Optional[float] = None

    @property
    def armed(self) -> bool:
        return self._deadline is not None

    def arm(self) -> None:
        if self._deadline is None:
            self._deadline = asyncio.get_running_loop().time()

    def disarm(self) -> None:
        self._deadline = None

    async def tick(self) -> None:
        if self._deadline is None:
            raise RuntimeError("retry timer is not armed")
        loop = asyncio.get_running_loop()
        await asyncio.sleep(max(0.0, self._deadline - loop.time()))
        self._deadline += self.interval


class Connection:
    """
    Event loop of one client connection.

    A single task multiplexes four event sources: inbound messages, the
    INIT retry timer (armed only while the handshake is in Initial), the
    optional quit-after time budget, and an external cancellation event.
    All handshake state lives in `auth` and is touched only from this task.
    """

    def __init__(
        self,
        sender: Sender,
        receiver: Receiver,
        worker: Worker,
        auth: Auth,
        dispatcher: Optional[TextureDispatcher] = None,
        *,
        quit_after: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        self.sender = sender
        self.receiver = receiver
        self.worker = worker
        self.auth = auth
        self.dispatcher = dispatcher
        self.quit_after = quit_after
        self.cancel = cancel
        self.state = LoopState.RUNNING
        self.close_reason: Optional[CloseReason] = None
        self._retry = RetryTimer(auth.settings.retry_interval)

    async def run(self) -> CloseReason:
        """
        Drive the connection until it ends.

        The transport worker is joined before this returns or raises.

        Returns:
            Why the connection ended.

        Raises:
            AuthError: the handshake failed
            TransportError: the connection failed
            Kicked: the server ended the session
        """
        worker_task = asyncio.create_task(self.worker.run())
        recv_task: Optional[asyncio.Task] = None
        tick_task: Optional[asyncio.Task] = None
        budget_task = self._start_budget()
        cancel_task = asyncio.create_task(self.cancel.wait()) if self.cancel is not None else None

        try:
            while True:
                if recv_task is None:
                    recv_task = asyncio.create_task(self.receiver.recv())
                tick_task = self._sync_retry_timer(tick_task)

                waiters = {t for t in (recv_task, tick_task, budget_task, cancel_task) if t is not None}
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if cancel_task in done:
                    cancel_task = None
                    logger.info("Interrupted, closing connection")
                    self._begin_close(CloseReason.INTERRUPT)
                elif budget_task in done:
                    budget_task = None
                    logger.info("Time budget of %.2fs elapsed, closing connection", self.quit_after)
                    self._begin_close(CloseReason.TIME_BUDGET)
                elif recv_task in done:
                    task, recv_task = recv_task, None
                    try:
                        message = task.result()
                    except MalformedMessageError as e:
                        logger.error("Dropping malformed message: %s", e)
                        continue
                    if message is None:
                        break
                    await self._on_message(message)
                elif tick_task in done:
                    tick_task = None
                    await self._on_retry_tick()
        finally:
            self.sender.close()
            for task in (recv_task, tick_task, budget_task, cancel_task):
                if task is not None and not task.done():
                    task.cancel()
                    with suppress(asyncio.CancelledError):
                        await task
            await worker_task
            self.state = LoopState.CLOSED
            self._retry.disarm()

        reason = self.close_reason or CloseReason.STREAM_END
        logger.info("Connection closed (%s)", reason.value)
        return reason

    def _start_budget(self) -> Optional[asyncio.Task]:
        if self.quit_after is None or self.quit_after < 0:
            return None
        return asyncio.create_task(asyncio.sleep(self.quit_after))

    def _sync_retry_timer(self, tick_task: Optional[asyncio.Task]) -> Optional[asyncio.Task]:
        """Arm the retry timer exactly while in Initial and still running."""
        if self.auth.retry_armed and self.state is LoopState.RUNNING:
            self._retry.arm()
            if tick_task is None:
                tick_task = asyncio.create_task(self._retry.tick())
            return tick_task

        if self._retry.armed:
            logger.debug("Retry timer disarmed in phase %s", phase_name(self.auth.phase))
        self._retry.disarm()
        if tick_task is not None:
            # a tick that already fired is dropped with it
            tick_task.cancel()
        return None

    def _begin_close(self, reason: CloseReason) -> None:
        if self.state is not LoopState.RUNNING:
            return
        self.state = LoopState.CLOSING
        self.close_reason = reason
        self.sender.close()

    async def _on_message(self, message: Message) -> None:
        logger.debug("Received %s", message.TYPE.value)
        intent = self.auth.handle_message(message)
        if intent is not None:
            await self._transmit(intent)

        if self.dispatcher is not None:
            await self.dispatcher.handle(message)

        if isinstance(message, Kick):
            raise Kicked(message.reason)

        if self.sender.closed and self.state is LoopState.RUNNING:
            self._begin_close(CloseReason.CLIENT_CLOSED)

    async def _on_retry_tick(self) -> None:
        intent = self.auth.on_retry_tick()
        if intent is not None:
            await self._transmit(intent)

    async def _transmit(self, intent: Message) -> None:
        if self.state is not LoopState.RUNNING:
            logger.debug("Not sending %s while %s", intent.TYPE.value, self.state.value)
            return
        await self.sender.send(intent)
