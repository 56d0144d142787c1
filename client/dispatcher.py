from __future__ import annotations
import sys
from enum import Enum
from typing import Iterable, Optional, Set, TextIO

from client.config import ClientSettings
from client.transport import Sender
from shared.log import get_logger
from shared.messages import AcceptAuth, CltReady, ItemDefs, Kick, Message, NodeDefs

logger = get_logger(__name__)


class DefType(str, Enum):
    NODE = "node"
    ITEM = "item"


class TextureDispatcher:
    """
    Handles domain messages: prints every distinct texture name found in the
    node and item definition tables, and announces client readiness once
    authentication was accepted.
    """

    def __init__(
        self,
        sender: Sender,
        settings: Optional[ClientSettings] = None,
        *,
        quit_after_defs: bool = False,
        out: Optional[TextIO] = None,
    ) -> None:
        self.sender = sender
        self.settings = settings or ClientSettings()
        self.quit_after_defs = quit_after_defs
        self.out = out or sys.stdout
        self.pending: Set[DefType] = set(DefType)
        self.seen: Set[str] = set()
        self._ready_sent = False

    async def handle(self, message: Message) -> None:
        if isinstance(message, NodeDefs):
            self._print_textures(t for d in message.defs.values() for t in d.textures())
            self._got_def(DefType.NODE)
        elif isinstance(message, ItemDefs):
            self._print_textures(t for d in message.defs for t in d.textures())
            self._got_def(DefType.ITEM)
        elif isinstance(message, AcceptAuth):
            await self._announce_ready()
        elif isinstance(message, Kick):
            logger.info("Kicked by server: %s", message.reason)

    def _print_textures(self, textures: Iterable[str]) -> None:
        for texture in textures:
            if texture and texture not in self.seen:
                self.seen.add(texture)
                print(texture, file=self.out)
        self.out.flush()

    def _got_def(self, def_type: DefType) -> None:
        self.pending.discard(def_type)
        logger.info("Received %s definitions (%d textures so far)", def_type.value, len(self.seen))
        if self.quit_after_defs and not self.pending:
            logger.info("All definitions received, closing connection")
            self.sender.close()

    async def _announce_ready(self) -> None:
        if self._ready_sent or self.sender.closed:
            return
        self._ready_sent = True
        await self.sender.send(CltReady(
            version=self.settings.client_version,
            formspec=self.settings.formspec_version,
        ))
