from __future__ import annotations
from typing import Optional

from client.config import ClientSettings
from client.state import (
    AwaitingServerProof,
    Complete,
    HandshakePhase,
    Initial,
    SessionIdentity,
    phase_name,
)
from shared.crypto import srp
from shared.errors import (
    DuplicateGreeting,
    IdentityMismatch,
    UnexpectedAcceptance,
    UnsupportedAuthMethod,
)
from shared.log import get_logger
from shared.messages import (
    AcceptAuth,
    AuthMethod,
    FirstSrp,
    Hello,
    Init,
    Init2,
    Message,
    SrpBytesA,
    SrpBytesM,
    SrpBytesSaltB,
)

logger = get_logger(__name__)


class Auth:
    """
    Client side of the SRP login handshake.

    Consumes inbound messages and retry ticks and returns the message that
    should be sent in response, if any. Never performs I/O itself; the
    connection loop transmits whatever is returned.

    Phases only move forward:
        Initial -> AwaitingServerProof -> Complete   (SRP)
        Initial -> Complete                          (FIRST_SRP)
    """

    def __init__(self, identity: SessionIdentity, settings: Optional[ClientSettings] = None) -> None:
        self.identity = identity
        self.settings = settings or ClientSettings()
        self._phase: HandshakePhase = Initial(retry_interval=self.settings.retry_interval)

    @property
    def phase(self) -> HandshakePhase:
        return self._phase

    @property
    def retry_armed(self) -> bool:
        """The retry timer runs only while no greeting has been received."""
        return isinstance(self._phase, Initial)

    def _log_context(self, message: Optional[Message] = None) -> dict:
        context = {"username": self.identity.username, "phase": phase_name(self._phase)}
        if message is not None:
            context["msg_type"] = message.TYPE.value
        return context

    def _advance(self, phase: HandshakePhase) -> None:
        logger.debug("Handshake %s -> %s", phase_name(self._phase), phase_name(phase),
                     extra={"username": self.identity.username})
        self._phase = phase

    # ========================================
    #           ENTRY POINTS
    # ========================================

    def handle_message(self, message: Message) -> Optional[Message]:
        """
        Feed one inbound message to the handshake.

        Returns:
            The message to send in response, or None.

        Raises:
            IdentityMismatch, UnsupportedAuthMethod, AuthMathError,
            UnexpectedAcceptance, DuplicateGreeting: the handshake is over.
        """
        if isinstance(message, Hello):
            return self._on_hello(message)
        if isinstance(message, SrpBytesSaltB):
            return self._on_salt_and_public(message)
        if isinstance(message, AcceptAuth):
            return self._on_accept(message)
        return None

    def on_retry_tick(self) -> Optional[Message]:
        """Connection-init request to (re)send, only while in Initial."""
        if not isinstance(self._phase, Initial):
            return None
        s = self.settings
        return Init(
            player_name=self.identity.username,
            serialize_version=s.serialize_version,
            supp_compr_modes=s.supp_compr_modes,
            min_proto_version=s.min_proto_version,
            max_proto_version=s.max_proto_version,
        )

    # ========================================
    #           MESSAGE HANDLERS
    # ========================================

    def _on_hello(self, hello: Hello) -> Optional[Message]:
        if not isinstance(self._phase, Initial):
            if self.settings.strict_greeting:
                raise DuplicateGreeting(f"greeting received in phase {phase_name(self._phase)}")
            logger.warning("Ignoring repeated greeting", extra=self._log_context(hello))
            return None

        if hello.username != self.identity.username:
            raise IdentityMismatch(self.identity.username, hello.username)

        if AuthMethod.FIRST_SRP in hello.auth_methods:
            return self._register_verifier()
        if AuthMethod.SRP in hello.auth_methods:
            return self._start_srp()
        raise UnsupportedAuthMethod(hello.auth_methods)

    def _register_verifier(self) -> FirstSrp:
        salt = srp.generate_salt()
        verifier = srp.compute_verifier(self.identity.srp_username, self.identity.password, salt)
        self._advance(Complete(via=AuthMethod.FIRST_SRP))
        logger.info("Registering password verifier", extra=self._log_context())
        return FirstSrp(salt=salt, verifier=verifier, empty_passwd=not self.identity.password)

    def _start_srp(self) -> SrpBytesA:
        secret = srp.generate_ephemeral_secret()
        public = srp.compute_public_ephemeral(secret)
        self._advance(AwaitingServerProof(secret=secret, public=public))
        logger.info("Starting SRP exchange", extra=self._log_context())
        return SrpBytesA(a=public)

    def _on_salt_and_public(self, message: SrpBytesSaltB) -> Optional[Message]:
        phase = self._phase
        if not isinstance(phase, AwaitingServerProof):
            logger.warning("Ignoring unexpected SRP salt/B", extra=self._log_context(message))
            return None

        proof = srp.derive_proof(
            phase.secret,
            self.identity.srp_username,
            self.identity.password,
            message.salt,
            message.b,
        )
        self._advance(Complete(via=AuthMethod.SRP))
        return SrpBytesM(m=proof)

    def _on_accept(self, message: AcceptAuth) -> Optional[Message]:
        phase = self._phase
        if not isinstance(phase, Complete):
            raise UnexpectedAcceptance(f"authentication accepted in phase {phase_name(phase)}")
        if phase.accepted:
            logger.warning("Ignoring repeated acceptance", extra=self._log_context(message))
            return None

        self._advance(Complete(via=phase.via, accepted=True))
        logger.info("Authentication accepted", extra=self._log_context(message))
        return Init2(lang=self.identity.lang)
