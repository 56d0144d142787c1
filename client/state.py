from __future__ import annotations
from dataclasses import dataclass, field
from typing import Union

from shared.messages import AuthMethod


@dataclass(frozen=True)
class SessionIdentity:
    username: str
    password: bytes = field(default=b"", repr=False)
    lang: str = "en_US"

    @property
    def srp_username(self) -> str:
        return self.username.lower()


# Handshake phases. Exactly one is active; Auth only moves forward through them.

@dataclass(frozen=True)
class Initial:
    """No greeting yet; INIT is retransmitted every retry_interval seconds."""
    retry_interval: float


@dataclass(frozen=True)
class AwaitingServerProof:
    """
    SRP_BYTES_A sent. `secret` is the ephemeral secret behind `public` and
    is the one used once the server's salt and B arrive.
    """
    secret: bytes = field(repr=False)
    public: bytes = field(repr=False)


@dataclass(frozen=True)
class Complete:
    via: AuthMethod
    accepted: bool = False


HandshakePhase = Union[Initial, AwaitingServerProof, Complete]


def phase_name(phase: HandshakePhase) -> str:
    return type(phase).__name__
