from __future__ import annotations


class ConnectionTerminated(Exception):
    """Base for every condition that ends a client connection."""
    pass


class AuthError(ConnectionTerminated):
    """The authentication handshake cannot continue."""
    pass


class IdentityMismatch(AuthError):
    """Server confirmed a different username than the one we asked for."""

    def __init__(self, requested: str, confirmed: str):
        super().__init__(f"server confirmed username {confirmed!r}, requested {requested!r}")
        self.requested = requested
        self.confirmed = confirmed


class UnsupportedAuthMethod(AuthError):
    """Server offers no authentication method this client implements."""

    def __init__(self, offered):
        names = ", ".join(sorted(m.value for m in offered)) or "none"
        super().__init__(f"no supported auth method offered (server offers: {names})")
        self.offered = frozenset(offered)


class AuthMathError(AuthError):
    """SRP derivation refused a degenerate value."""
    pass


class UnexpectedAcceptance(AuthError):
    """Server accepted authentication before the client finished it."""
    pass


class DuplicateGreeting(AuthError):
    """A second greeting arrived while strict greeting handling is enabled."""
    pass


class TransportError(ConnectionTerminated):
    """Read or write failure on the underlying connection."""
    pass


class Kicked(ConnectionTerminated):
    """Server ended the session on purpose."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MalformedMessageError(ValueError):
    """Inbound frame is not a valid protocol message."""
    pass
