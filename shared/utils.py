from __future__ import annotations
import base64
import re

# ========================================
#           ENCODING HELPERS
# ========================================

# Binary values (salts, SRP values, proofs) travel as base64url without padding.
_B64URL_RE = re.compile(r'^[A-Za-z0-9_-]*$')  # no '=' padding allowed


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    if not is_base64url(s):
        raise ValueError(f"not base64url: {s[:16]!r}")
    pad = "=" * ((4 - (len(s) % 4)) % 4)
    return base64.urlsafe_b64decode(s + pad)


def is_base64url(s: str) -> bool:
    """
    returns True if the string is only base64url-safe characters, otherwise False.
    """
    return bool(_B64URL_RE.fullmatch(s))


# ========================================
#           ADDRESS HELPERS
# ========================================

def is_hostport(s: str) -> bool:
    """
    Accepts 'hostname:port' or 'A.B.C.D:port'.

    Validates that:
    - Port is a valid integer between 1 and 65535
    - Hostname is non-empty

    Examples: "localhost:30000", "192.168.1.5:30000", "example.com:443"
    """
    try:
        if ':' not in s:
            return False
        host, port_s = s.rsplit(':', 1)
        if not host:
            return False
        port = int(port_s)
        return 0 < port <= 65535
    except ValueError:
        return False


def websocket_url(address: str) -> str:
    """Turn a server address into the websocket URL to dial."""
    if address.startswith(("ws://", "wss://")):
        return address
    if not is_hostport(address):
        raise ValueError(f"invalid server address {address!r}, expected host:port")
    return f"ws://{address}"
