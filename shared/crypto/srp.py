"""
SRP-6a client math over the RFC 5054 2048-bit group with SHA-256.

Everything here is pure: randomness only enters through generate_salt() and
generate_ephemeral_secret(), whose results the caller passes back in.

    x = H(salt | H(lower(username) | ":" | password))
    v = g^x                                  (verifier)
    A = g^a                                  (public ephemeral)
    u = H(PAD(A) | PAD(B))
    k = H(N | PAD(g))
    S = (B - k * g^x) ^ (a + u * x)
    K = H(S)
    M = H(H(N) xor H(g) | H(lower(username)) | salt | A | B | K)
"""

from __future__ import annotations
import secrets

from cryptography.hazmat.primitives import hashes

from shared.errors import AuthMathError

N = int(
    "ac6bdb41324a9a9bf166de5e1389582faf72b6651987ee07fc3192943db56050"
    "a37329cbb4a099ed8193e0757767a13dd52312ab4b03310dcd7f48a9da04fd50"
    "e8083969edb767b0cf6095179a163ab3661a05fbd5faaae82918a9962f0b93b8"
    "55f97993ec975eeaa80d740adbf4ff747359d041d5c33ea71d281e446b14773b"
    "ca97b43a23fb801676bd207a436c6481f1d2b9078717461a5b9d32e688f87748"
    "544523b524b0d57d5ea77a2775d2ecfa032cfbdbf52fb3786160279004e57ae6"
    "af874e7303ce53299ccc041c7bc308d82a5698f3a8d0c38271ae35f8e9dbfbb6"
    "94b5c803d89f7ae435de236d525f54759b65e372fcd68ef20fa7111f9e4aff73",
    16,
)
G = 2

N_LEN = (N.bit_length() + 7) // 8
SALT_LEN = 16
SECRET_LEN = 32


def sha256(*parts: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    for part in parts:
        digest.update(part)
    return digest.finalize()


def int_to_bytes(value: int) -> bytes:
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big")


def pad(value: int) -> bytes:
    return value.to_bytes(N_LEN, "big")


def _identity(username: str) -> bytes:
    return username.lower().encode("utf-8")


def private_key(username: str, password: bytes, salt: bytes) -> int:
    """x = H(salt | H(I | ":" | P))"""
    inner = sha256(_identity(username), b":", password)
    return bytes_to_int(sha256(salt, inner))


def multiplier() -> int:
    """k = H(N | PAD(g))"""
    return bytes_to_int(sha256(int_to_bytes(N), pad(G)))


def scrambler(public_a: int, public_b: int) -> int:
    """u = H(PAD(A) | PAD(B))"""
    return bytes_to_int(sha256(pad(public_a), pad(public_b)))


def generate_salt() -> bytes:
    return secrets.token_bytes(SALT_LEN)


def generate_ephemeral_secret() -> bytes:
    return secrets.token_bytes(SECRET_LEN)


def compute_verifier(username: str, password: bytes, salt: bytes) -> bytes:
    """
    Verifier the server stores for first-time registration.

    Args:
        username: Account name; case does not matter.
        password: Raw password bytes, may be empty.
        salt: Registration salt.

    Returns:
        g^x mod N as big-endian bytes.
    """
    x = private_key(username, password, salt)
    return int_to_bytes(pow(G, x, N))


def compute_public_ephemeral(secret: bytes) -> bytes:
    """A = g^a mod N for the ephemeral secret a."""
    if not secret:
        raise AuthMathError("empty ephemeral secret")
    return int_to_bytes(pow(G, bytes_to_int(secret), N))


def derive_proof(
    secret: bytes,
    username: str,
    password: bytes,
    salt: bytes,
    server_public: bytes,
) -> bytes:
    """
    Client proof M for the server's salt and public value B.

    `secret` must be the same bytes that produced the A already sent to
    the server.

    Raises:
        AuthMathError: If B is congruent to zero modulo N or not below N,
            or the scrambling parameter u is zero.
    """
    b_int = bytes_to_int(server_public)
    if b_int % N == 0:
        raise AuthMathError("server public value is degenerate (B % N == 0)")
    if b_int >= N:
        raise AuthMathError("server public value is out of range (B >= N)")

    a_int = bytes_to_int(secret)
    a_pub = pow(G, a_int, N)
    u = scrambler(a_pub, b_int)
    if u == 0:
        raise AuthMathError("scrambling parameter is zero")

    x = private_key(username, password, salt)
    k = multiplier()
    base = (b_int - k * pow(G, x, N)) % N
    shared = pow(base, a_int + u * x, N)
    session_key = sha256(int_to_bytes(shared))

    h_n = sha256(int_to_bytes(N))
    h_g = sha256(int_to_bytes(G))
    h_xor = bytes(n ^ g for n, g in zip(h_n, h_g))
    return sha256(
        h_xor,
        sha256(_identity(username)),
        salt,
        int_to_bytes(a_pub),
        int_to_bytes(b_int),
        session_key,
    )
