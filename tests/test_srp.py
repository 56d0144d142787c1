import pytest

from helpers import SrpServer
from shared.crypto import srp
from shared.errors import AuthMathError

SALT = bytes(range(16))


def test_verifier_is_deterministic():
    first = srp.compute_verifier("alice", b"hunter2", SALT)
    second = srp.compute_verifier("alice", b"hunter2", SALT)
    assert first == second
    assert 0 < srp.bytes_to_int(first) < srp.N


def test_verifier_ignores_username_case():
    assert srp.compute_verifier("Alice", b"pw", SALT) == srp.compute_verifier("alice", b"pw", SALT)


def test_verifier_binds_password_and_salt():
    base = srp.compute_verifier("alice", b"pw", SALT)
    assert srp.compute_verifier("alice", b"other", SALT) != base
    assert srp.compute_verifier("alice", b"pw", bytes(16)) != base


def test_verifier_accepts_empty_password():
    assert srp.compute_verifier("alice", b"", SALT)


def test_public_ephemeral_is_generator_power():
    secret = bytes.fromhex("01" * 32)
    public = srp.compute_public_ephemeral(secret)
    assert srp.bytes_to_int(public) == pow(srp.G, srp.bytes_to_int(secret), srp.N)
    assert srp.compute_public_ephemeral(secret) == public


def test_public_ephemeral_rejects_empty_secret():
    with pytest.raises(AuthMathError):
        srp.compute_public_ephemeral(b"")


def test_proof_matches_server_computation():
    server = SrpServer("Alice", b"hunter2")
    secret = srp.generate_ephemeral_secret()
    b_pub = server.challenge(srp.compute_public_ephemeral(secret))

    proof = srp.derive_proof(secret, "Alice", b"hunter2", server.salt, b_pub)

    assert proof == server.expected_proof()
    assert len(proof) == 32


def test_proof_with_wrong_password_is_rejected_by_server():
    server = SrpServer("alice", b"hunter2")
    secret = srp.generate_ephemeral_secret()
    b_pub = server.challenge(srp.compute_public_ephemeral(secret))

    proof = srp.derive_proof(secret, "alice", b"wrong", server.salt, b_pub)

    assert proof != server.expected_proof()


@pytest.mark.parametrize("server_public", [
    b"\x00",
    srp.int_to_bytes(srp.N),
    srp.int_to_bytes(2 * srp.N),
    b"\x01" + bytes(256) + b"\x05",
    srp.int_to_bytes(srp.N + 1),
])
def test_degenerate_server_public_is_refused(server_public):
    secret = srp.generate_ephemeral_secret()
    with pytest.raises(AuthMathError):
        srp.derive_proof(secret, "alice", b"pw", SALT, server_public)


def test_generated_randomness_is_fresh():
    salts = {srp.generate_salt() for _ in range(8)}
    secrets_ = {srp.generate_ephemeral_secret() for _ in range(8)}
    assert len(salts) == 8 and all(len(s) == srp.SALT_LEN for s in salts)
    assert len(secrets_) == 8 and all(len(s) == srp.SECRET_LEN for s in secrets_)


def test_pad_uses_group_length():
    assert len(srp.pad(srp.G)) == 256
    assert srp.pad(srp.G)[-1] == 2
