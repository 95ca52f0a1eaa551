"""
Tests for Ed25519 identity signature verification.
"""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from conftest import GRC_CLIENT, GRC_IDK, GRC_IDS, GRC_SERVER, public_key_b64
from sqrlauth.encoding import b64url_encode
from sqrlauth.signature import load_identity_key, verify_sqrl_signature


def test_known_client_vector_verifies() -> None:
    msg = (GRC_CLIENT + GRC_SERVER).encode("utf-8")
    assert verify_sqrl_signature(msg, GRC_IDK, GRC_IDS).valid is True


def test_known_client_vector_with_altered_signature_fails() -> None:
    msg = (GRC_CLIENT + GRC_SERVER).encode("utf-8")
    bad = GRC_IDS[:-1] + "a"
    check = verify_sqrl_signature(msg, GRC_IDK, bad)
    assert check.valid is False
    assert check.reason


def test_reordered_blocks_fail() -> None:
    # the signature covers client||server exactly as received
    msg = (GRC_SERVER + GRC_CLIENT).encode("utf-8")
    assert not verify_sqrl_signature(msg, GRC_IDK, GRC_IDS)


def test_fresh_keypair_roundtrip() -> None:
    priv = Ed25519PrivateKey.generate()
    msg = b"client-blockserver-block"
    sig = b64url_encode(priv.sign(msg))
    assert verify_sqrl_signature(msg, public_key_b64(priv), sig)


def test_wrong_key_fails() -> None:
    signer = Ed25519PrivateKey.generate()
    other = Ed25519PrivateKey.generate()
    msg = b"hello"
    sig = b64url_encode(signer.sign(msg))
    check = verify_sqrl_signature(msg, public_key_b64(other), sig)
    assert not check
    assert check.reason == "signature mismatch"


def test_garbage_inputs_collapse_to_invalid() -> None:
    priv = Ed25519PrivateKey.generate()
    idk = public_key_b64(priv)
    sig = b64url_encode(priv.sign(b"m"))

    assert not verify_sqrl_signature(b"m", None, sig)
    assert not verify_sqrl_signature(b"m", idk, None)
    assert not verify_sqrl_signature(b"m", "not base64 !!", sig)
    assert not verify_sqrl_signature(b"m", b64url_encode(b"short"), sig)
    assert not verify_sqrl_signature(b"m", idk, "%%%")
    assert not verify_sqrl_signature(b"m", idk, b64url_encode(b"\x00" * 10))
    assert not verify_sqrl_signature("m", idk, sig)


def test_load_identity_key_rejects_wrong_length() -> None:
    with pytest.raises(ValueError):
        load_identity_key(b64url_encode(b"\x01" * 31))
