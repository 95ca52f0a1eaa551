"""
sqrlauth/signature.py

Identity signature verification.

Key points:
- The client sends:
  - idk (raw 32-byte Ed25519 public key, unpadded base64url) inside the
    client block
  - ids (raw 64-byte Ed25519 signature, unpadded base64url)
- The signed message is the client block followed by the server block,
  byte for byte as they arrived on the wire. Nothing is decoded or
  re-encoded before verification.
- Ed25519 is the Edwards-curve scheme over SHA-512 that SQRL mandates.

Verification never raises for bad client input. Every failure (bad
encoding, wrong key length, signature mismatch) collapses into a single
invalid result; the reason string is meant for server logs only.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .encoding import b64url_decode

log = logging.getLogger(__name__)

ED25519_KEY_LEN = 32
ED25519_SIG_LEN = 64


@dataclass(frozen=True)
class SignatureCheck:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


SIGNATURE_OK = SignatureCheck(valid=True)


def _invalid(reason: str) -> SignatureCheck:
    log.debug("signature rejected: %s", reason)
    return SignatureCheck(valid=False, reason=reason)


def load_identity_key(identity_key_b64: str) -> Ed25519PublicKey:
    """
    Load an Ed25519 public key from its unpadded base64url form.

    Raises ValueError when the text is not base64url or not 32 bytes.
    """
    raw = b64url_decode(identity_key_b64)
    if len(raw) != ED25519_KEY_LEN:
        raise ValueError(f"identity key must be {ED25519_KEY_LEN} bytes, got {len(raw)}")
    return Ed25519PublicKey.from_public_bytes(raw)


def verify_sqrl_signature(
    message: bytes,
    identity_key_b64: Optional[str],
    signature_b64: Optional[str],
) -> SignatureCheck:
    """
    Verify an identity signature over the canonical request message.

    Returns:
      SignatureCheck(valid=True)          -> signature valid
      SignatureCheck(valid=False, reason) -> anything else
    """
    if not isinstance(message, (bytes, bytearray)):
        return _invalid("message must be bytes")
    if not identity_key_b64:
        return _invalid("missing identity key")
    if not signature_b64:
        return _invalid("missing signature")

    try:
        public_key = load_identity_key(identity_key_b64)
    except ValueError as e:
        return _invalid(f"bad identity key: {e}")

    try:
        sig = b64url_decode(signature_b64)
    except ValueError as e:
        return _invalid(f"bad signature encoding: {e}")

    if len(sig) != ED25519_SIG_LEN:
        return _invalid(f"signature must be {ED25519_SIG_LEN} bytes, got {len(sig)}")

    try:
        public_key.verify(sig, bytes(message))
    except InvalidSignature:
        return _invalid("signature mismatch")

    return SIGNATURE_OK
