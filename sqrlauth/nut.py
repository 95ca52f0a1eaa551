"""
sqrlauth/nut.py

Nuts: server-issued, time-bounded, per-transaction tokens.

A nut is opaque to the client. It carries:
  - created  : issue time (epoch seconds)
  - ip_hash  : 4-byte fingerprint of the requesting IP address
  - qr       : whether it was issued for a QR-code (cross-device) flow
  - entropy  : random bytes so that no two nuts collide

Wire format (AesNutService):

    base64url( aesgcm_nonce(12) || AES-GCM(key, record(16)) )

    record = created:u32 || ip_hash:4 || entropy:7 || flags:u8

AES-GCM keeps the record confidential (the client cannot read the IP
fingerprint) and authenticated (a modified nut fails to decode).
"""

import base64
import hashlib
import ipaddress
import os
import struct
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .encoding import b64url_decode, b64url_encode
from .errors import InvalidNut

_RECORD = struct.Struct(">I4s7sB")
_GCM_NONCE_LEN = 12
_FLAG_QR = 0x01

IP_HASH_LEN = 4
ENTROPY_LEN = 7


def ip_fingerprint(ip_address: Optional[str]) -> bytes:
    """
    First 4 bytes of SHA-256 over the normalised address text.

    Addresses that do not parse (e.g. a proxy placeholder) are hashed as
    given, so the comparison still works between two requests from the
    same source.
    """
    text = (ip_address or "").strip()
    try:
        text = str(ipaddress.ip_address(text))
    except ValueError:
        pass
    return hashlib.sha256(text.encode("utf-8")).digest()[:IP_HASH_LEN]


@dataclass(frozen=True)
class Nut:
    created: int
    ip_hash: bytes
    qr: bool = False
    entropy: bytes = field(default=b"\x00" * ENTROPY_LEN, repr=False)

    def age(self, now: float) -> float:
        return now - self.created

    def check_ip_match(self, other: "Nut") -> bool:
        return self.ip_hash == other.ip_hash


class NutService(Protocol):
    def create_nut(self, ip_address: str, qr: bool) -> Nut: ...

    def decode_nut(self, nut_text: str) -> Nut: ...

    def encode_nut(self, nut: Nut) -> str: ...


def load_nut_key_from_b64(key_b64: str) -> bytes:
    """
    Load a raw AES key (16, 24 or 32 bytes) from standard Base64.
    """
    raw = base64.b64decode(key_b64.strip(), validate=True)
    if len(raw) not in (16, 24, 32):
        raise ValueError("nut key must be 16, 24 or 32 bytes (base64 encoded)")
    return raw


class AesNutService:
    def __init__(
        self,
        key: Optional[bytes] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._aead = AESGCM(key if key is not None else AESGCM.generate_key(bit_length=128))
        self._clock = clock

    def create_nut(self, ip_address: str, qr: bool = False) -> Nut:
        return Nut(
            created=int(self._clock()),
            ip_hash=ip_fingerprint(ip_address),
            qr=bool(qr),
            entropy=os.urandom(ENTROPY_LEN),
        )

    def encode_nut(self, nut: Nut) -> str:
        if len(nut.ip_hash) != IP_HASH_LEN or len(nut.entropy) != ENTROPY_LEN:
            raise ValueError("nut ip_hash/entropy have the wrong length")
        flags = _FLAG_QR if nut.qr else 0
        record = _RECORD.pack(nut.created, nut.ip_hash, nut.entropy, flags)
        iv = os.urandom(_GCM_NONCE_LEN)
        return b64url_encode(iv + self._aead.encrypt(iv, record, None))

    def decode_nut(self, nut_text: str) -> Nut:
        try:
            blob = b64url_decode(nut_text)
        except ValueError as e:
            raise InvalidNut("nut is not base64url") from e

        if len(blob) != _GCM_NONCE_LEN + _RECORD.size + 16:
            raise InvalidNut("nut has the wrong length")

        iv, ct = blob[:_GCM_NONCE_LEN], blob[_GCM_NONCE_LEN:]
        try:
            record = self._aead.decrypt(iv, ct, None)
        except InvalidTag as e:
            raise InvalidNut("nut failed authentication") from e

        created, ip_hash, entropy, flags = _RECORD.unpack(record)
        return Nut(created=created, ip_hash=ip_hash, qr=bool(flags & _FLAG_QR), entropy=entropy)
