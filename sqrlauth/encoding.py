# sqrlauth/encoding.py
#
# SQRL carries every binary value (keys, signatures, nuts, the client and
# server blocks, the response body) as URL-safe Base64 WITHOUT padding.

import base64


def b64url_encode(b: bytes) -> str:
    """
    URL-safe Base64 encoding WITHOUT padding.
    """
    return base64.urlsafe_b64encode(b).decode("ascii").rstrip("=")


def b64url_decode(s: str) -> bytes:
    """
    Decode URL-safe Base64 with optional missing padding.

    Padding is restored automatically. Characters outside the URL-safe
    alphabet are rejected rather than silently dropped.
    """
    s = str(s).strip()
    s += "=" * (-len(s) % 4)
    if any(c in s for c in "+/"):
        raise ValueError("not URL-safe base64")
    return base64.b64decode(s.encode("ascii"), altchars=b"-_", validate=True)


def b64url_encode_text(s: str) -> str:
    return b64url_encode(s.encode("utf-8"))


def b64url_decode_text(s: str) -> str:
    return b64url_decode(s).decode("utf-8")
