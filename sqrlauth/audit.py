"""
sqrlauth/audit.py

Tamper-evident audit log of protocol decisions.

We append one JSON object per line (JSONL). Each event is hash-chained:

  H_0 = "0"*64
  H_n = SHA3-256( bytes.fromhex(H_{n-1}) || canonical_json(event_without_hash_fields) )

Each line stores:
  - prev_hash: hex string (64 chars)
  - hash:      hex string (64 chars)

Properties:
- Any modification, deletion, or reordering of log lines breaks the chain.
- Chain state is persisted next to the log (<name>.state).
- Uses file locking (flock) to keep the chain consistent across processes.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64  # 32 bytes hex


def _canonical_json_bytes(obj: Dict[str, Any]) -> bytes:
    """
    Deterministic JSON bytes for hashing and logging:
    sorted keys, no whitespace, UTF-8.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _sha3_256_hex(data: bytes) -> str:
    return hashlib.sha3_256(data).hexdigest()


def build_common(
    *,
    nut: Optional[str] = None,
    response_nut: Optional[str] = None,
    request_ip: Optional[str] = None,
    identity_key: Optional[str] = None,
    command: Optional[str] = None,
    message_bytes: Optional[bytes] = None,
    signature: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build common audit fields. Keep this "boring" and stable.

    Large blobs are stored as hash + length, never raw.
    """
    out: Dict[str, Any] = {"ts": int(time.time())}

    if nut:
        out["nut"] = nut
    if response_nut:
        out["response_nut"] = response_nut
    if request_ip:
        out["request_ip"] = request_ip
    if identity_key:
        out["idk"] = identity_key
    if command:
        out["cmd"] = command[:32]

    if message_bytes is not None:
        out["message_len"] = len(message_bytes)
        out["message_sha3_256"] = _sha3_256_hex(message_bytes)

    if signature is not None:
        sig = signature.encode("utf-8")
        out["signature_len"] = len(sig)
        out["signature_sha3_256"] = _sha3_256_hex(sig)

    return out


class AuditLog:
    def __init__(self, directory: Path | str, name: str = "sqrl_audit"):
        self.directory = Path(directory)
        self.log_path = self.directory / f"{name}.jsonl"
        self.state_path = self.directory / f"{name}.state"
        self.lock_path = self.directory / f"{name}.lock"

    def _read_last_hash_unlocked(self) -> str:
        """
        Read last hash from the state file. Caller must hold lock.
        Returns GENESIS_HASH if state missing/empty.
        """
        if not self.state_path.exists():
            return GENESIS_HASH
        s = self.state_path.read_text(encoding="utf-8").strip()
        if len(s) != 64:
            return GENESIS_HASH
        try:
            bytes.fromhex(s)
        except ValueError:
            log.warning("audit state file %s is corrupt; restarting chain", self.state_path)
            return GENESIS_HASH
        return s.lower()

    def append_event(self, event: Dict[str, Any]) -> str:
        """
        Append one event with hash chaining. Returns the new chain head.
        """
        self.directory.mkdir(parents=True, exist_ok=True)

        # Lock a dedicated file so it works even if log/state don't exist yet.
        with open(self.lock_path, "a+", encoding="utf-8") as lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                prev_hash = self._read_last_hash_unlocked()

                # Never allow callers to inject their own chain fields.
                e = dict(event)
                e.pop("prev_hash", None)
                e.pop("hash", None)

                next_hash = _sha3_256_hex(bytes.fromhex(prev_hash) + _canonical_json_bytes(e))

                stored = dict(e)
                stored["prev_hash"] = prev_hash
                stored["hash"] = next_hash

                with open(self.log_path, "ab") as f:
                    f.write(_canonical_json_bytes(stored) + b"\n")
                    f.flush()
                    os.fsync(f.fileno())

                self.state_path.write_text(next_hash + "\n", encoding="utf-8")
                return next_hash
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

    def verify_chain(self) -> bool:
        """
        Verify the hash chain of the log file.
        Returns True if valid (or absent), False otherwise.
        """
        if not self.log_path.exists():
            return True

        prev = GENESIS_HASH
        with open(self.log_path, "rb") as f:
            for raw_line in f:
                raw_line = raw_line.strip()
                if not raw_line:
                    continue
                try:
                    obj = json.loads(raw_line.decode("utf-8"))
                except ValueError:
                    return False

                if obj.get("prev_hash") != prev:
                    return False

                line_hash = obj.pop("hash", None)
                obj.pop("prev_hash", None)
                expect = _sha3_256_hex(bytes.fromhex(prev) + _canonical_json_bytes(obj))
                if expect != line_hash:
                    return False

                prev = line_hash

        return True

    def read_events(self):
        if not self.log_path.exists():
            return []
        with open(self.log_path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
