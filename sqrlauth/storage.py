# sqrlauth/storage.py
#
# Collaborator interfaces consumed by SqrlServer, plus in-memory reference
# implementations. Each in-memory operation holds the store lock, so a
# single lookup, rotation or update is atomic. Sequences of calls made by
# the server are not.
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol

log = logging.getLogger(__name__)


@dataclass
class SqrlUser:
    identity_key: str
    server_unlock_key: Optional[str] = None
    verify_unlock_key: Optional[str] = None
    enabled: bool = True

    def sqrl_enabled(self) -> bool:
        return self.enabled


class SqrlUserService(Protocol):
    def get_user_by_sqrl_key(self, identity_key: str) -> Optional[SqrlUser]: ...

    def update_identity_key(self, previous_identity_key: str, identity_key: str) -> bool: ...

    def register_sqrl_user(
        self,
        identity_key: str,
        server_unlock_key: Optional[str],
        verify_unlock_key: Optional[str],
    ) -> SqrlUser: ...

    def disable_sqrl_user(self, identity_key: str) -> bool: ...

    def enable_sqrl_user(self, identity_key: str) -> bool: ...

    def remove_sqrl_user(self, identity_key: str) -> bool: ...


class SqrlAuthenticationService(Protocol):
    def create_authentication_request(self, nut: str, ip_address: str) -> None: ...

    def consume_nut(self, nut: str) -> bool: ...

    def link_nut(self, old_nut: str, new_nut: str) -> None: ...

    def authenticate_nut(self, nut: str, identity_key: str) -> None: ...

    def get_authenticated_identity(self, nut: str) -> Optional[str]: ...


class InMemoryUserService:
    def __init__(self):
        self.users: Dict[str, SqrlUser] = {}
        self._lock = threading.RLock()

    def get_user_by_sqrl_key(self, identity_key: str) -> Optional[SqrlUser]:
        with self._lock:
            return self.users.get(identity_key)

    def update_identity_key(self, previous_identity_key: str, identity_key: str) -> bool:
        with self._lock:
            user = self.users.get(previous_identity_key)
            if user is None or identity_key in self.users:
                return False
            del self.users[previous_identity_key]
            user.identity_key = identity_key
            self.users[identity_key] = user
            return True

    def register_sqrl_user(
        self,
        identity_key: str,
        server_unlock_key: Optional[str],
        verify_unlock_key: Optional[str],
    ) -> SqrlUser:
        with self._lock:
            existing = self.users.get(identity_key)
            if existing is not None:
                return existing
            user = SqrlUser(
                identity_key=identity_key,
                server_unlock_key=server_unlock_key,
                verify_unlock_key=verify_unlock_key,
            )
            self.users[identity_key] = user
            return user

    def _set_enabled(self, identity_key: str, enabled: bool) -> bool:
        with self._lock:
            user = self.users.get(identity_key)
            if user is None:
                return False
            user.enabled = enabled
            return True

    def disable_sqrl_user(self, identity_key: str) -> bool:
        return self._set_enabled(identity_key, False)

    def enable_sqrl_user(self, identity_key: str) -> bool:
        return self._set_enabled(identity_key, True)

    def remove_sqrl_user(self, identity_key: str) -> bool:
        with self._lock:
            return self.users.pop(identity_key, None) is not None


@dataclass
class AuthenticationRequest:
    nut: str
    ip_address: Optional[str]
    issued_at: float
    identity_key: Optional[str] = None
    authenticated_at: Optional[float] = None
    linked: set = field(default_factory=set)

    @property
    def authenticated(self) -> bool:
        return self.identity_key is not None


class InMemoryAuthenticationService:
    """
    Tracks each authentication transaction under its original nut.

    Every response nut is linked back to the nut that opened the
    transaction, so authenticating any later nut is visible to whoever
    polls the original one (typically the browser that showed the QR code).

    Each nut is accepted by the server once. Used nuts are remembered for
    ``ttl_seconds``, which must not be shorter than the nut expiry window.
    """

    def __init__(self, ttl_seconds: int = 900, clock: Callable[[], float] = time.time):
        self.requests: Dict[str, AuthenticationRequest] = {}
        self.links: Dict[str, str] = {}
        self.used_nuts: Dict[str, float] = {}
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()

    def _root(self, nut: str) -> str:
        return self.links.get(nut, nut)

    def _get_or_open(self, nut: str) -> AuthenticationRequest:
        root = self._root(nut)
        req = self.requests.get(root)
        if req is None:
            # a nut issued by another node or before a restart
            req = AuthenticationRequest(nut=root, ip_address=None, issued_at=self._clock())
            self.requests[root] = req
        return req

    def create_authentication_request(self, nut: str, ip_address: str) -> None:
        with self._lock:
            self.prune()
            self.requests[nut] = AuthenticationRequest(
                nut=nut, ip_address=ip_address, issued_at=self._clock()
            )

    def consume_nut(self, nut: str) -> bool:
        """Mark ``nut`` used. False if it was already used."""
        with self._lock:
            if nut in self.used_nuts:
                return False
            self.used_nuts[nut] = self._clock()
            return True

    def link_nut(self, old_nut: str, new_nut: str) -> None:
        with self._lock:
            self.prune()
            req = self._get_or_open(old_nut)
            self.links[new_nut] = req.nut
            req.linked.add(new_nut)

    def authenticate_nut(self, nut: str, identity_key: str) -> None:
        with self._lock:
            req = self._get_or_open(nut)
            req.identity_key = identity_key
            req.authenticated_at = self._clock()
            log.info("nut authenticated (transaction %s)", req.nut[:12])

    def get_authenticated_identity(self, nut: str) -> Optional[str]:
        with self._lock:
            req = self.requests.get(self._root(nut))
            return req.identity_key if req else None

    def prune(self, now: Optional[float] = None) -> int:
        """Best-effort pruning to prevent unbounded growth."""
        with self._lock:
            now = now if now is not None else self._clock()
            dead = [k for k, v in self.requests.items() if now - v.issued_at > self.ttl_seconds]
            for k in dead:
                req = self.requests.pop(k)
                for n in req.linked:
                    self.links.pop(n, None)
            for n in [k for k, t in self.used_nuts.items() if now - t > self.ttl_seconds]:
                del self.used_nuts[n]
            return len(dead)
