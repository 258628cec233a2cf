# genova/services/checkin_codes.py
"""
Short-lived check-in credentials.

A tutor issues a PIN or QR token per session; students present it to
check in. One credential is held per (session_id, method), a new one
overwrites the previous, and a credential stays valid for its whole
window (it is not consumed on use). Validity is a wall-clock comparison
at lookup time; ``purge_expired`` is best-effort cleanup.

Two interchangeable stores:

- ``InMemoryCheckInCodeStore``: process-local dict behind a lock. Fine
  for a single API instance and for tests (inject a fake clock).
- ``RedisCheckInCodeStore``: shared across instances, keys expire
  natively.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
import hashlib
import json
import logging
import secrets
import threading
from typing import Dict, Optional, Protocol, Tuple

from redis import Redis

from ..core.config import settings
from ..core.timezone_utils import Clock, ensure_utc, utc_now

logger = logging.getLogger(__name__)


class CheckInMethod(str, Enum):
    PIN = "pin"
    QR = "qr"


@dataclass(frozen=True)
class CheckInCode:
    session_id: str
    method: CheckInMethod
    code: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return ensure_utc(now) > self.expires_at

    def matches(self, candidate: str) -> bool:
        return secrets.compare_digest(self.code.encode("utf-8"), candidate.encode("utf-8"))


def generate_pin() -> str:
    """Uniformly random 6-digit decimal PIN (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


def generate_qr_token(session_id: str, at: datetime) -> str:
    """16 hex chars of sha256 over the session id and issue timestamp."""
    timestamp_ms = int(ensure_utc(at).timestamp() * 1000)
    return hashlib.sha256(f"{session_id}:{timestamp_ms}".encode("utf-8")).hexdigest()[:16]


class CheckInCodeStore(Protocol):
    ttl_seconds: int

    def put(self, session_id: str, method: CheckInMethod, code: str) -> CheckInCode:
        ...

    def get(self, session_id: str, method: CheckInMethod) -> Optional[CheckInCode]:
        """Return the live credential, evicting it if it has expired."""
        ...

    def purge_expired(self) -> int:
        ...


class InMemoryCheckInCodeStore:
    """Process-local credential store guarded by a mutex."""

    def __init__(self, ttl_seconds: int = 300, clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self.clock: Clock = clock or utc_now
        self._lock = threading.Lock()
        self._codes: Dict[Tuple[str, str], CheckInCode] = {}

    def put(self, session_id: str, method: CheckInMethod, code: str) -> CheckInCode:
        now = ensure_utc(self.clock())
        entry = CheckInCode(
            session_id=session_id,
            method=CheckInMethod(method),
            code=code,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        with self._lock:
            self._codes[(session_id, entry.method.value)] = entry
        return entry

    def get(self, session_id: str, method: CheckInMethod) -> Optional[CheckInCode]:
        key = (session_id, CheckInMethod(method).value)
        now = self.clock()
        with self._lock:
            entry = self._codes.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._codes[key]
                return None
            return entry

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._codes.items() if entry.is_expired(now)]
            for key in expired:
                del self._codes[key]
        if expired:
            logger.debug("Purged %s expired check-in codes", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._codes)


class RedisCheckInCodeStore:
    """Credential store shared by every API instance."""

    def __init__(
        self,
        client: Redis,
        ttl_seconds: int = 300,
        clock: Optional[Clock] = None,
        prefix: str = "genova:checkin",
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.clock: Clock = clock or utc_now
        self.prefix = prefix

    def _key(self, session_id: str, method: CheckInMethod) -> str:
        return f"{self.prefix}:{session_id}:{CheckInMethod(method).value}"

    def put(self, session_id: str, method: CheckInMethod, code: str) -> CheckInCode:
        now = ensure_utc(self.clock())
        entry = CheckInCode(
            session_id=session_id,
            method=CheckInMethod(method),
            code=code,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        self.client.set(
            self._key(session_id, method),
            json.dumps(
                {
                    "code": entry.code,
                    "created_at": entry.created_at.isoformat(),
                    "expires_at": entry.expires_at.isoformat(),
                }
            ),
            ex=self.ttl_seconds,
        )
        return entry

    def get(self, session_id: str, method: CheckInMethod) -> Optional[CheckInCode]:
        key = self._key(session_id, method)
        raw = self.client.get(key)
        if raw is None:
            return None
        data = json.loads(raw)
        entry = CheckInCode(
            session_id=session_id,
            method=CheckInMethod(method),
            code=data["code"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )
        if entry.is_expired(self.clock()):
            self.client.delete(key)
            return None
        return entry

    def purge_expired(self) -> int:
        # Redis evicts keys on its own TTL
        return 0


def build_checkin_code_store(backend: Optional[str] = None) -> CheckInCodeStore:
    """Create the store selected by ``CHECKIN_CODE_BACKEND``."""
    selected = backend or settings.checkin_code_backend
    if selected == "redis":
        from ..core.redis import get_redis_client

        logger.info("Using Redis check-in code store")
        return RedisCheckInCodeStore(
            get_redis_client(), ttl_seconds=settings.checkin_code_ttl_seconds
        )
    return InMemoryCheckInCodeStore(ttl_seconds=settings.checkin_code_ttl_seconds)


@lru_cache(maxsize=1)
def get_checkin_code_store() -> CheckInCodeStore:
    """Process-wide store used by the API and the sweep task."""
    return build_checkin_code_store()
