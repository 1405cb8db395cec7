"""
Refresh-token session cache.

The cache, not the token's own expiry, decides whether a refresh token is
still trusted: one entry per user, overwritten on every login/refresh.

Redis is the shared backend. When it is not configured, or a call to it
fails, entries go to an in-process store and the cache reports itself as
degraded until Redis answers again and the changes made meanwhile have
been replayed to it.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, Optional, Set, Tuple

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "auth:refresh_token:"


def refresh_key(user_id: str) -> str:
    return f"{KEY_PREFIX}{user_id}"


class MemorySessionStore:
    """Thread-safe key/value store with per-key expiry."""

    name = "memory"

    def __init__(self, clock=time.monotonic):
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def set(self, key: str, value: str, ex: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ex)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def ttl(self, key: str) -> Optional[int]:
        """Whole seconds left for key, None when absent or expired."""
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            remaining = item[1] - self._clock()
        if remaining <= 0:
            return None
        return max(1, int(remaining))

    def ping(self) -> bool:
        return True


class RedisSessionStore:
    name = "redis"

    def __init__(self, redis_url: str, *, socket_timeout: float = 2.0):
        self.redis_url = redis_url
        self.client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def set(self, key: str, value: str, ex: int) -> None:
        self.client.set(key, value, ex=max(1, int(ex)))

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def ping(self) -> bool:
        return bool(self.client.ping())


class SessionCache:
    def __init__(self, backend=None, *, fallback: MemorySessionStore | None = None):
        self._backend = backend
        self._fallback = fallback or MemorySessionStore()
        self._lock = threading.Lock()
        self._degraded_reason: Optional[str] = None
        self._degraded_since: Optional[datetime] = None
        # users whose latest write or delete only reached the fallback
        self._pending: Set[str] = set()
        self._pending_lock = threading.Lock()
        if backend is None:
            self._mark_degraded("no shared session store configured")

    @classmethod
    def from_config(cls, config) -> "SessionCache":
        redis_url = config.get("REDIS_URL")
        if not redis_url:
            logger.warning("Redis URL not set, refresh tokens tracked per process only")
            return cls()
        return cls(RedisSessionStore(redis_url, socket_timeout=config.get("REDIS_SOCKET_TIMEOUT", 2.0)))

    @property
    def backend_name(self) -> str:
        return self._backend.name if self._backend is not None else self._fallback.name

    @property
    def degraded(self) -> bool:
        return self._degraded_reason is not None

    def status(self) -> dict:
        return {
            "backend": self.backend_name,
            "degraded": self.degraded,
            "reason": self._degraded_reason,
            "since": self._degraded_since.isoformat() if self._degraded_since else None,
            "pendingSync": len(self._pending),
        }

    def _mark_degraded(self, reason: str) -> None:
        with self._lock:
            if self._degraded_reason is None:
                self._degraded_since = datetime.now(timezone.utc)
            self._degraded_reason = reason

    def _mark_recovered(self) -> None:
        if self._degraded_reason is None or self._backend is None or self._pending:
            return
        with self._lock:
            self._degraded_reason = None
            self._degraded_since = None
        logger.info("Session store reachable again, leaving degraded mode")

    def _backend_failed(self, action: str, user_id: str, exc: Exception) -> None:
        logger.error("Session store %s failed for user %s: %s", action, user_id, exc)
        self._mark_degraded(f"{self._backend.name} unavailable: {exc.__class__.__name__}")

    def _remember_pending(self, user_id: str) -> None:
        with self._pending_lock:
            self._pending.add(user_id)

    def _forget_pending(self, user_id: str) -> None:
        with self._pending_lock:
            self._pending.discard(user_id)

    def _push(self, user_id: str) -> None:
        """Copy the fallback's view of user_id to the backend."""
        key = refresh_key(user_id)
        while True:
            value = self._fallback.get(key)
            ttl = self._fallback.ttl(key) if value is not None else None
            if value is None or ttl is None:
                self._backend.delete(key)
                value = None
            else:
                self._backend.set(key, value, ex=ttl)
            # a write that raced with this one wins on the next pass
            if self._fallback.get(key) == value:
                return

    def _sync(self) -> None:
        """
        Replay writes made during an outage before the backend is trusted again.
        Raises RedisError when the backend is still unreachable.
        """
        with self._pending_lock:
            pending = sorted(self._pending)
        if not pending:
            return
        for user_id in pending:
            self._push(user_id)
            self._forget_pending(user_id)
        logger.info("Replayed %d session change(s) to the %s store", len(pending), self._backend.name)

    def store_refresh(self, user_id: str, token: str, ttl_seconds: int) -> None:
        """Overwrite the trusted refresh token for user_id."""
        key = refresh_key(user_id)
        # the fallback always holds the latest value; it is the source for replay
        self._fallback.set(key, token, ex=ttl_seconds)
        if self._backend is None:
            return
        try:
            self._sync()
            self._backend.set(key, token, ex=ttl_seconds)
        except RedisError as exc:
            self._remember_pending(user_id)
            self._backend_failed("write", user_id, exc)
            return
        self._forget_pending(user_id)
        self._mark_recovered()

    def get_refresh(self, user_id: str) -> Optional[str]:
        key = refresh_key(user_id)
        if self._backend is None:
            return self._fallback.get(key)
        try:
            self._sync()
            value = self._backend.get(key)
        except RedisError as exc:
            self._backend_failed("read", user_id, exc)
            return self._fallback.get(key)
        self._mark_recovered()
        return value

    def delete_refresh(self, user_id: str) -> None:
        key = refresh_key(user_id)
        self._fallback.delete(key)
        if self._backend is None:
            return
        try:
            self._sync()
            self._backend.delete(key)
        except RedisError as exc:
            self._remember_pending(user_id)
            self._backend_failed("delete", user_id, exc)
            return
        self._forget_pending(user_id)
        self._mark_recovered()

    def ping(self) -> bool:
        if self._backend is None:
            return False
        try:
            ok = self._backend.ping()
            if ok:
                self._sync()
        except RedisError as exc:
            self._mark_degraded(f"{self._backend.name} unavailable: {exc.__class__.__name__}")
            return False
        if ok:
            self._mark_recovered()
        return ok
