"""
Fixed-window request limiting on top of the `limits` library.

Each named profile has its own maximum, window and key function. Counters
live in the storage given by RATE_LIMIT_STORAGE_URI (redis:// so limits hold
across processes, memory:// otherwise). If the shared storage fails, counting
continues in a per-process memory storage and the limiter reports degraded.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from flask import g, request
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage, storage_from_string
from limits.strategies import FixedWindowRateLimiter
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 10 * 60

# name -> (max requests, window seconds)
DEFAULT_PROFILES: Dict[str, Tuple[int, int]] = {
    "public": (20, DEFAULT_WINDOW_SECONDS),
    "auth": (10, DEFAULT_WINDOW_SECONDS),
    "sensitive": (5, DEFAULT_WINDOW_SECONDS),
    "user": (200, DEFAULT_WINDOW_SECONDS),
    # rejected access tokens, counted per address
    "unauthenticated": (20, DEFAULT_WINDOW_SECONDS),
}

STORAGE_ERRORS = (RedisError, ConnectionError, TimeoutError)


def client_ip() -> str:
    return request.remote_addr or "unknown"


def _current_user_id() -> Optional[str]:
    identity = getattr(g, "current_identity", None)
    return identity.user_id if identity is not None else None


def _account_hint() -> Optional[str]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return None
    for field in ("userId", "email"):
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return None


def ip_key() -> str:
    return client_ip()


def user_key() -> str:
    return _current_user_id() or client_ip()


def composite_key() -> str:
    # the IP is always part of the key, even for authenticated callers
    account = _current_user_id() or _account_hint() or "anon"
    return f"{account}_{client_ip()}"


KEY_FUNCS: Dict[str, Callable[[], str]] = {
    "public": ip_key,
    "auth": ip_key,
    "sensitive": composite_key,
    "user": user_key,
    "unauthenticated": ip_key,
}


@dataclass(frozen=True)
class RateLimitProfile:
    name: str
    limit: int
    window_seconds: int
    key_func: Callable[[], str]

    @property
    def item(self) -> RateLimitItemPerSecond:
        return RateLimitItemPerSecond(self.limit, self.window_seconds)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


def _result(profile: RateLimitProfile, allowed: bool, reset_time: float, remaining: int) -> RateLimitResult:
    retry_after = 0
    if not allowed:
        retry_after = max(1, math.ceil(reset_time - time.time()))
    return RateLimitResult(allowed, profile.limit, max(0, remaining), retry_after)


class RateLimiter:
    def __init__(self, storage=None, profiles: Dict[str, Tuple[int, int]] | None = None):
        self._storage = storage if storage is not None else MemoryStorage()
        self._fallback_storage = MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        self._fallback = FixedWindowRateLimiter(self._fallback_storage)
        self._lock = threading.Lock()
        self._degraded_reason: Optional[str] = None
        self._degraded_since: Optional[datetime] = None
        self.profiles: Dict[str, RateLimitProfile] = {}
        for name, (limit, window) in {**DEFAULT_PROFILES, **(profiles or {})}.items():
            self.profiles[name] = RateLimitProfile(name, int(limit), int(window), KEY_FUNCS.get(name, ip_key))

    @classmethod
    def from_config(cls, config, storage=None) -> "RateLimiter":
        if storage is None:
            uri = config.get("RATE_LIMIT_STORAGE_URI") or "memory://"
            options = {}
            if uri.startswith(("redis://", "rediss://")):
                options = {
                    "socket_timeout": config.get("REDIS_SOCKET_TIMEOUT", 2.0),
                    "socket_connect_timeout": config.get("REDIS_SOCKET_TIMEOUT", 2.0),
                }
            storage = storage_from_string(uri, **options)
        return cls(storage, profiles=config.get("RATE_LIMITS"))

    @property
    def degraded(self) -> bool:
        return self._degraded_reason is not None

    def status(self) -> dict:
        return {
            "storage": type(self._storage).__name__,
            "degraded": self.degraded,
            "reason": self._degraded_reason,
            "since": self._degraded_since.isoformat() if self._degraded_since else None,
        }

    def _storage_failed(self, exc: Exception) -> None:
        with self._lock:
            first = self._degraded_reason is None
            if first:
                self._degraded_since = datetime.now(timezone.utc)
            self._degraded_reason = f"rate limit storage unavailable: {exc.__class__.__name__}"
        if first:
            logger.error("Rate limit storage failed, counting per process: %s", exc)

    def _storage_ok(self) -> None:
        if self._degraded_reason is None:
            return
        with self._lock:
            self._degraded_reason = None
            self._degraded_since = None
        logger.info("Rate limit storage reachable again")

    def hit(self, profile_name: str, key: str) -> RateLimitResult:
        """Count one request for key under profile_name."""
        profile = self.profiles[profile_name]
        item = profile.item
        try:
            allowed = self._strategy.hit(item, profile.name, key)
            reset_time, remaining = self._strategy.get_window_stats(item, profile.name, key)
            self._storage_ok()
        except STORAGE_ERRORS as exc:
            self._storage_failed(exc)
            allowed = self._fallback.hit(item, profile.name, key)
            reset_time, remaining = self._fallback.get_window_stats(item, profile.name, key)
        return _result(profile, allowed, reset_time, remaining)

    def peek(self, profile_name: str, key: str) -> RateLimitResult:
        """Whether one more request for key would pass, without counting it."""
        profile = self.profiles[profile_name]
        item = profile.item
        try:
            allowed = self._strategy.test(item, profile.name, key)
            reset_time, remaining = self._strategy.get_window_stats(item, profile.name, key)
        except STORAGE_ERRORS as exc:
            self._storage_failed(exc)
            allowed = self._fallback.test(item, profile.name, key)
            reset_time, remaining = self._fallback.get_window_stats(item, profile.name, key)
        return _result(profile, allowed, reset_time, remaining)

    def check_request(self, profile_name: str) -> RateLimitResult:
        profile = self.profiles[profile_name]
        return self.hit(profile_name, profile.key_func())

    def peek_request(self, profile_name: str) -> RateLimitResult:
        profile = self.profiles[profile_name]
        return self.peek(profile_name, profile.key_func())

    def ping(self) -> bool:
        try:
            return bool(self._storage.check())
        except STORAGE_ERRORS as exc:
            self._storage_failed(exc)
            return False
