"""
security helpers:
- Argon2id password hashing via argon2-cffi
- one-time tokens for password reset / email verification (only a SHA-256
  digest is ever stored)
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

from argon2 import PasswordHasher, Type
from argon2 import exceptions as argon2_exceptions

from utils.exceptions import HashingError, VerificationError

logger = logging.getLogger(__name__)

# 64 MiB, 3 passes, 2 lanes: a few tens of milliseconds per hash
DEFAULT_TIME_COST = 3
DEFAULT_MEMORY_COST = 2 ** 16
DEFAULT_PARALLELISM = 2

ONE_TIME_TOKEN_BYTES = 32


class PasswordService:
    """Hash, verify and upgrade password hashes with fixed Argon2id parameters."""

    def __init__(
        self,
        time_cost: int = DEFAULT_TIME_COST,
        memory_cost: int = DEFAULT_MEMORY_COST,
        parallelism: int = DEFAULT_PARALLELISM,
    ):
        self._ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )

    @classmethod
    def from_config(cls, config) -> "PasswordService":
        return cls(
            time_cost=config.get("ARGON2_TIME_COST", DEFAULT_TIME_COST),
            memory_cost=config.get("ARGON2_MEMORY_COST", DEFAULT_MEMORY_COST),
            parallelism=config.get("ARGON2_PARALLELISM", DEFAULT_PARALLELISM),
        )

    def hash(self, password: str) -> str:
        try:
            return self._ph.hash(password)
        except argon2_exceptions.HashingError as exc:
            logger.error("Password hashing failed: %s", exc)
            raise HashingError("Password hashing failed") from exc

    def verify(self, password_hash: str, password: str) -> bool:
        """
        True when password matches password_hash, False on a mismatch.
        Raises VerificationError when the stored hash is unusable.
        """
        try:
            return self._ph.verify(password_hash, password)
        except argon2_exceptions.VerifyMismatchError:
            return False
        except (argon2_exceptions.InvalidHashError, argon2_exceptions.VerificationError) as exc:
            logger.error("Password verification failed: %s", exc.__class__.__name__)
            raise VerificationError("Password verification failed") from exc

    def needs_rehash(self, password_hash: str, password: str) -> str | None:
        """
        Return a fresh hash when password is valid for password_hash but the
        hash was made with outdated parameters. Never raises.
        """
        try:
            if not self.verify(password_hash, password):
                return None
            if self._ph.check_needs_rehash(password_hash):
                logger.info("Password hash parameters outdated, rehashing")
                return self.hash(password)
            return None
        except Exception:
            logger.exception("Error checking whether password needs rehashing")
            return None


def generate_one_time_token() -> str:
    return secrets.token_urlsafe(ONE_TIME_TOKEN_BYTES)


def hash_one_time_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def one_time_token_matches(token: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_one_time_token(token), token_hash)
