"""
JWT creation/verification via PyJWT.

Access and refresh tokens are signed with two different secrets so a leaked
access secret cannot mint refresh tokens. Verification returns None for any
unusable token; the reason only reaches the logs.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional

import jwt

from utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class Identity:
    """Caller identity decoded from a verified access token."""

    user_id: str
    email: Optional[str]
    roles: FrozenSet[str]
    jti: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Identity":
        roles = claims.get("roles") or []
        return cls(
            user_id=str(claims["sub"]),
            email=claims.get("email"),
            roles=frozenset(r for r in roles if isinstance(r, str)),
            jti=claims.get("jti"),
        )


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID)."""
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expires: timedelta = timedelta(hours=1),
        refresh_expires: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        issuer: str = "fintrack-api",
    ):
        missing = [
            name
            for name, value in (("ACCESS_TOKEN_SECRET", access_secret), ("REFRESH_TOKEN_SECRET", refresh_secret))
            if not value
        ]
        if missing:
            logger.error("JWT secrets not configured: %s", ", ".join(missing))
            raise ConfigurationError(f"JWT configuration error: {', '.join(missing)} not set")
        if access_secret == refresh_secret:
            logger.warning("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET are identical")
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._expires = {ACCESS: access_expires, REFRESH: refresh_expires}
        self.algorithm = algorithm
        self.issuer = issuer

    @classmethod
    def from_config(cls, config) -> "TokenService":
        return cls(
            access_secret=config.get("ACCESS_TOKEN_SECRET"),
            refresh_secret=config.get("REFRESH_TOKEN_SECRET"),
            access_expires=config.get("ACCESS_TOKEN_EXPIRES", timedelta(hours=1)),
            refresh_expires=config.get("REFRESH_TOKEN_EXPIRES", timedelta(days=7)),
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            issuer=config.get("JWT_ISSUER", "fintrack-api"),
        )

    @property
    def access_ttl(self) -> int:
        return int(self._expires[ACCESS].total_seconds())

    @property
    def refresh_ttl(self) -> int:
        return int(self._expires[REFRESH].total_seconds())

    def _encode(self, token_type: str, subject: str, extra: Dict[str, Any]) -> str:
        issued = _now()
        payload = {
            "iss": self.issuer,
            "sub": str(subject),
            "iat": int(issued.timestamp()),
            "exp": int((issued + self._expires[token_type]).timestamp()),
            "type": token_type,
            "jti": generate_jti(),
            **extra,
        }
        return jwt.encode(payload, self._secrets[token_type], algorithm=self.algorithm)

    def issue_access(self, user_id: str, email: str, roles: Iterable[str]) -> str:
        token = self._encode(ACCESS, user_id, {"email": email, "roles": sorted(roles)})
        logger.debug("Access token generated for user %s", user_id)
        return token

    def issue_refresh(self, user_id: str) -> str:
        token = self._encode(REFRESH, user_id, {})
        logger.debug("Refresh token generated for user %s", user_id)
        return token

    def _decode(self, token: str, token_type: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        try:
            decoded = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("%s token expired", token_type.capitalize())
            return None
        except jwt.InvalidTokenError as exc:
            logger.warning("%s token verification failed: %s", token_type.capitalize(), exc.__class__.__name__)
            return None
        if decoded.get("type") != token_type:
            logger.warning("Wrong token type: expected %s, got %s", token_type, decoded.get("type"))
            return None
        return decoded

    def verify_access(self, token: str) -> Optional[Dict[str, Any]]:
        return self._decode(token, ACCESS)

    def verify_refresh(self, token: str) -> Optional[Dict[str, Any]]:
        return self._decode(token, REFRESH)
