from __future__ import annotations

import logging
from functools import wraps
from typing import Iterable

from flask import g, request

from api.extensions import services
from utils.exceptions import AuthenticationError, AuthorizationError, RateLimitError
from utils.rate_limit import client_ip
from utils.tokens import Identity

logger = logging.getLogger(__name__)

UNAUTHORIZED = "Authentication required"
FORBIDDEN = "Insufficient permissions"
FAILED_AUTH_PROFILE = "unauthenticated"


def _bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def current_identity() -> Identity:
    return g.current_identity


def _reject_unauthenticated(limiter, reason: str):
    logger.info("%s on %s", reason, request.path)
    limiter.check_request(FAILED_AUTH_PROFILE)
    raise AuthenticationError(UNAUTHORIZED)


def jwt_required():
    """
    Verify the Bearer access token and attach its claims as g.current_identity.

    Rejected tokens count against the per-address FAILED_AUTH_PROFILE; once it
    is exhausted the address gets 429 before any token is looked at.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            limiter = services().limiter
            gate = limiter.peek_request(FAILED_AUTH_PROFILE)
            if not gate.allowed:
                logger.warning("Too many rejected tokens from %s", client_ip())
                raise RateLimitError(gate.retry_after)
            token = _bearer_token()
            if token is None:
                _reject_unauthenticated(limiter, "Missing or malformed Authorization header")
            claims = services().tokens.verify_access(token)
            if claims is None:
                _reject_unauthenticated(limiter, "Invalid or expired access token")
            g.current_identity = Identity.from_claims(claims)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: Iterable[str]):
    """
    Allow access if the caller has ANY of the required roles.
    Deny (403) only if there is NO overlap between token roles and required_roles.
    Must be applied below jwt_required().
    """
    req = frozenset(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = getattr(g, "current_identity", None)
            if identity is None:
                raise AuthenticationError(UNAUTHORIZED)
            if not (identity.roles & req):
                logger.warning(
                    "User %s denied on %s: needs one of %s",
                    identity.user_id, request.path, ", ".join(sorted(req)),
                )
                raise AuthorizationError(FORBIDDEN)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def permissions_required(required_permissions: Iterable[str]):
    """All of required_permissions must be granted through the caller's roles."""
    req = frozenset(required_permissions or [])

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = getattr(g, "current_identity", None)
            if identity is None:
                raise AuthenticationError(UNAUTHORIZED)
            granted = services().users.permissions_for(identity.user_id)
            missing = req - granted
            if missing:
                logger.warning(
                    "User %s denied on %s: missing permissions %s",
                    identity.user_id, request.path, ", ".join(sorted(missing)),
                )
                raise AuthorizationError(FORBIDDEN)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def rate_limit(*profiles: str):
    """Count the request against each named profile; the first one exceeded rejects it."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            limiter = services().limiter
            for name in profiles:
                result = limiter.check_request(name)
                if not result.allowed:
                    logger.warning("Rate limit '%s' exceeded on %s", name, request.path)
                    raise RateLimitError(result.retry_after)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
