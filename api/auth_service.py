"""
Authentication flow: registration, login, logout, refresh rotation,
password reset, email verification and profile maintenance.

The service only talks to its collaborators (repository, password service,
token service, session cache, mailer); it knows nothing about Flask so it
can be driven directly in tests.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from models.base_model import utcnow
from models.one_time_token import EmailVerification, PasswordReset
from models.repository import UserRepository
from models.user import User
from utils.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from utils.dispatch import InlineDispatcher
from utils.mailer import Mailer
from utils.security import PasswordService, generate_one_time_token, hash_one_time_token, one_time_token_matches
from utils.session_cache import SessionCache
from utils.tokens import TokenService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH = "Invalid or expired refresh token"
INVALID_RESET = "Invalid or expired reset token"
INVALID_VERIFICATION = "Invalid or expired verification token"


class LoginStage(str, Enum):
    RECEIVED = "received"
    RATE_LIMIT_CHECKED = "rate-limit-checked"
    CREDENTIALS_LOOKED_UP = "credentials-looked-up"
    PASSWORD_VERIFIED = "password-verified"
    TWO_FACTOR_REQUIRED = "two-factor-required"
    TOKENS_ISSUED = "tokens-issued"
    SESSION_STORED = "session-stored"
    RESPONDED = "responded"


@dataclass
class TokenPair:
    user: User
    access_token: str
    refresh_token: str


@dataclass
class LoginResult:
    user: User
    tokens: Optional[TokenPair] = None

    @property
    def requires_two_factor(self) -> bool:
        return self.tokens is None


class AuthService:
    def __init__(
        self,
        users: UserRepository,
        passwords: PasswordService,
        tokens: TokenService,
        sessions: SessionCache,
        mailer: Mailer,
        one_time_token_ttl: timedelta = timedelta(hours=1),
        dispatcher=None,
    ):
        self.users = users
        self.passwords = passwords
        self.tokens = tokens
        self.sessions = sessions
        self.mailer = mailer
        self.one_time_token_ttl = one_time_token_ttl
        self.dispatcher = dispatcher or InlineDispatcher()
        self._dummy_hash: Optional[str] = None

    # helpers

    def _issue_pair(self, user: User) -> TokenPair:
        roles = self.users.role_names_for(user)
        return TokenPair(
            user=user,
            access_token=self.tokens.issue_access(user.id, user.email, roles),
            refresh_token=self.tokens.issue_refresh(user.id),
        )

    def _start_session(self, pair: TokenPair) -> None:
        self.sessions.store_refresh(pair.user.id, pair.refresh_token, self.tokens.refresh_ttl)

    def _burn_verify(self, password: str) -> None:
        # keep unknown-user logins about as slow as wrong-password logins
        if self._dummy_hash is None:
            self._dummy_hash = self.passwords.hash("not-a-real-password")
        self.passwords.verify(self._dummy_hash, password)

    def _issue_one_time_token(self, model, user: User) -> str:
        token = generate_one_time_token()
        self.users.upsert_one_time_token(model, user.id, hash_one_time_token(token), utcnow() + self.one_time_token_ttl)
        return token

    def _check_one_time_token(self, record, token: str, message: str):
        if record is None:
            raise ValidationError(message)
        if record.is_expired():
            self.users.delete_one_time_token(record)
            raise ValidationError(message)
        if not one_time_token_matches(token, record.token_hash):
            raise ValidationError(message)
        return record

    def _send_email_verification(self, user: User) -> None:
        token = self._issue_one_time_token(EmailVerification, user)
        self.dispatcher.submit(self.mailer.send_email_verification, user.email, user.id, token)

    # registration / login

    def register(self, data: dict, ip_address: str | None = None) -> User:
        if self.users.email_taken(data["email"]):
            raise ConflictError("Email already registered")
        if self.users.username_taken(data["username"]):
            raise ConflictError("Username already taken")

        password_hash = self.passwords.hash(data["password"])
        user = self.users.create_user(
            username=data["username"],
            email=data["email"],
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            password_hash=password_hash,
        )
        logger.info("User registered: %s", user.id)

        try:
            self._send_email_verification(user)
        except SQLAlchemyError:
            logger.exception("Could not create email verification for user %s", user.id)
        self.users.record_audit(user.id, "REGISTER", ip_address=ip_address)
        return user

    def login(self, identifier: str, password: str, ip_address: str | None = None) -> LoginResult:
        user = self.users.find_active_by_login(identifier)
        stage = LoginStage.CREDENTIALS_LOOKED_UP
        if user is None:
            self._burn_verify(password)
            logger.warning("Login failed at %s: unknown account", stage.value)
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not self.passwords.verify(user.password_hash, password):
            logger.warning("Login failed at %s: bad password for user %s", stage.value, user.id)
            raise AuthenticationError(INVALID_CREDENTIALS)
        stage = LoginStage.PASSWORD_VERIFIED
        logger.debug("Login %s for user %s", stage.value, user.id)

        self._upgrade_hash(user, password)

        if user.two_factor_enabled:
            logger.info("Login %s for user %s", LoginStage.TWO_FACTOR_REQUIRED.value, user.id)
            return LoginResult(user=user)

        pair = self._issue_pair(user)
        logger.debug("Login %s for user %s", LoginStage.TOKENS_ISSUED.value, user.id)
        self._start_session(pair)
        logger.debug("Login %s for user %s", LoginStage.SESSION_STORED.value, user.id)

        self.users.record_audit(user.id, "LOGIN", ip_address=ip_address)
        logger.info("User logged in: %s", user.id)
        return LoginResult(user=user, tokens=pair)

    def _upgrade_hash(self, user: User, password: str) -> None:
        new_hash = self.passwords.needs_rehash(user.password_hash, password)
        if not new_hash:
            return
        user.password_hash = new_hash
        try:
            self.users.save(user)
        except SQLAlchemyError:
            logger.exception("Failed to store rehashed password for user %s", user.id)

    def logout(self, user_id: str, ip_address: str | None = None) -> None:
        self.sessions.delete_refresh(user_id)
        self.users.record_audit(user_id, "LOGOUT", ip_address=ip_address)
        logger.info("User logged out: %s", user_id)

    def refresh(self, refresh_token: str | None) -> TokenPair:
        claims = self.tokens.verify_refresh(refresh_token) if refresh_token else None
        if claims is None:
            raise AuthenticationError(INVALID_REFRESH)

        user_id = str(claims["sub"])
        cached = self.sessions.get_refresh(user_id)
        if cached is None or not hmac.compare_digest(cached, refresh_token):
            logger.warning("Refresh token for user %s is not the current session token", user_id)
            raise AuthenticationError(INVALID_REFRESH)

        user = self.users.get_active(user_id)
        if user is None:
            self.sessions.delete_refresh(user_id)
            raise AuthenticationError(INVALID_REFRESH)

        pair = self._issue_pair(user)
        self._start_session(pair)
        logger.info("Refresh token rotated for user %s", user_id)
        return pair

    # password reset / email verification

    def request_password_reset(self, email: str) -> None:
        """
        Never reveals whether an account exists for email: every request only
        queues the same job, which does the lookup, token write and mail.
        """
        self.dispatcher.submit(self.send_password_reset, email)

    def send_password_reset(self, email: str) -> None:
        user = self.users.find_by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return
        token = self._issue_one_time_token(PasswordReset, user)
        self.mailer.send_password_reset(user.email, user.id, token)
        logger.info("Password reset token issued for user %s", user.id)

    def reset_password(self, user_id: str, token: str, new_password: str, ip_address: str | None = None) -> None:
        user = self.users.get_active(user_id)
        record = self.users.get_password_reset(user_id) if user else None
        self._check_one_time_token(record, token, INVALID_RESET)

        user.password_hash = self.passwords.hash(new_password)
        self.users.consume_one_time_token(record, user)
        self.sessions.delete_refresh(user.id)
        self.users.record_audit(user.id, "PASSWORD_RESET", ip_address=ip_address)
        logger.info("Password reset for user %s", user.id)

    def request_email_verification(self, user_id: str) -> None:
        user = self.get_profile(user_id)
        if user.email_verified:
            raise ConflictError("Email already verified")
        self._send_email_verification(user)

    def verify_email(self, user_id: str, token: str) -> User:
        user = self.users.get(user_id)
        record = self.users.get_email_verification(user_id) if user else None
        self._check_one_time_token(record, token, INVALID_VERIFICATION)

        user.email_verified = True
        self.users.consume_one_time_token(record, user)
        self.users.record_audit(user.id, "EMAIL_VERIFIED")
        logger.info("Email verified for user %s", user.id)
        return user

    # profile

    def get_profile(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user_id: str, data: dict) -> User:
        if not data:
            raise ValidationError("At least one valid field must be provided for update")
        user = self.get_profile(user_id)
        if "email" in data and data["email"] != user.email:
            if self.users.email_taken(data["email"], exclude_id=user.id):
                raise ConflictError("Email already registered")
            user.email = data["email"]
            user.email_verified = False
        if "username" in data and data["username"] != user.username:
            if self.users.username_taken(data["username"], exclude_id=user.id):
                raise ConflictError("Username already taken")
            user.username = data["username"]
        for field in ("first_name", "last_name"):
            if field in data:
                setattr(user, field, data[field])
        self.users.save(user)
        logger.info("Profile updated for user %s", user.id)
        return user

    def update_account_settings(self, user_id: str, data: dict, ip_address: str | None = None) -> User:
        if not data:
            raise ValidationError("At least one setting must be provided")
        user = self.get_profile(user_id)
        changes = {k: v for k, v in data.items() if getattr(user, k) != v}
        for field, value in changes.items():
            setattr(user, field, value)
        self.users.save(user)
        if changes:
            self.users.record_audit(user.id, "ACCOUNT_SETTINGS_UPDATED", ip_address=ip_address, details=changes)
            logger.info("Account settings updated for user %s: %s", user.id, sorted(changes))
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str, ip_address: str | None = None) -> None:
        user = self.get_profile(user_id)
        if not self.passwords.verify(user.password_hash, current_password):
            logger.warning("Password change failed: invalid current password for user %s", user.id)
            raise AuthenticationError("Current password is incorrect")
        user.password_hash = self.passwords.hash(new_password)
        self.users.save(user)
        self.sessions.delete_refresh(user.id)
        self.users.record_audit(user.id, "PASSWORD_CHANGED", ip_address=ip_address)
        logger.info("Password changed for user %s", user.id)
