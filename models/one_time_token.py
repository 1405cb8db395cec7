"""
One-time token records for password reset and email verification.
Fields:
- user_id (unique: at most one active record per user per purpose)
- token_hash: SHA-256 of the token mailed to the user
- expires_at
"""
from sqlalchemy import Column, DateTime, ForeignKey, String

from models.base_model import Base, BaseModel, as_utc, utcnow


class OneTimeTokenMixin:
    token_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    def is_expired(self, now=None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())


class PasswordReset(OneTimeTokenMixin, BaseModel, Base):
    __tablename__ = "password_resets"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)


class EmailVerification(OneTimeTokenMixin, BaseModel, Base):
    __tablename__ = "email_verifications"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
