"""
Data-access boundary for users, roles and one-time tokens.

Everything above this layer sees roles and permissions as frozensets of
names; nothing else inspects the ORM relationships.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Tuple, Type

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from models.audit_log import AuditLog
from models.db_storage import DBStorage
from models.one_time_token import EmailVerification, PasswordReset
from models.role import Permission, Role
from models.user import User

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "USER"
ADMIN_ROLE = "ADMIN"

DEFAULT_PERMISSIONS = {
    ADMIN_ROLE: (
        "read:users",
        "create:users",
        "update:users",
        "delete:users",
        "manage:roles",
        "manage:categories",
    ),
    DEFAULT_ROLE: ("read:profile", "update:profile"),
}


class UserRepository:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    @property
    def session(self):
        return self.storage.get_session()

    # users

    def _live_users(self):
        return self.session.query(User).filter(User.is_deleted.is_(False))

    def get(self, user_id: str) -> Optional[User]:
        user = self.storage.get(User, user_id)
        if user is None or user.is_deleted:
            return None
        return user

    def get_any(self, user_id: str) -> Optional[User]:
        """Fetch a user including soft-deleted ones (admin views)."""
        return self.storage.get(User, user_id)

    def get_active(self, user_id: str) -> Optional[User]:
        user = self.get(user_id)
        if user is None or not user.is_active:
            return None
        return user

    def find_active_by_login(self, identifier: str) -> Optional[User]:
        """Look a user up by email or username among active, non-deleted users."""
        ident = identifier.strip()
        return (
            self._live_users()
            .filter(User.is_active.is_(True))
            .filter(or_(User.email == ident.lower(), User.username == ident))
            .first()
        )

    def find_by_email(self, email: str) -> Optional[User]:
        return self._live_users().filter(User.email == email.strip().lower()).first()

    def email_taken(self, email: str, exclude_id: str | None = None) -> bool:
        q = self._live_users().filter(User.email == email.strip().lower())
        if exclude_id:
            q = q.filter(User.id != exclude_id)
        return self.session.query(q.exists()).scalar()

    def username_taken(self, username: str, exclude_id: str | None = None) -> bool:
        q = self._live_users().filter(func.lower(User.username) == username.lower())
        if exclude_id:
            q = q.filter(User.id != exclude_id)
        return self.session.query(q.exists()).scalar()

    def create_user(self, *, role_name: str = DEFAULT_ROLE, **fields) -> User:
        """Create the user and attach role_name (created if absent) in one transaction."""
        with self.storage.transaction() as session:
            role = self._get_or_create_role(session, role_name)
            user = User(**fields)
            user.roles.append(role)
            session.add(user)
        return user

    def list_users(self, page: int, limit: int, include_deleted: bool = False) -> Tuple[list, int]:
        q = self.session.query(User)
        if not include_deleted:
            q = q.filter(User.is_deleted.is_(False))
        total = q.count()
        rows = q.order_by(User.created_at.desc(), User.id).offset((page - 1) * limit).limit(limit).all()
        return rows, total

    def save(self, *objs) -> None:
        with self.storage.transaction() as session:
            for obj in objs:
                session.add(obj)

    def hard_delete(self, user: User) -> None:
        with self.storage.transaction() as session:
            session.delete(user)

    # roles & permissions

    @staticmethod
    def _get_or_create_role(session, name: str) -> Role:
        role = session.execute(select(Role).where(Role.name == name)).scalar_one_or_none()
        if role is None:
            role = Role(name=name)
            session.add(role)
        return role

    def get_role(self, name: str) -> Optional[Role]:
        return self.session.query(Role).filter(Role.name == name).first()

    def list_roles(self) -> list:
        return self.session.query(Role).order_by(Role.name).all()

    def create_role(self, name: str, description: str | None = None) -> Role:
        role = Role(name=name, description=description)
        self.save(role)
        return role

    def set_role_permissions(self, role: Role, names: Iterable[str]) -> Role:
        with self.storage.transaction() as session:
            perms = []
            for name in sorted(set(names)):
                perm = session.execute(select(Permission).where(Permission.name == name)).scalar_one_or_none()
                if perm is None:
                    perm = Permission(name=name)
                    session.add(perm)
                perms.append(perm)
            role.permissions = perms
            session.add(role)
        return role

    def set_user_roles(self, user: User, names: Iterable[str]) -> Tuple[User, set]:
        """Replace the user's roles. Returns the names that do not exist."""
        wanted = set(names)
        roles = self.session.query(Role).filter(Role.name.in_(wanted)).all()
        missing = wanted - {r.name for r in roles}
        if missing:
            return user, missing
        with self.storage.transaction() as session:
            user.roles = roles
            session.add(user)
        return user, set()

    def grant_role(self, user: User, role_name: str) -> bool:
        """Attach an existing role. False when the role does not exist."""
        role = self.get_role(role_name)
        if role is None:
            return False
        if role not in user.roles:
            with self.storage.transaction() as session:
                user.roles.append(role)
                session.add(user)
        return True

    def seed_default_roles(self) -> None:
        with self.storage.transaction() as session:
            for role_name, perm_names in DEFAULT_PERMISSIONS.items():
                role = self._get_or_create_role(session, role_name)
                session.flush()
                existing = {p.name for p in role.permissions}
                for perm_name in perm_names:
                    if perm_name in existing:
                        continue
                    perm = session.execute(
                        select(Permission).where(Permission.name == perm_name)
                    ).scalar_one_or_none()
                    if perm is None:
                        perm = Permission(name=perm_name)
                        session.add(perm)
                    role.permissions.append(perm)

    def role_names_for(self, user: User) -> frozenset:
        return user.role_names

    def permissions_for(self, user_id: str) -> frozenset:
        """Union of permission names over the user's roles, read from the database."""
        rows = (
            self.session.query(Permission.name)
            .join(Permission.roles)
            .join(Role.users)
            .filter(User.id == user_id, User.is_deleted.is_(False))
            .distinct()
            .all()
        )
        return frozenset(name for (name,) in rows)

    # one-time tokens

    def upsert_one_time_token(self, model: Type, user_id: str, token_hash: str, expires_at: datetime):
        """Replace any record for user_id with a new token hash."""
        with self.storage.transaction() as session:
            record = session.query(model).filter(model.user_id == user_id).first()
            if record is None:
                record = model(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
                session.add(record)
            else:
                record.token_hash = token_hash
                record.expires_at = expires_at
        return record

    def get_one_time_token(self, model: Type, user_id: str):
        return self.session.query(model).filter(model.user_id == user_id).first()

    def get_password_reset(self, user_id: str) -> Optional[PasswordReset]:
        return self.get_one_time_token(PasswordReset, user_id)

    def get_email_verification(self, user_id: str) -> Optional[EmailVerification]:
        return self.get_one_time_token(EmailVerification, user_id)

    def consume_one_time_token(self, record, *changes) -> None:
        """Delete record and persist changes to other objects atomically."""
        with self.storage.transaction() as session:
            for obj in changes:
                session.add(obj)
            session.delete(record)

    def delete_one_time_token(self, record) -> None:
        with self.storage.transaction() as session:
            session.delete(record)

    # audit

    def list_activities(
        self,
        user_id: str,
        page: int,
        limit: int,
        action: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> Tuple[list, int]:
        """Audit entries written for user_id, newest first."""
        q = self.session.query(AuditLog).filter(AuditLog.user_id == user_id)
        if action:
            q = q.filter(AuditLog.action == action.upper())
        if start:
            q = q.filter(func.date(AuditLog.timestamp) >= start)
        if end:
            q = q.filter(func.date(AuditLog.timestamp) <= end)
        total = q.count()
        rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
        return rows, total

    def record_audit(self, user_id: str, action: str, details: dict | None = None, ip_address: str | None = None):
        """Best effort: an audit failure never fails the caller."""
        try:
            with self.storage.transaction() as session:
                session.add(AuditLog(user_id=user_id, action=action, details=details, ip_address=ip_address))
        except SQLAlchemyError:
            logger.exception("Failed to write audit log entry %s for user %s", action, user_id)
