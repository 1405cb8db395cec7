from sqlalchemy import Boolean, Column, Index, String, false, text, true
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel, SoftDeleteMixin
from models.role import user_roles


class User(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "users"

    username = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    two_factor_enabled = Column(Boolean, nullable=False, default=False, server_default=false())
    email_verified = Column(Boolean, nullable=False, default=False, server_default=false())

    roles = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")

    # unique among rows that are not soft-deleted
    __table_args__ = (
        Index(
            "uq_users_email_live",
            "email",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
        Index(
            "uq_users_username_live",
            "username",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
    )

    @property
    def role_names(self) -> frozenset:
        return frozenset(role.name for role in self.roles)

    def __repr__(self):
        return f"<User {self.username}>"
