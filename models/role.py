from sqlalchemy import Column, ForeignKey, String, Table
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(BaseModel, Base):
    __tablename__ = "roles"

    name = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(String(255), nullable=True)

    users = relationship("User", secondary=user_roles, back_populates="roles")
    permissions = relationship("Permission", secondary=role_permissions, back_populates="roles")

    @property
    def permission_names(self) -> frozenset:
        return frozenset(p.name for p in self.permissions)

    def __repr__(self):
        return f"<Role {self.name}>"


class Permission(BaseModel, Base):
    __tablename__ = "permissions"

    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(String(255), nullable=True)

    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")

    def __repr__(self):
        return f"<Permission {self.name}>"
