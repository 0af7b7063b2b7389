from core.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Table
from sqlalchemy.orm import relationship
from models.mixins import CreatedAtMixin, UpdatedAtMixin, SoftDeleteMixin


# Plain link table: removing a permission never cascades into roles
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id"), primary_key=True),
)


class Role(Base, CreatedAtMixin, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = "roles"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #relationships
    users = relationship("User", back_populates="role")
    permissions = relationship("Permission", secondary=role_permissions, back_populates="roles")

    name = Column(String(100), unique=True, nullable=False)
    description = Column(String, default="")


class Permission(Base, CreatedAtMixin, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = "permissions"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #relationships
    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")

    name = Column(String(100), unique=True, nullable=False)
    description = Column(String, nullable=False)
