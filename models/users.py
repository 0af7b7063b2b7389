from core.database import Base
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from models.mixins import CreatedAtMixin, UpdatedAtMixin, SoftDeleteMixin


class User(Base, CreatedAtMixin, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = "users"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=True, index=True)

    #relationships
    role = relationship("Role", back_populates="users")
    tokens = relationship("TokenRecord", back_populates="user")

    username = Column(String(100), unique=True, nullable=False)
    email = Column(String, unique=True, nullable=False)
    first_name = Column(String, default="")
    last_name = Column(String, default="")
    bio = Column(String(500), default="")
    hashed_password = Column(String, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
