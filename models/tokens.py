from core.database import Base
from sqlalchemy import Column, Boolean, DateTime, String, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship
from models.mixins import CreatedAtMixin

ACCESS = "access"
REFRESH = "refresh"


class TokenRecord(Base, CreatedAtMixin):
    """
    Durable record of an issued token.

    Access and refresh tokens share this table and are told apart by `kind`.
    Access records are audit entries (with client metadata); refresh records
    are the system of record for session renewal. Both are purged
    TOKEN_RECORD_RETENTION_DAYS after expires_at.
    """
    __tablename__ = "token_records"
    __table_args__ = (
        Index("ix_token_records_user_kind", "user_id", "kind"),
    )

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    #relationships
    user = relationship("User", back_populates="tokens")

    token = Column(String, nullable=False, index=True)
    kind = Column(String(16), nullable=False, default=REFRESH)
    revoked = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)
