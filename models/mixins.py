from sqlalchemy.sql import func
from sqlalchemy import Column, DateTime, Boolean
from utils.datetime_utils import utcnow


class CreatedAtMixin:
    created_at = Column(DateTime(timezone=True), default=func.now())


class UpdatedAtMixin:
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())


class SoftDeleteMixin:
    """Rows are flagged instead of removed; default queries filter them out."""
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def soft_delete(self):
        self.is_deleted = True
        self.deleted_at = utcnow()
