# FILE: clinicmis/models/mixins.py
from __future__ import annotations

from sqlalchemy import Column, Integer, DateTime, Boolean, Numeric

from clinicmis.utils.timezone import utcnow

DEC_MONEY = Numeric(10, 2)

TABLE_OPTS = {
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)


class SoftDeleteMixin:
    """Rows are tombstoned, never removed. See clinicmis.db.soft_delete."""
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(Integer, nullable=True)

    def mark_deleted(self, user_id: int | None = None) -> None:
        self.is_deleted = True
        self.deleted_at = utcnow()
        self.deleted_by = user_id


class AuditActorMixin:
    # user ids; system jobs may be null
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)


def touch(obj, user_id: int | None) -> None:
    """Stamp updated_by on an entity that carries AuditActorMixin."""
    if hasattr(obj, "updated_by"):
        obj.updated_by = user_id

