from sqlalchemy import Column, Integer, String, DateTime, JSON, Index

from clinicmis.db.base import Base
from clinicmis.models.mixins import TABLE_OPTS
from clinicmis.utils.timezone import utcnow


class AuditLog(Base):
    """Append-only change trail. Never soft deleted."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_table_record", "table_name", "record_id"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(50), nullable=False)  # CREATE / DISPENSE / ...
    table_name = Column(String(100), nullable=False)
    record_id = Column(Integer, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
