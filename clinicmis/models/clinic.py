from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship

from clinicmis.db.base import Base
from clinicmis.models.mixins import (
    TABLE_OPTS,
    TimestampMixin,
    SoftDeleteMixin,
    AuditActorMixin,
)


class Clinic(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    """Clinical department (Cardiology, Pediatrics, ...)."""
    __tablename__ = "clinics"
    __table_args__ = TABLE_OPTS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(500), nullable=True)
    location = Column(String(50), nullable=True)
    contact_phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    staff = relationship("Staff", back_populates="clinic")
    visits = relationship("Visit", back_populates="clinic")
