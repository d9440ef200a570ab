# FILE: clinicmis/models/visit.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    Time,
    Numeric,
    Enum,
    ForeignKey,
)
from sqlalchemy.orm import relationship

from clinicmis.db.base import Base
from clinicmis.models.mixins import (
    TABLE_OPTS,
    TimestampMixin,
    SoftDeleteMixin,
    AuditActorMixin,
)


class VisitStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Visit(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    """
    OPD visit / consultation.

    SCHEDULED -> CHECKED_IN -> IN_PROGRESS (consultation saved) -> COMPLETED
    """
    __tablename__ = "visits"
    __table_args__ = TABLE_OPTS

    id = Column(Integer, primary_key=True, index=True)
    visit_number = Column(String(20), unique=True, index=True,
                          nullable=False)  # VIS-20240115-0001

    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"),
                       nullable=True)

    visit_date = Column(DateTime, nullable=False, index=True)
    check_in_time = Column(Time, nullable=True)
    check_out_time = Column(Time, nullable=True)

    status = Column(Enum(VisitStatus, native_enum=False, length=20),
                    nullable=False,
                    default=VisitStatus.SCHEDULED,
                    index=True)

    reason_for_visit = Column(String(500), nullable=True)
    symptoms = Column(String(1000), nullable=True)
    diagnosis = Column(String(1000), nullable=True)
    doctor_notes = Column(Text, nullable=True)

    # Vitals
    blood_pressure = Column(String(10), nullable=True)  # "120/80"
    temperature = Column(Numeric(4, 1), nullable=True)
    pulse_rate = Column(Integer, nullable=True)
    weight = Column(Numeric(5, 2), nullable=True)
    height = Column(Numeric(5, 2), nullable=True)

    follow_up_required = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(Date, nullable=True)

    patient = relationship("Patient", back_populates="visits")
    clinic = relationship("Clinic", back_populates="visits")
    doctor = relationship("Staff")
    prescriptions = relationship("Prescription", back_populates="visit")
