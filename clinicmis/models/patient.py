# FILE: clinicmis/models/patient.py
from __future__ import annotations

from datetime import date

from sqlalchemy import Column, Integer, String, Date, DateTime, Index
from sqlalchemy.orm import relationship

from clinicmis.db.base import Base
from clinicmis.models.mixins import (
    TABLE_OPTS,
    TimestampMixin,
    SoftDeleteMixin,
    AuditActorMixin,
)
from clinicmis.utils.timezone import utcnow, today_local


class Patient(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    __tablename__ = "patients"
    __table_args__ = (
        Index("ix_patients_last_first", "last_name", "first_name"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    clinic_number = Column(String(20), unique=True, index=True,
                           nullable=False)  # CLN-2024-00001

    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(10), nullable=False)
    national_id = Column(String(20), nullable=True, index=True)
    phone_number = Column(String(20), nullable=False, index=True)
    email = Column(String(100), nullable=True)
    address = Column(String(200), nullable=False)
    city = Column(String(50), nullable=True)

    emergency_contact_name = Column(String(100), nullable=True)
    emergency_contact_phone = Column(String(20), nullable=True)
    blood_type = Column(String(10), nullable=True)
    allergies = Column(String(500), nullable=True)

    registration_date = Column(DateTime, nullable=False, default=utcnow)

    visits = relationship("Visit", back_populates="patient")
    prescriptions = relationship("Prescription", back_populates="patient")
    billings = relationship("Billing", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def age(self) -> int:
        today: date = today_local()
        dob = self.date_of_birth
        years = today.year - dob.year
        if (today.month, today.day) < (dob.month, dob.day):
            years -= 1
        return years
