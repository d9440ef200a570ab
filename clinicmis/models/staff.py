# FILE: clinicmis/models/staff.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
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


class StaffRole(str, enum.Enum):
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    NURSE = "NURSE"
    PHARMACIST = "PHARMACIST"
    RECEPTIONIST = "RECEPTIONIST"


class Staff(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    __tablename__ = "staff"
    __table_args__ = TABLE_OPTS

    id = Column(Integer, primary_key=True, index=True)
    employee_number = Column(String(20), unique=True, index=True,
                             nullable=False)  # EMP-0001

    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(Enum(StaffRole, native_enum=False, length=20),
                  nullable=False)

    specialization = Column(String(100), nullable=True)
    license_number = Column(String(50), nullable=True, index=True)
    phone_number = Column(String(20), nullable=False)
    email = Column(String(100), nullable=False, unique=True)
    hire_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="SET NULL"),
                       nullable=True)
    # one login per staff member
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"),
                     nullable=True, unique=True)

    clinic = relationship("Clinic", back_populates="staff")
    user = relationship("User", back_populates="staff")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def display_title(self) -> str:
        if self.role == StaffRole.DOCTOR:
            return f"Dr. {self.full_name}"
        return self.full_name
