# FILE: clinicmis/models/prescription.py
from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Enum,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from clinicmis.db.base import Base
from clinicmis.models.mixins import (
    DEC_MONEY,
    TABLE_OPTS,
    TimestampMixin,
    SoftDeleteMixin,
    AuditActorMixin,
)


class PrescriptionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT_TO_PHARMACY = "SENT_TO_PHARMACY"
    PROCESSING = "PROCESSING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    DISPENSED = "DISPENSED"
    CANCELLED = "CANCELLED"


# statuses the pharmacy may dispense from
DISPENSABLE_STATUSES = (
    PrescriptionStatus.SENT_TO_PHARMACY,
    PrescriptionStatus.PROCESSING,
)


class Prescription(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    __tablename__ = "prescriptions"
    __table_args__ = (
        Index("ix_prescriptions_status_sent", "status", "sent_to_pharmacy_at"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    prescription_number = Column(String(20), unique=True, index=True,
                                 nullable=False)  # RX-20240115-0001

    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("staff.id"), nullable=False)
    visit_id = Column(Integer, ForeignKey("visits.id"), nullable=True)

    prescription_date = Column(DateTime, nullable=False)
    status = Column(Enum(PrescriptionStatus, native_enum=False, length=32),
                    nullable=False,
                    default=PrescriptionStatus.DRAFT)

    diagnosis = Column(String(1000), nullable=True)
    special_instructions = Column(String(1000), nullable=True)

    sent_to_pharmacy_at = Column(DateTime, nullable=True)
    dispensed_at = Column(DateTime, nullable=True)
    dispensed_by_staff_id = Column(Integer, ForeignKey("staff.id"),
                                   nullable=True)

    patient = relationship("Patient", back_populates="prescriptions")
    doctor = relationship("Staff", foreign_keys=[doctor_id])
    dispensed_by = relationship("Staff", foreign_keys=[dispensed_by_staff_id])
    visit = relationship("Visit", back_populates="prescriptions")

    items = relationship(
        "PrescriptionItem",
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="PrescriptionItem.id",
    )
    billing = relationship("Billing",
                           back_populates="prescription",
                           uselist=False)


class PrescriptionItem(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    __tablename__ = "prescription_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1 AND quantity <= 1000",
                        name="ck_rx_items_qty_range"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    prescription_id = Column(Integer,
                             ForeignKey("prescriptions.id", ondelete="CASCADE"),
                             nullable=False,
                             index=True)
    drug_id = Column(Integer, ForeignKey("drugs.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    quantity_dispensed = Column(Integer, nullable=True)
    dosage_instructions = Column(String(500), nullable=False)
    duration_days = Column(Integer, nullable=True)
    unit_price = Column(DEC_MONEY, nullable=False)  # frozen at prescribing
    notes = Column(String(500), nullable=True)

    prescription = relationship("Prescription", back_populates="items")
    drug = relationship("Drug")
    dispensings = relationship("Dispensing", back_populates="prescription_item")

    @property
    def billable_quantity(self) -> int:
        if self.quantity_dispensed is not None:
            return self.quantity_dispensed
        return self.quantity or 0

    @property
    def total_price(self) -> Decimal:
        return Decimal(self.quantity or 0) * Decimal(self.unit_price or 0)

    @property
    def dispensed_total_price(self) -> Decimal:
        return Decimal(self.billable_quantity) * Decimal(self.unit_price or 0)
