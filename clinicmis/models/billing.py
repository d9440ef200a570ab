# FILE: clinicmis/models/billing.py
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


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    WAIVED = "WAIVED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    INSURANCE = "INSURANCE"
    BANK_TRANSFER = "BANK_TRANSFER"


class Billing(Base, TimestampMixin, SoftDeleteMixin, AuditActorMixin):
    """
    Invoice header. A prescription has at most one billing
    (unique prescription_id); visit-only invoices leave it null.
    """
    __tablename__ = "billings"
    __table_args__ = (
        CheckConstraint("amount_paid >= 0", name="ck_billings_paid_nonneg"),
        Index("ix_billings_patient_date", "patient_id", "billing_date"),
        TABLE_OPTS,
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(20), unique=True, index=True,
                            nullable=False)  # INV-20240115-0001

    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    visit_id = Column(Integer, ForeignKey("visits.id"), nullable=True)
    prescription_id = Column(Integer,
                             ForeignKey("prescriptions.id"),
                             nullable=True,
                             unique=True)

    billing_date = Column(DateTime, nullable=False)

    consultation_fee = Column(DEC_MONEY, nullable=False, default=0)
    medication_cost = Column(DEC_MONEY, nullable=False, default=0)
    other_charges = Column(DEC_MONEY, nullable=False, default=0)
    discount = Column(DEC_MONEY, nullable=False, default=0)
    tax = Column(DEC_MONEY, nullable=False, default=0)
    total_amount = Column(DEC_MONEY, nullable=False, default=0)
    amount_paid = Column(DEC_MONEY, nullable=False, default=0)

    payment_status = Column(Enum(PaymentStatus, native_enum=False, length=32),
                            nullable=False,
                            default=PaymentStatus.PENDING,
                            index=True)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=32),
                            nullable=True)
    payment_date = Column(DateTime, nullable=True)
    notes = Column(String(1000), nullable=True)

    patient = relationship("Patient", back_populates="billings")
    visit = relationship("Visit")
    prescription = relationship("Prescription", back_populates="billing")

    @property
    def sub_total(self) -> Decimal:
        return (Decimal(self.consultation_fee or 0) +
                Decimal(self.medication_cost or 0) +
                Decimal(self.other_charges or 0))

    @property
    def grand_total(self) -> Decimal:
        return (self.sub_total - Decimal(self.discount or 0) +
                Decimal(self.tax or 0))

    @property
    def balance_due(self) -> Decimal:
        return Decimal(self.total_amount or 0) - Decimal(self.amount_paid or 0)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID
