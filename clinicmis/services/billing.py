# FILE: clinicmis/services/billing.py
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from clinicmis.db.soft_delete import INCLUDE_DELETED
from clinicmis.models.billing import Billing, PaymentMethod, PaymentStatus
from clinicmis.models.mixins import touch
from clinicmis.models.patient import Patient
from clinicmis.models.prescription import Prescription, PrescriptionStatus
from clinicmis.models.visit import Visit
from clinicmis.schemas.billing import BillingCreate
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinicmis.services.id_gen import generate_invoice_number
from clinicmis.utils.timezone import now_local

logger = logging.getLogger(__name__)

Q2 = Decimal("0.01")


def _d(x: Any) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _round_money(x: Any) -> Decimal:
    return _d(x).quantize(Q2, rounding=ROUND_HALF_UP)


def get_billing(db: Session, billing_id: int) -> Billing:
    billing = db.get(Billing, billing_id)
    if not billing:
        raise NotFoundError(f"Billing with ID {billing_id} not found")
    return billing


def _existing_for_prescription(db: Session, prescription_id: int) -> Optional[Billing]:
    return (db.query(Billing).filter(
        Billing.prescription_id == prescription_id).execution_options(
            **{INCLUDE_DELETED: True}).first())


def generate_billing(
    db: Session,
    prescription_id: int,
    consultation_fee: Any = 0,
    user_id: Optional[int] = None,
    *,
    require_dispensed: bool = False,
) -> Billing:
    """
    Derive the invoice for a prescription. Idempotent: an existing billing
    is returned unchanged, so re-running after a retry never bills twice.

    medication = sum((quantity_dispensed or quantity) * unit_price)
    total      = consultation_fee + medication

    With ``require_dispensed`` the prescription must already be DISPENSED;
    an invoice issued earlier would be frozen at the prescribed quantities.
    """
    rx = (db.query(Prescription).options(
        joinedload(Prescription.billing),
        joinedload(Prescription.patient),
        selectinload(Prescription.items),
    ).filter(Prescription.id == prescription_id).first())
    if not rx:
        raise NotFoundError(f"Prescription with ID {prescription_id} not found")
    if require_dispensed and rx.status != PrescriptionStatus.DISPENSED:
        raise InvalidStateError(
            f"Prescription {rx.prescription_number} cannot be billed "
            f"before it is dispensed (status {rx.status.value}).")

    if rx.billing is not None:
        return rx.billing

    existing = _existing_for_prescription(db, rx.id)
    if existing is not None:
        if existing.is_deleted:
            raise InvalidStateError(
                f"The invoice for prescription {rx.prescription_number} "
                "was voided and cannot be regenerated.")
        return existing

    if not rx.patient_id or rx.patient is None:
        raise InvalidStateError("Prescription must have a valid patient.")

    consultation = _round_money(consultation_fee)
    if consultation < 0:
        raise ValidationError("Consultation fee cannot be negative")

    medication = _round_money(
        sum((it.dispensed_total_price for it in rx.items), Decimal("0")))

    billing = Billing(
        invoice_number=generate_invoice_number(db),
        patient_id=rx.patient_id,
        prescription_id=rx.id,
        visit_id=rx.visit_id,
        billing_date=now_local(),
        consultation_fee=consultation,
        medication_cost=medication,
        total_amount=_round_money(consultation + medication),
        amount_paid=Decimal("0.00"),
        payment_status=PaymentStatus.PENDING,
        created_by=user_id,
    )
    db.add(billing)
    db.flush()

    log_audit(db, user_id, "billings", billing.id, "CREATE",
              new_values={
                  "invoice_number": billing.invoice_number,
                  "prescription_id": rx.id,
                  "total_amount": billing.total_amount,
              })
    logger.info("Invoice %s generated for prescription %s: %s",
                billing.invoice_number, rx.prescription_number,
                billing.total_amount)
    return billing


def create_billing(db: Session,
                   data: BillingCreate,
                   user_id: Optional[int] = None) -> Billing:
    """Manual invoice (consultation only, or with explicit charges)."""
    if not db.get(Patient, data.patient_id):
        raise NotFoundError(f"Patient with ID {data.patient_id} not found")
    if data.visit_id and not db.get(Visit, data.visit_id):
        raise NotFoundError(f"Visit with ID {data.visit_id} not found")

    if data.prescription_id:
        rx = db.get(Prescription, data.prescription_id)
        if not rx:
            raise NotFoundError(
                f"Prescription with ID {data.prescription_id} not found")
        if _existing_for_prescription(db, data.prescription_id):
            raise InvalidStateError(
                "A billing already exists for this prescription.")
        if rx.status != PrescriptionStatus.DISPENSED:
            raise InvalidStateError(
                f"Prescription {rx.prescription_number} cannot be billed "
                f"before it is dispensed (status {rx.status.value}).")

    consultation = _round_money(data.consultation_fee)
    medication = _round_money(data.medication_cost)
    other = _round_money(data.other_charges)
    discount = _round_money(data.discount)
    tax = _round_money(data.tax)

    total = _round_money(consultation + medication + other - discount + tax)
    if total < 0:
        raise ValidationError("Discount cannot exceed the invoice amount")

    billing = Billing(
        invoice_number=generate_invoice_number(db),
        patient_id=data.patient_id,
        visit_id=data.visit_id,
        prescription_id=data.prescription_id or None,
        billing_date=now_local(),
        consultation_fee=consultation,
        medication_cost=medication,
        other_charges=other,
        discount=discount,
        tax=tax,
        total_amount=total,
        amount_paid=Decimal("0.00"),
        payment_status=PaymentStatus.PENDING,
        notes=data.notes,
        created_by=user_id,
    )
    db.add(billing)
    db.flush()

    log_audit(db, user_id, "billings", billing.id, "CREATE",
              new_values={
                  "invoice_number": billing.invoice_number,
                  "total_amount": total,
              })
    logger.info("Invoice %s created for patient %s: %s",
                billing.invoice_number, data.patient_id, total)
    return billing


def record_payment(
    db: Session,
    billing_id: int,
    amount: Any,
    payment_method: PaymentMethod,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Billing:
    billing = (db.query(Billing).filter(
        Billing.id == billing_id).with_for_update().populate_existing().
               one_or_none())
    if not billing:
        raise NotFoundError(f"Billing with ID {billing_id} not found")
    if billing.payment_status == PaymentStatus.PAID:
        raise InvalidStateError("This invoice is already fully paid.")

    amount = _round_money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    balance = _round_money(billing.balance_due)
    if amount > balance:
        raise ValidationError(
            f"Payment amount cannot exceed the balance due ({balance}).")

    old = {
        "amount_paid": billing.amount_paid,
        "payment_status": billing.payment_status,
    }

    billing.amount_paid = _round_money(_d(billing.amount_paid) + amount)
    billing.payment_method = payment_method
    billing.payment_date = now_local()
    if billing.amount_paid >= _d(billing.total_amount):
        billing.payment_status = PaymentStatus.PAID
    else:
        billing.payment_status = PaymentStatus.PARTIALLY_PAID

    if notes and notes.strip():
        billing.notes = (notes if not (billing.notes or "").strip() else
                         f"{billing.notes}\n{notes}")
    touch(billing, user_id)
    db.flush()

    log_audit(db, user_id, "billings", billing.id, "PAYMENT",
              old_values=old,
              new_values={
                  "amount": amount,
                  "amount_paid": billing.amount_paid,
                  "payment_status": billing.payment_status,
                  "payment_method": payment_method,
              })
    logger.info("Payment of %s recorded on %s (%s)", amount,
                billing.invoice_number, billing.payment_status.value)
    return billing
