# FILE: clinicmis/services/prescriptions.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from clinicmis.models.mixins import touch
from clinicmis.models.patient import Patient
from clinicmis.models.pharmacy import Drug
from clinicmis.models.prescription import (
    Prescription,
    PrescriptionItem,
    PrescriptionStatus,
)
from clinicmis.models.staff import Staff, StaffRole
from clinicmis.models.visit import Visit
from clinicmis.schemas.prescription import PrescriptionCreate
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinicmis.services.id_gen import generate_prescription_number
from clinicmis.utils.timezone import now_local

logger = logging.getLogger(__name__)


def get_prescription(db: Session, prescription_id: int) -> Prescription:
    rx = (db.query(Prescription).options(selectinload(
        Prescription.items)).filter(Prescription.id == prescription_id).first())
    if not rx:
        raise NotFoundError(f"Prescription with ID {prescription_id} not found")
    return rx


def create_prescription(db: Session,
                        data: PrescriptionCreate,
                        user_id: Optional[int] = None) -> Prescription:
    """
    New DRAFT prescription. Unit prices are frozen from the drug master.
    """
    if not data.items:
        raise ValidationError("At least one medication is required")

    if not db.get(Patient, data.patient_id):
        raise NotFoundError(f"Patient with ID {data.patient_id} not found")

    doctor = db.get(Staff, data.doctor_id)
    if not doctor or doctor.role != StaffRole.DOCTOR or not doctor.is_active:
        raise ValidationError("Prescribing staff must be an active doctor")

    if data.visit_id and not db.get(Visit, data.visit_id):
        raise NotFoundError(f"Visit with ID {data.visit_id} not found")

    rx = Prescription(
        prescription_number=generate_prescription_number(db),
        patient_id=data.patient_id,
        doctor_id=doctor.id,
        visit_id=data.visit_id,
        prescription_date=now_local(),
        status=PrescriptionStatus.DRAFT,
        diagnosis=data.diagnosis,
        special_instructions=data.special_instructions,
        created_by=user_id,
    )

    for line in data.items:
        drug = db.get(Drug, line.drug_id)
        if not drug:
            raise NotFoundError(f"Drug with ID {line.drug_id} not found")
        if not drug.is_active:
            raise ValidationError(f"{drug.display_name} is not active")
        rx.items.append(
            PrescriptionItem(
                drug_id=drug.id,
                quantity=line.quantity,
                dosage_instructions=line.dosage_instructions,
                duration_days=line.duration_days,
                unit_price=drug.unit_price,
                notes=line.notes,
                created_by=user_id,
            ))

    db.add(rx)
    db.flush()

    log_audit(db, user_id, "prescriptions", rx.id, "CREATE",
              new_values={
                  "prescription_number": rx.prescription_number,
                  "patient_id": rx.patient_id,
                  "items": len(rx.items),
              })
    logger.info("Prescription %s created for patient %s", rx.prescription_number,
                rx.patient_id)
    return rx


def _transition(db: Session, rx: Prescription, to: PrescriptionStatus,
                user_id: Optional[int]) -> Prescription:
    old = rx.status.value
    rx.status = to
    touch(rx, user_id)
    db.flush()
    log_audit(db, user_id, "prescriptions", rx.id, "UPDATE",
              old_values={"status": old},
              new_values={"status": to.value})
    return rx


def send_to_pharmacy(db: Session,
                     prescription_id: int,
                     user_id: Optional[int] = None) -> Prescription:
    rx = get_prescription(db, prescription_id)
    if rx.status != PrescriptionStatus.DRAFT:
        raise InvalidStateError(
            "Only draft prescriptions can be sent to the pharmacy.")
    rx.sent_to_pharmacy_at = now_local()
    return _transition(db, rx, PrescriptionStatus.SENT_TO_PHARMACY, user_id)


def start_processing(db: Session,
                     prescription_id: int,
                     user_id: Optional[int] = None) -> Prescription:
    rx = get_prescription(db, prescription_id)
    if rx.status != PrescriptionStatus.SENT_TO_PHARMACY:
        raise InvalidStateError(
            "Only prescriptions waiting in the pharmacy can be processed.")
    return _transition(db, rx, PrescriptionStatus.PROCESSING, user_id)


def cancel_prescription(db: Session,
                        prescription_id: int,
                        user_id: Optional[int] = None) -> Prescription:
    rx = get_prescription(db, prescription_id)
    if rx.status in (PrescriptionStatus.DISPENSED, PrescriptionStatus.CANCELLED):
        raise InvalidStateError(
            f"A {rx.status.value.lower()} prescription cannot be cancelled.")
    return _transition(db, rx, PrescriptionStatus.CANCELLED, user_id)
