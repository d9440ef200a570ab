# FILE: clinicmis/services/patients.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from clinicmis.models.mixins import touch
from clinicmis.models.patient import Patient
from clinicmis.schemas.patient import PatientCreate, PatientUpdate
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import NotFoundError, ValidationError
from clinicmis.services.id_gen import generate_clinic_number
from clinicmis.utils.timezone import today_local

logger = logging.getLogger(__name__)


def get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if not patient or patient.is_deleted:
        raise NotFoundError(f"Patient with ID {patient_id} not found")
    return patient


def register_patient(db: Session,
                     data: PatientCreate,
                     user_id: Optional[int] = None) -> Patient:
    if data.date_of_birth > today_local():
        raise ValidationError("Date of birth cannot be in the future")

    patient = Patient(
        clinic_number=generate_clinic_number(db),
        created_by=user_id,
        **data.model_dump(),
    )
    db.add(patient)
    db.flush()

    log_audit(db, user_id, "patients", patient.id, "CREATE",
              new_values={"clinic_number": patient.clinic_number})
    logger.info("Patient registered: %s", patient.clinic_number)
    return patient


def update_patient(db: Session,
                   patient_id: int,
                   data: PatientUpdate,
                   user_id: Optional[int] = None) -> Patient:
    patient = get_patient(db, patient_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("date_of_birth") and changes["date_of_birth"] > today_local():
        raise ValidationError("Date of birth cannot be in the future")

    old_values = {k: getattr(patient, k) for k in changes}
    for field, value in changes.items():
        setattr(patient, field, value)
    touch(patient, user_id)
    db.flush()

    log_audit(db, user_id, "patients", patient.id, "UPDATE",
              old_values=old_values, new_values=changes)
    return patient


def delete_patient(db: Session,
                   patient_id: int,
                   user_id: Optional[int] = None) -> Patient:
    """Tombstone only; the clinic number stays reserved."""
    patient = get_patient(db, patient_id)
    patient.mark_deleted(user_id)
    touch(patient, user_id)
    db.flush()

    log_audit(db, user_id, "patients", patient.id, "DELETE",
              old_values={"clinic_number": patient.clinic_number})
    logger.info("Patient %s soft deleted", patient.clinic_number)
    return patient
