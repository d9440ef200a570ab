# FILE: clinicmis/services/visits.py
"""
OPD visit flow: SCHEDULED -> CHECKED_IN -> IN_PROGRESS -> COMPLETED.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from clinicmis.models.clinic import Clinic
from clinicmis.models.mixins import touch
from clinicmis.models.patient import Patient
from clinicmis.models.staff import Staff, StaffRole
from clinicmis.models.visit import Visit, VisitStatus
from clinicmis.schemas.visit import ConsultationIn, VisitCreate
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinicmis.services.id_gen import generate_visit_number
from clinicmis.utils.timezone import now_local

logger = logging.getLogger(__name__)


def get_visit(db: Session, visit_id: int) -> Visit:
    visit = db.get(Visit, visit_id)
    if not visit:
        raise NotFoundError(f"Visit with ID {visit_id} not found")
    return visit


def create_visit(db: Session,
                 data: VisitCreate,
                 user_id: Optional[int] = None) -> Visit:
    if not db.get(Patient, data.patient_id):
        raise NotFoundError(f"Patient with ID {data.patient_id} not found")
    clinic = db.get(Clinic, data.clinic_id)
    if not clinic or not clinic.is_active:
        raise NotFoundError(f"Clinic with ID {data.clinic_id} not found")
    if data.doctor_id:
        doctor = db.get(Staff, data.doctor_id)
        if not doctor or doctor.role != StaffRole.DOCTOR:
            raise ValidationError("Assigned staff must be a doctor")

    visit_date = data.visit_date or now_local()
    visit = Visit(
        visit_number=generate_visit_number(db, visit_date.date()),
        patient_id=data.patient_id,
        clinic_id=data.clinic_id,
        doctor_id=data.doctor_id,
        visit_date=visit_date,
        status=VisitStatus.SCHEDULED,
        reason_for_visit=data.reason_for_visit,
        created_by=user_id,
    )
    db.add(visit)
    db.flush()

    log_audit(db, user_id, "visits", visit.id, "CREATE",
              new_values={"visit_number": visit.visit_number})
    logger.info("Visit %s created for patient %s", visit.visit_number,
                visit.patient_id)
    return visit


def _set_status(db: Session, visit: Visit, to: VisitStatus,
                user_id: Optional[int]) -> Visit:
    old = visit.status.value
    visit.status = to
    touch(visit, user_id)
    db.flush()
    log_audit(db, user_id, "visits", visit.id, "UPDATE",
              old_values={"status": old},
              new_values={"status": to.value})
    return visit


def check_in(db: Session, visit_id: int, user_id: Optional[int] = None) -> Visit:
    visit = get_visit(db, visit_id)
    if visit.status != VisitStatus.SCHEDULED:
        raise InvalidStateError("Only scheduled visits can be checked in.")
    visit.check_in_time = now_local().time().replace(microsecond=0)
    return _set_status(db, visit, VisitStatus.CHECKED_IN, user_id)


def record_consultation(db: Session,
                        visit_id: int,
                        data: ConsultationIn,
                        user_id: Optional[int] = None) -> Visit:
    visit = get_visit(db, visit_id)
    if visit.status not in (VisitStatus.CHECKED_IN, VisitStatus.IN_PROGRESS):
        raise InvalidStateError("Patient must be checked in before consultation.")
    if data.follow_up_required and not data.follow_up_date:
        raise ValidationError("Follow-up date is required")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(visit, field, value)

    if visit.status == VisitStatus.IN_PROGRESS:
        touch(visit, user_id)
        db.flush()
        return visit
    return _set_status(db, visit, VisitStatus.IN_PROGRESS, user_id)


def complete_visit(db: Session,
                   visit_id: int,
                   user_id: Optional[int] = None) -> Visit:
    visit = get_visit(db, visit_id)
    if visit.status not in (VisitStatus.CHECKED_IN, VisitStatus.IN_PROGRESS):
        raise InvalidStateError("Only active visits can be completed.")
    visit.check_out_time = now_local().time().replace(microsecond=0)
    return _set_status(db, visit, VisitStatus.COMPLETED, user_id)
