# FILE: clinicmis/api/routes_patients.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_user, get_db, require_roles
from clinicmis.models.staff import StaffRole
from clinicmis.models.user import User
from clinicmis.schemas.patient import PatientCreate, PatientOut, PatientUpdate
from clinicmis.services import patients as patient_service
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/patients", tags=["Patients"])

FRONT_DESK = (StaffRole.RECEPTIONIST, StaffRole.NURSE, StaffRole.DOCTOR)


def _patient_out(p) -> dict:
    return PatientOut.model_validate(p).model_dump()


@router.post("", status_code=201)
def register_patient(
        payload: PatientCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*FRONT_DESK)),
):
    patient = run_in_transaction(
        db, lambda s: patient_service.register_patient(s, payload, user.id))
    return ok(_patient_out(patient), status_code=201)


@router.get("/{patient_id}")
def get_patient(
        patient_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_patient_out(patient_service.get_patient(db, patient_id)))


@router.put("/{patient_id}")
def update_patient(
        patient_id: int,
        payload: PatientUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*FRONT_DESK)),
):
    patient = run_in_transaction(
        db,
        lambda s: patient_service.update_patient(s, patient_id, payload, user.id))
    return ok(_patient_out(patient))


@router.delete("/{patient_id}")
def delete_patient(
        patient_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    run_in_transaction(
        db, lambda s: patient_service.delete_patient(s, patient_id, user.id))
    return ok({"id": patient_id, "deleted": True})
