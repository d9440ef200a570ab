# FILE: clinicmis/api/routes_clinics.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_user, get_db, require_roles
from clinicmis.models.user import User
from clinicmis.schemas.clinic import ClinicCreate, ClinicOut, ClinicUpdate
from clinicmis.services import clinics as clinic_service
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/clinics", tags=["Clinics"])


def _clinic_out(c) -> dict:
    return ClinicOut.model_validate(c).model_dump()


@router.get("")
def list_clinics(
        active_only: bool = Query(False),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok([_clinic_out(c) for c in clinic_service.list_clinics(db, active_only)])


@router.post("", status_code=201)
def create_clinic(
        payload: ClinicCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    clinic = run_in_transaction(
        db, lambda s: clinic_service.create_clinic(s, payload, user.id))
    return ok(_clinic_out(clinic), status_code=201)


@router.get("/{clinic_id}")
def get_clinic(
        clinic_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_clinic_out(clinic_service.get_clinic(db, clinic_id)))


@router.put("/{clinic_id}")
def update_clinic(
        clinic_id: int,
        payload: ClinicUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    clinic = run_in_transaction(
        db, lambda s: clinic_service.update_clinic(s, clinic_id, payload, user.id))
    return ok(_clinic_out(clinic))


@router.post("/{clinic_id}/toggle-active")
def toggle_active(
        clinic_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    clinic = run_in_transaction(
        db, lambda s: clinic_service.toggle_clinic_active(s, clinic_id, user.id))
    return ok(_clinic_out(clinic))
