# FILE: clinicmis/api/routes_visits.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_user, get_db, require_roles
from clinicmis.models.staff import StaffRole
from clinicmis.models.user import User
from clinicmis.schemas.visit import ConsultationIn, VisitCreate, VisitOut
from clinicmis.services import visits as visit_service
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/visits", tags=["Visits"])

CLINICAL = (StaffRole.DOCTOR, StaffRole.NURSE)


def _visit_out(v) -> dict:
    return VisitOut.model_validate(v).model_dump()


@router.post("", status_code=201)
def create_visit(
        payload: VisitCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(StaffRole.RECEPTIONIST, *CLINICAL)),
):
    visit = run_in_transaction(
        db, lambda s: visit_service.create_visit(s, payload, user.id))
    return ok(_visit_out(visit), status_code=201)


@router.get("/{visit_id}")
def get_visit(
        visit_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_visit_out(visit_service.get_visit(db, visit_id)))


@router.post("/{visit_id}/check-in")
def check_in(
        visit_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(StaffRole.RECEPTIONIST, *CLINICAL)),
):
    visit = run_in_transaction(
        db, lambda s: visit_service.check_in(s, visit_id, user.id))
    return ok(_visit_out(visit))


@router.post("/{visit_id}/consultation")
def record_consultation(
        visit_id: int,
        payload: ConsultationIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*CLINICAL)),
):
    visit = run_in_transaction(
        db, lambda s: visit_service.record_consultation(
            s, visit_id, payload, user.id))
    return ok(_visit_out(visit))


@router.post("/{visit_id}/complete")
def complete_visit(
        visit_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*CLINICAL)),
):
    visit = run_in_transaction(
        db, lambda s: visit_service.complete_visit(s, visit_id, user.id))
    return ok(_visit_out(visit))
