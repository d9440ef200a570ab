# FILE: clinicmis/api/routes_staff.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_staff, current_user, get_db, require_roles
from clinicmis.models.staff import Staff
from clinicmis.models.user import User
from clinicmis.schemas.staff import LinkUserIn, StaffCreate, StaffOut, StaffUpdate
from clinicmis.services import staff as staff_service
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/staff", tags=["Staff"])


def _staff_out(s) -> dict:
    return StaffOut.model_validate(s).model_dump()


@router.get("/me")
def get_me(staff: Staff = Depends(current_staff)):
    return ok(_staff_out(staff))


@router.post("", status_code=201)
def create_staff(
        payload: StaffCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    staff = run_in_transaction(
        db, lambda s: staff_service.create_staff(s, payload, user.id))
    return ok(_staff_out(staff), status_code=201)


@router.get("/{staff_id}")
def get_staff(
        staff_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_staff_out(staff_service.get_staff(db, staff_id)))


@router.post("/{staff_id}/link-user")
def link_user(
        staff_id: int,
        payload: LinkUserIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    staff = run_in_transaction(
        db, lambda s: staff_service.link_user(s, staff_id, payload.user_id,
                                              user.id))
    return ok(_staff_out(staff))


@router.put("/{staff_id}")
def update_staff(
        staff_id: int,
        payload: StaffUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    staff = run_in_transaction(
        db, lambda s: staff_service.update_staff(s, staff_id, payload, user.id))
    return ok(_staff_out(staff))


@router.post("/{staff_id}/activate")
def activate_staff(
        staff_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    staff = run_in_transaction(
        db, lambda s: staff_service.set_staff_active(s, staff_id, True, user.id))
    return ok(_staff_out(staff))


@router.post("/{staff_id}/deactivate")
def deactivate_staff(
        staff_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    staff = run_in_transaction(
        db, lambda s: staff_service.set_staff_active(s, staff_id, False, user.id))
    return ok(_staff_out(staff))


@router.delete("/{staff_id}")
def delete_staff(
        staff_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles()),
):
    run_in_transaction(
        db, lambda s: staff_service.delete_staff(s, staff_id, user.id))
    return ok({"id": staff_id, "deleted": True})
