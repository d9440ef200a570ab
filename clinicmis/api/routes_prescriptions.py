# FILE: clinicmis/api/routes_prescriptions.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_user, get_db, require_roles
from clinicmis.models.staff import StaffRole
from clinicmis.models.user import User
from clinicmis.schemas.billing import BillingOut, GenerateBillingIn
from clinicmis.schemas.prescription import PrescriptionCreate, PrescriptionOut
from clinicmis.services import prescriptions as rx_service
from clinicmis.services.billing import generate_billing
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])


def _rx_out(rx) -> dict:
    return PrescriptionOut.model_validate(rx).model_dump()


@router.post("", status_code=201)
def create_prescription(
        payload: PrescriptionCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(StaffRole.DOCTOR)),
):
    rx = run_in_transaction(
        db, lambda s: rx_service.create_prescription(s, payload, user.id))
    return ok(_rx_out(rx), status_code=201)


@router.get("/{prescription_id}")
def get_prescription(
        prescription_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_rx_out(rx_service.get_prescription(db, prescription_id)))


@router.post("/{prescription_id}/send")
def send_to_pharmacy(
        prescription_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(StaffRole.DOCTOR)),
):
    rx = run_in_transaction(
        db, lambda s: rx_service.send_to_pharmacy(s, prescription_id, user.id))
    return ok(_rx_out(rx))


@router.post("/{prescription_id}/process")
def start_processing(
        prescription_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(StaffRole.PHARMACIST)),
):
    rx = run_in_transaction(
        db, lambda s: rx_service.start_processing(s, prescription_id, user.id))
    return ok(_rx_out(rx))


@router.post("/{prescription_id}/cancel")
def cancel_prescription(
        prescription_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(StaffRole.DOCTOR)),
):
    rx = run_in_transaction(
        db,
        lambda s: rx_service.cancel_prescription(s, prescription_id, user.id))
    return ok(_rx_out(rx))


@router.post("/{prescription_id}/billing")
def generate_prescription_billing(
        prescription_id: int,
        payload: GenerateBillingIn,
        db: Session = Depends(get_db),
        user: User = Depends(
            require_roles(StaffRole.PHARMACIST, StaffRole.RECEPTIONIST)),
):
    billing = run_in_transaction(
        db, lambda s: generate_billing(s, prescription_id,
                                       payload.consultation_fee, user.id,
                                       require_dispensed=True))
    return ok(BillingOut.model_validate(billing).model_dump())
