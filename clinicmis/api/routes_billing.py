# FILE: clinicmis/api/routes_billing.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_user, get_db, require_roles
from clinicmis.models.staff import StaffRole
from clinicmis.models.user import User
from clinicmis.schemas.billing import BillingCreate, BillingOut, PaymentIn
from clinicmis.services import billing as billing_service
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/billings", tags=["Billing"])

BILLING_ROLES = (StaffRole.RECEPTIONIST, StaffRole.PHARMACIST)


def _billing_out(b) -> dict:
    return BillingOut.model_validate(b).model_dump()


@router.post("", status_code=201)
def create_billing(
        payload: BillingCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*BILLING_ROLES)),
):
    billing = run_in_transaction(
        db, lambda s: billing_service.create_billing(s, payload, user.id))
    return ok(_billing_out(billing), status_code=201)


@router.get("/{billing_id}")
def get_billing(
        billing_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_billing_out(billing_service.get_billing(db, billing_id)))


@router.post("/{billing_id}/payments")
def record_payment(
        billing_id: int,
        payload: PaymentIn,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*BILLING_ROLES)),
):
    billing = run_in_transaction(
        db, lambda s: billing_service.record_payment(
            s, billing_id, payload.amount, payload.payment_method,
            payload.notes, user.id))
    return ok(_billing_out(billing))
