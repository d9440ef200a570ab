# FILE: clinicmis/api/routes_pharmacy.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinicmis.api.deps import current_staff, current_user, get_db, require_roles
from clinicmis.models.staff import Staff, StaffRole
from clinicmis.models.user import User
from clinicmis.schemas.pharmacy import (
    DispenseIn,
    DispenseOut,
    DispensingOut,
    DrugCreate,
    DrugOut,
    DrugUpdate,
    StockAdjustIn,
)
from clinicmis.services import pharmacy as pharmacy_service
from clinicmis.services.fulfillment import dispense_and_bill
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.resp import ok

router = APIRouter(prefix="/pharmacy", tags=["Pharmacy"])

PHARMACY_ROLES = (StaffRole.PHARMACIST, )


def _drug_out(drug) -> dict:
    return DrugOut.model_validate(drug).model_dump()


# ---------- Queue ----------


@router.get("/queue")
def get_queue(
        search: Optional[str] = Query(None, max_length=100),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(pharmacy_service.pharmacy_queue(db, search).model_dump())


# ---------- Drugs ----------


@router.get("/drugs/low-stock")
def get_low_stock(
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok([_drug_out(d) for d in pharmacy_service.low_stock_drugs(db)])


@router.post("/drugs", status_code=201)
def create_drug(
        payload: DrugCreate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*PHARMACY_ROLES)),
):
    drug = run_in_transaction(
        db, lambda s: pharmacy_service.create_drug(s, payload, user.id))
    return ok(_drug_out(drug), status_code=201)


@router.get("/drugs/{drug_id}")
def get_drug(
        drug_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(_drug_out(pharmacy_service.get_drug(db, drug_id)))


@router.put("/drugs/{drug_id}")
def update_drug(
        drug_id: int,
        payload: DrugUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(require_roles(*PHARMACY_ROLES)),
):
    # single attempt: a version clash must reach the user, not be replayed
    drug = run_in_transaction(
        db,
        lambda s: pharmacy_service.update_drug(s, drug_id, payload, user.id),
        attempts=1)
    return ok(_drug_out(drug))


@router.post("/drugs/{drug_id}/adjust-stock")
def adjust_stock(
        drug_id: int,
        payload: StockAdjustIn,
        db: Session = Depends(get_db),
        staff: Staff = Depends(current_staff),
        user: User = Depends(require_roles(*PHARMACY_ROLES)),
):
    drug = run_in_transaction(
        db, lambda s: pharmacy_service.adjust_stock(
            s, drug_id, payload.quantity_change, payload.reason, staff.id,
            user.id))
    return ok(_drug_out(drug))


# ---------- Dispense ----------


@router.get("/prescriptions/{prescription_id}/dispense")
def get_dispense_sheet(
        prescription_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok(pharmacy_service.dispense_sheet(db, prescription_id).model_dump())


@router.post("/prescriptions/{prescription_id}/dispense")
def dispense(
        prescription_id: int,
        payload: DispenseIn,
        db: Session = Depends(get_db),
        staff: Staff = Depends(current_staff),
        user: User = Depends(require_roles(*PHARMACY_ROLES)),
):
    result = dispense_and_bill(
        db,
        prescription_id,
        payload.items,
        pharmacist_id=staff.id,
        consultation_fee=payload.consultation_fee,
        user_id=user.id,
    )
    out = DispenseOut(
        prescription_id=result.prescription.id,
        prescription_number=result.prescription.prescription_number,
        dispensing_number=result.dispensing_number,
        billing_id=result.billing.id,
        invoice_number=result.billing.invoice_number,
        total_amount=result.billing.total_amount,
    )
    return ok(out.model_dump())


@router.get("/prescriptions/{prescription_id}/dispensings")
def get_dispensings(
        prescription_id: int,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    rows = pharmacy_service.dispensings_for_prescription(db, prescription_id)
    return ok([DispensingOut.model_validate(r).model_dump() for r in rows])
