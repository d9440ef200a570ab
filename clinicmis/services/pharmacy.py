# FILE: clinicmis/services/pharmacy.py
"""
Pharmacy: drug master, stock, queue and dispensing.

Nothing here commits. Callers wrap these in
:func:`clinicmis.services.unit_of_work.run_in_transaction`.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from clinicmis.core.config import settings
from clinicmis.models.patient import Patient
from clinicmis.models.pharmacy import Drug, Dispensing
from clinicmis.models.prescription import (
    DISPENSABLE_STATUSES,
    Prescription,
    PrescriptionItem,
    PrescriptionStatus,
)
from clinicmis.models.mixins import touch
from clinicmis.schemas.pharmacy import (
    DispenseItemIn,
    DispenseSheetLine,
    DispenseSheetOut,
    DrugCreate,
    DrugUpdate,
    PharmacyQueueOut,
    QueueEntry,
)
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinicmis.services.id_gen import generate_dispensing_number
from clinicmis.utils.timezone import now_local, today_local

logger = logging.getLogger(__name__)


def _enum_value(x):
    return x.value if hasattr(x, "value") else x


# ---------- Drugs ----------


def get_drug(db: Session, drug_id: int) -> Drug:
    drug = db.get(Drug, drug_id)
    if not drug:
        raise NotFoundError(f"Drug with ID {drug_id} not found")
    return drug


def _lock_drug(db: Session, drug_id: int) -> Optional[Drug]:
    return (db.query(Drug).filter(Drug.id == drug_id).with_for_update().
            populate_existing().one_or_none())


def create_drug(db: Session, data: DrugCreate,
                user_id: Optional[int] = None) -> Drug:
    code = data.drug_code.strip()
    exists = (db.query(Drug.id).filter(Drug.drug_code == code).
              execution_options(include_deleted=True).first())
    if exists:
        raise ValidationError(f"Drug code '{code}' already exists")

    drug = Drug(**data.model_dump(exclude={"drug_code"}),
                drug_code=code,
                created_by=user_id)
    db.add(drug)
    db.flush()
    log_audit(db, user_id, "drugs", drug.id, "CREATE",
              new_values=data.model_dump())
    logger.info("Drug %s created (%s)", drug.drug_code, drug.id)
    return drug


def update_drug(db: Session, drug_id: int, data: DrugUpdate,
                user_id: Optional[int] = None) -> Drug:
    """
    Master edit guarded by the version counter. Stock is not editable here;
    use adjust_stock.
    """
    drug = get_drug(db, drug_id)
    if drug.version != data.version:
        raise InvalidStateError("The record was modified by another user.",
                                kind="concurrent_update")

    changes = data.model_dump(exclude_unset=True, exclude={"version"})
    old_values = {k: getattr(drug, k) for k in changes}
    for field, value in changes.items():
        setattr(drug, field, value)
    touch(drug, user_id)
    db.flush()

    log_audit(db, user_id, "drugs", drug.id, "UPDATE",
              old_values=old_values, new_values=changes)
    return drug


def adjust_stock(
    db: Session,
    drug_id: int,
    quantity_change: int,
    reason: str,
    pharmacist_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Drug:
    drug = _lock_drug(db, drug_id)
    if not drug:
        raise NotFoundError(f"Drug with ID {drug_id} not found")

    before = drug.quantity_in_stock or 0
    after = before + quantity_change
    if after < 0:
        raise InsufficientStockError("Stock cannot be negative")

    drug.quantity_in_stock = after
    touch(drug, user_id)
    db.flush()

    log_audit(
        db,
        user_id,
        "drugs",
        drug.id,
        "STOCK_ADJUST",
        old_values={"quantity_in_stock": before},
        new_values={
            "quantity_in_stock": after,
            "quantity_change": quantity_change,
            "reason": reason,
            "pharmacist_id": pharmacist_id,
        },
    )
    logger.info("Stock for drug %s adjusted %+d (%s -> %s): %s", drug.id,
                quantity_change, before, after, reason)
    return drug


def low_stock_drugs(db: Session) -> List[Drug]:
    """Active drugs at/below reorder level or expiring within the warning window."""
    horizon = today_local() + timedelta(days=settings.EXPIRY_WARNING_DAYS)
    return (db.query(Drug).filter(
        Drug.is_active.is_(True),
        or_(
            Drug.quantity_in_stock <= Drug.reorder_level,
            Drug.expiry_date <= horizon,
        ),
    ).order_by(
        Drug.quantity_in_stock.asc(),
        Drug.expiry_date.is_(None).asc(),
        Drug.expiry_date.asc(),
    ).all())


# ---------- Queue / sheet ----------


def _queue_entry(rx: Prescription) -> QueueEntry:
    return QueueEntry(
        id=rx.id,
        prescription_number=rx.prescription_number,
        patient_name=rx.patient.full_name if rx.patient else "",
        patient_clinic_number=rx.patient.clinic_number if rx.patient else "",
        doctor_name=rx.doctor.display_title if rx.doctor else "",
        status=_enum_value(rx.status),
        item_count=len(rx.items),
        prescription_date=rx.prescription_date,
        sent_to_pharmacy_at=rx.sent_to_pharmacy_at,
    )


def pharmacy_queue(db: Session, search: Optional[str] = None) -> PharmacyQueueOut:
    q = (db.query(Prescription).join(
        Patient, Prescription.patient_id == Patient.id).options(
            joinedload(Prescription.patient),
            joinedload(Prescription.doctor),
            selectinload(Prescription.items),
        ).filter(
            Prescription.status.in_([
                PrescriptionStatus.SENT_TO_PHARMACY,
                PrescriptionStatus.PROCESSING,
                PrescriptionStatus.READY_FOR_PICKUP,
            ])))

    if search and search.strip():
        like = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Prescription.prescription_number.ilike(like),
                Patient.clinic_number.ilike(like),
                Patient.first_name.ilike(like),
                Patient.last_name.ilike(like),
            ))

    rows = q.all()

    def _sent_key(rx: Prescription):
        return rx.sent_to_pharmacy_at or rx.prescription_date

    pending = sorted(
        (r for r in rows if r.status == PrescriptionStatus.SENT_TO_PHARMACY),
        key=_sent_key)
    processing = sorted(
        (r for r in rows if r.status == PrescriptionStatus.PROCESSING),
        key=_sent_key)
    ready = sorted(
        (r for r in rows if r.status == PrescriptionStatus.READY_FOR_PICKUP),
        key=_sent_key,
        reverse=True)

    return PharmacyQueueOut(
        pending=[_queue_entry(r) for r in pending],
        processing=[_queue_entry(r) for r in processing],
        ready=[_queue_entry(r) for r in ready],
    )


def _load_prescription(db: Session, prescription_id: int) -> Optional[Prescription]:
    return (db.query(Prescription).options(
        joinedload(Prescription.patient),
        joinedload(Prescription.doctor),
        selectinload(Prescription.items).joinedload(PrescriptionItem.drug),
    ).filter(Prescription.id == prescription_id).first())


def dispense_sheet(db: Session, prescription_id: int) -> DispenseSheetOut:
    """Pre-filled dispense form: every line defaults to the prescribed quantity."""
    rx = _load_prescription(db, prescription_id)
    if not rx:
        raise NotFoundError(f"Prescription with ID {prescription_id} not found")
    if rx.status == PrescriptionStatus.DISPENSED:
        raise InvalidStateError("This prescription has already been dispensed.")

    lines = []
    for it in rx.items:
        drug = it.drug
        lines.append(
            DispenseSheetLine(
                prescription_item_id=it.id,
                drug_id=it.drug_id,
                drug_name=drug.display_name if drug else "Unknown",
                dosage_instructions=it.dosage_instructions,
                prescribed_quantity=it.quantity,
                quantity_to_dispense=it.quantity,
                available_stock=drug.quantity_in_stock if drug else 0,
                unit_price=it.unit_price,
                notes=it.notes,
            ))

    return DispenseSheetOut(
        prescription_id=rx.id,
        prescription_number=rx.prescription_number,
        patient_name=rx.patient.full_name if rx.patient else "",
        patient_clinic_number=rx.patient.clinic_number if rx.patient else "",
        doctor_name=rx.doctor.display_title if rx.doctor else "",
        status=_enum_value(rx.status),
        items=lines,
    )


# ---------- Dispensing ----------


def dispense_prescription(
    db: Session,
    prescription_id: int,
    items: Sequence[DispenseItemIn],
    pharmacist_id: int,
    user_id: Optional[int] = None,
) -> Tuple[Prescription, Optional[str]]:
    """
    Hand out stock against a prescription and flip it to DISPENSED.

    Returns the prescription and the shared dispensing number (None when
    every line had a non-positive quantity). Every check runs before the
    first mutation, so a failure leaves stock, ledger and status untouched
    even before the surrounding transaction rolls back.
    """
    rx = (db.query(Prescription).filter(
        Prescription.id == prescription_id).with_for_update().
          populate_existing().one_or_none())
    if not rx:
        logger.error("Dispense: prescription %s not found", prescription_id)
        raise NotFoundError(f"Prescription with ID {prescription_id} not found")

    if rx.status == PrescriptionStatus.DISPENSED:
        raise InvalidStateError("This prescription has already been dispensed.")
    if rx.status not in DISPENSABLE_STATUSES:
        raise InvalidStateError(
            f"Prescription {rx.prescription_number} cannot be dispensed "
            f"in status {_enum_value(rx.status)}.")
    if not items:
        raise ValidationError("No items to dispense")

    rx_items: Dict[int, PrescriptionItem] = {it.id: it for it in rx.items}

    # ---- pass 1: lock + validate ----
    eligible: List[Tuple[DispenseItemIn, Drug, Optional[PrescriptionItem]]] = []
    drugs: "OrderedDict[int, Drug]" = OrderedDict()
    requested: Dict[int, int] = {}
    seen_items = set()

    for line in items:
        qty = int(line.quantity_to_dispense or 0)
        if qty <= 0:
            continue

        drug = drugs.get(line.drug_id)
        if drug is None:
            drug = _lock_drug(db, line.drug_id)
            if not drug:
                logger.error("Dispense %s: drug %s not found",
                             rx.prescription_number, line.drug_id)
                raise NotFoundError(f"Drug with ID {line.drug_id} not found")
            drugs[drug.id] = drug

        requested[drug.id] = requested.get(drug.id, 0) + qty
        available = drug.quantity_in_stock or 0
        if available < requested[drug.id]:
            raise InsufficientStockError(
                f"Insufficient stock for {drug.display_name}. "
                f"Available: {available}, Requested: {requested[drug.id]}")

        rx_item = None
        if line.prescription_item_id:
            rx_item = rx_items.get(line.prescription_item_id)
            if rx_item is None:
                raise InvalidStateError(
                    f"Prescription item {line.prescription_item_id} does not "
                    f"belong to prescription {rx.prescription_number}.")
            if rx_item.id in seen_items:
                raise ValidationError(
                    f"Prescription item {rx_item.id} is listed more than once")
            if rx_item.drug_id != drug.id:
                raise ValidationError(
                    f"Prescription item {rx_item.id} was prescribed drug "
                    f"{rx_item.drug_id}, not {drug.id}")
            seen_items.add(rx_item.id)

        eligible.append((line, drug, rx_item))

    # ---- pass 2: mutate ----
    dispensing_number = None
    if eligible:
        dispensing_number = generate_dispensing_number(db)

    dispensed_at = now_local()
    for line_no, (line, drug, rx_item) in enumerate(eligible, start=1):
        qty = int(line.quantity_to_dispense)
        before = drug.quantity_in_stock or 0
        drug.quantity_in_stock = before - qty
        touch(drug, user_id)

        if rx_item is not None:
            rx_item.quantity_dispensed = qty

        db.add(
            Dispensing(
                dispensing_number=dispensing_number,
                line_no=line_no,
                prescription_id=rx.id,
                prescription_item_id=rx_item.id if rx_item else None,
                drug_id=drug.id,
                pharmacist_id=pharmacist_id,
                dispensing_date=dispensed_at,
                quantity=qty,
                unit_price=line.unit_price,
                stock_before=before,
                stock_after=before - qty,
                notes=line.notes,
            ))

    old_status = _enum_value(rx.status)
    rx.status = PrescriptionStatus.DISPENSED
    rx.dispensed_at = dispensed_at
    rx.dispensed_by_staff_id = pharmacist_id
    touch(rx, user_id)
    db.flush()

    log_audit(
        db,
        user_id,
        "prescriptions",
        rx.id,
        "DISPENSE",
        old_values={"status": old_status},
        new_values={
            "status": PrescriptionStatus.DISPENSED.value,
            "dispensing_number": dispensing_number,
            "lines": len(eligible),
            "pharmacist_id": pharmacist_id,
        },
    )
    logger.info("Prescription %s dispensed (%s, %s line(s)) by staff %s",
                rx.prescription_number, dispensing_number, len(eligible),
                pharmacist_id)
    return rx, dispensing_number


def dispensings_for_prescription(db: Session, prescription_id: int) -> List[Dispensing]:
    """Stock ledger rows written while dispensing a prescription."""
    if not db.get(Prescription, prescription_id):
        raise NotFoundError(f"Prescription with ID {prescription_id} not found")
    return (db.query(Dispensing).filter(
        Dispensing.prescription_id == prescription_id).order_by(
            Dispensing.dispensing_number, Dispensing.line_no).all())
