"""
Tests for drug master, stock adjustment, low stock alerts, queue and dispense sheet.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from clinicmis.models.audit import AuditLog
from clinicmis.models.pharmacy import Drug
from clinicmis.models.prescription import PrescriptionStatus
from clinicmis.schemas.pharmacy import DrugCreate, DrugUpdate
from clinicmis.services import pharmacy as pharmacy_service
from clinicmis.services.errors import (
    ConstraintConflictError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinicmis.services.unit_of_work import run_in_transaction
from clinicmis.utils.timezone import today_local


def _create(db, **kw):
    data = dict(drug_code="PCM-500", name="Paracetamol", strength="500mg",
                unit_price=Decimal("2.00"), quantity_in_stock=10)
    data.update(kw)
    return run_in_transaction(
        db, lambda s: pharmacy_service.create_drug(s, DrugCreate(**data), 1))


# ============================================
# DRUG MASTER
# ============================================


class TestDrugMaster:
    def test_create_and_derived_fields(self, db):
        drug = _create(db, reorder_level=20)
        assert drug.version == 1
        assert drug.display_name == "Paracetamol (500mg)"
        assert drug.is_low_stock
        assert not drug.is_expired

    def test_duplicate_code(self, db):
        _create(db)
        with pytest.raises(ValidationError, match="already exists"):
            _create(db, name="Other")

    def test_update_bumps_version(self, db):
        drug = _create(db)
        updated = run_in_transaction(
            db, lambda s: pharmacy_service.update_drug(
                s, drug.id, DrugUpdate(version=1, unit_price=Decimal("2.50"))))
        assert updated.unit_price == Decimal("2.50")
        assert updated.version == 2

    def test_stale_version_rejected(self, db):
        drug = _create(db)
        run_in_transaction(
            db, lambda s: pharmacy_service.update_drug(
                s, drug.id, DrugUpdate(version=1, name="Panadol")))

        with pytest.raises(InvalidStateError,
                           match="modified by another user"):
            run_in_transaction(
                db, lambda s: pharmacy_service.update_drug(
                    s, drug.id, DrugUpdate(version=1, name="Tylenol")))

        db.expire_all()
        assert db.get(Drug, drug.id).name == "Panadol"

    def test_concurrent_flush_detected_by_version_column(self, db,
                                                         session_factory):
        drug = _create(db)
        other = session_factory()
        try:
            mine = other.get(Drug, drug.id)
            # someone else saves first
            db.get(Drug, drug.id).name = "Changed elsewhere"
            db.commit()

            mine.name = "Mine"
            with pytest.raises(ConstraintConflictError) as exc:
                run_in_transaction(other, lambda s: s.flush(), attempts=1)
            assert exc.value.kind == "concurrent_update"
        finally:
            other.close()

    def test_missing_drug(self, db):
        with pytest.raises(NotFoundError):
            pharmacy_service.get_drug(db, 404)


# ============================================
# STOCK ADJUSTMENT
# ============================================


class TestAdjustStock:
    def test_add_and_remove(self, db, make_drug, pharmacist):
        drug = make_drug(stock=10)
        run_in_transaction(
            db, lambda s: pharmacy_service.adjust_stock(
                s, drug.id, 15, "Delivery", pharmacist.id, 1))
        run_in_transaction(
            db, lambda s: pharmacy_service.adjust_stock(
                s, drug.id, -5, "Damaged", pharmacist.id, 1))

        db.expire_all()
        assert db.get(Drug, drug.id).quantity_in_stock == 20

        entries = (db.query(AuditLog).filter(
            AuditLog.action == "STOCK_ADJUST").order_by(AuditLog.id).all())
        assert [e.new_values["reason"] for e in entries] == ["Delivery", "Damaged"]
        assert entries[1].old_values == {"quantity_in_stock": 25}

    def test_cannot_go_negative(self, db, make_drug):
        drug = make_drug(stock=3)
        with pytest.raises(InsufficientStockError, match="Stock cannot be negative"):
            run_in_transaction(
                db, lambda s: pharmacy_service.adjust_stock(s, drug.id, -4, "Count"))
        db.expire_all()
        assert db.get(Drug, drug.id).quantity_in_stock == 3

    def test_unknown_drug(self, db):
        with pytest.raises(NotFoundError):
            run_in_transaction(
                db, lambda s: pharmacy_service.adjust_stock(s, 404, 1, "x"))


# ============================================
# LOW STOCK
# ============================================


class TestLowStock:
    def test_filters_and_orders(self, db, make_drug):
        today = today_local()
        ok_drug = make_drug("Fine", stock=100, reorder_level=10,
                            expiry_date=today + timedelta(days=365))
        low = make_drug("Low", stock=5, reorder_level=10)
        out = make_drug("Out", stock=0, reorder_level=10)
        expiring = make_drug("Expiring", stock=100, reorder_level=10,
                             expiry_date=today + timedelta(days=10))
        expired = make_drug("Expired", stock=100, reorder_level=10,
                            expiry_date=today - timedelta(days=1))
        make_drug("Inactive", stock=0, is_active=False)

        names = [d.name for d in pharmacy_service.low_stock_drugs(db)]

        assert ok_drug.name not in names
        assert "Inactive" not in names
        assert names[:2] == [out.name, low.name]
        # same stock: earlier expiry first
        assert names[2:] == [expired.name, expiring.name]


# ============================================
# QUEUE / DISPENSE SHEET
# ============================================


class TestQueueAndSheet:
    def test_queue_groups(self, db, make_drug, make_prescription):
        drug = make_drug(stock=100)
        pending = make_prescription([(drug, 1)])
        processing = make_prescription([(drug, 1)],
                                       status=PrescriptionStatus.PROCESSING)
        ready = make_prescription([(drug, 1)],
                                  status=PrescriptionStatus.READY_FOR_PICKUP)
        make_prescription([(drug, 1)], status=PrescriptionStatus.DRAFT)
        make_prescription([(drug, 1)], status=PrescriptionStatus.CANCELLED)

        queue = pharmacy_service.pharmacy_queue(db)

        assert [q.id for q in queue.pending] == [pending.id]
        assert [q.id for q in queue.processing] == [processing.id]
        assert [q.id for q in queue.ready] == [ready.id]
        assert queue.pending[0].patient_name == "John Doe"
        assert queue.pending[0].doctor_name == "Dr. Gregory House"
        assert queue.pending[0].item_count == 1

    def test_queue_search(self, db, make_drug, make_prescription, patient):
        drug = make_drug(stock=100)
        rx = make_prescription([(drug, 1)])

        by_name = pharmacy_service.pharmacy_queue(db, "doe")
        by_number = pharmacy_service.pharmacy_queue(db, rx.prescription_number)
        by_clinic_no = pharmacy_service.pharmacy_queue(db, patient.clinic_number)
        miss = pharmacy_service.pharmacy_queue(db, "nobody")

        assert [q.id for q in by_name.pending] == [rx.id]
        assert [q.id for q in by_number.pending] == [rx.id]
        assert [q.id for q in by_clinic_no.pending] == [rx.id]
        assert miss.pending == []

    def test_dispense_sheet_defaults(self, db, make_drug, make_prescription):
        drug = make_drug("Amoxicillin", "3.00", stock=42, strength="250mg")
        rx = make_prescription([(drug, 7)])

        sheet = pharmacy_service.dispense_sheet(db, rx.id)

        assert sheet.prescription_number == rx.prescription_number
        line = sheet.items[0]
        assert line.drug_name == "Amoxicillin (250mg)"
        assert line.prescribed_quantity == 7
        assert line.quantity_to_dispense == 7
        assert line.available_stock == 42
        assert line.unit_price == Decimal("3.00")

    def test_dispense_sheet_unknown(self, db):
        with pytest.raises(NotFoundError):
            pharmacy_service.dispense_sheet(db, 404)
