"""
Tests for invoice derivation, manual invoices and payments.
"""

from decimal import Decimal

import pytest

from clinicmis.models.billing import Billing, PaymentMethod, PaymentStatus
from clinicmis.models.pharmacy import Dispensing, Drug
from clinicmis.models.prescription import PrescriptionStatus
from clinicmis.schemas.billing import BillingCreate
from clinicmis.schemas.pharmacy import DispenseItemIn
from clinicmis.services.billing import (
    create_billing,
    generate_billing,
    record_payment,
)
from clinicmis.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clinicmis.services.fulfillment import dispense_and_bill
from clinicmis.services.pharmacy import dispense_prescription
from clinicmis.services.prescriptions import cancel_prescription
from clinicmis.services.unit_of_work import run_in_transaction


def _generate(db, rx_id, fee=0):
    return run_in_transaction(db, lambda s: generate_billing(s, rx_id, fee))


def _dispense_all(db, rx, pharmacist, overrides=None):
    overrides = overrides or {}
    lines = [
        DispenseItemIn(
            prescription_item_id=it.id,
            drug_id=it.drug_id,
            quantity_to_dispense=overrides.get(it.id, it.quantity),
            unit_price=it.unit_price,
        ) for it in rx.items
    ]
    run_in_transaction(
        db, lambda s: dispense_prescription(s, rx.id, lines, pharmacist.id))


# ============================================
# generate_billing
# ============================================


class TestGenerateBilling:
    def test_medication_plus_consultation(self, db, make_drug, make_prescription,
                                          pharmacist, today_str):
        """A (2.00 x 3) + B (5.00 x 1) = 11.00; with a 20 fee the total is 31.00."""
        a = make_drug("A", "2.00", stock=10)
        b = make_drug("B", "5.00", stock=10)
        rx = make_prescription([(a, 3), (b, 1)])
        _dispense_all(db, rx, pharmacist)

        billing = _generate(db, rx.id, 20)

        assert billing.medication_cost == Decimal("11.00")
        assert billing.consultation_fee == Decimal("20.00")
        assert billing.total_amount == Decimal("31.00")
        assert billing.payment_status == PaymentStatus.PENDING
        assert billing.invoice_number == f"INV-{today_str}-0001"
        assert billing.balance_due == Decimal("31.00")

    def test_uses_dispensed_quantity(self, db, make_drug, make_prescription,
                                     pharmacist):
        drug = make_drug("A", "2.50", stock=10)
        rx = make_prescription([(drug, 4)])
        _dispense_all(db, rx, pharmacist, overrides={rx.items[0].id: 2})

        assert _generate(db, rx.id).medication_cost == Decimal("5.00")

    def test_falls_back_to_prescribed_quantity(self, db, make_drug,
                                               make_prescription):
        drug = make_drug("A", "1.25", stock=10)
        rx = make_prescription([(drug, 3)])
        # not dispensed: quantity_dispensed is null
        assert _generate(db, rx.id).medication_cost == Decimal("3.75")

    def test_rounds_half_up(self, db, make_drug, make_prescription):
        drug = make_drug("A", "1.00", stock=10)
        rx = make_prescription([(drug, 1)])
        billing = _generate(db, rx.id, Decimal("0.005"))
        assert billing.consultation_fee == Decimal("0.01")
        assert billing.total_amount == Decimal("1.01")

    def test_idempotent(self, db, make_drug, make_prescription, pharmacist):
        drug = make_drug(stock=10)
        rx = make_prescription([(drug, 2)])
        _dispense_all(db, rx, pharmacist)

        first = _generate(db, rx.id, 20)
        first_id, first_total = first.id, first.total_amount
        stock = db.get(Drug, drug.id).quantity_in_stock
        ledger = db.query(Dispensing).count()

        second = _generate(db, rx.id, 99)

        assert second.id == first_id
        assert second.total_amount == first_total
        assert db.query(Billing).count() == 1
        assert db.get(Drug, drug.id).quantity_in_stock == stock
        assert db.query(Dispensing).count() == ledger

    def test_existing_found_after_session_reset(self, db, make_drug,
                                            make_prescription):
        drug = make_drug(stock=10)
        rx = make_prescription([(drug, 2)])
        first = _generate(db, rx.id)
        db.expunge_all()
        assert _generate(db, rx.id).id == first.id

    def test_unknown_prescription(self, db):
        with pytest.raises(NotFoundError):
            _generate(db, 12345)


# ============================================
# create_billing
# ============================================


class TestCreateBilling:
    def test_totals(self, db, patient):
        billing = run_in_transaction(
            db, lambda s: create_billing(
                s,
                BillingCreate(patient_id=patient.id,
                              consultation_fee=Decimal("50"),
                              other_charges=Decimal("10"),
                              discount=Decimal("5"),
                              tax=Decimal("2.50"))))
        assert billing.total_amount == Decimal("57.50")
        assert billing.sub_total == Decimal("60.00")
        assert billing.grand_total == Decimal("57.50")

    def test_unknown_patient(self, db):
        with pytest.raises(NotFoundError):
            run_in_transaction(
                db, lambda s: create_billing(s, BillingCreate(patient_id=404)))

    def test_second_invoice_for_prescription_rejected(self, db, patient, make_drug,
                                                      make_prescription):
        drug = make_drug(stock=10)
        rx = make_prescription([(drug, 1)])
        _generate(db, rx.id)
        with pytest.raises(InvalidStateError):
            run_in_transaction(
                db, lambda s: create_billing(
                    s, BillingCreate(patient_id=patient.id,
                                     prescription_id=rx.id)))


# ============================================
# record_payment
# ============================================


@pytest.fixture
def invoice(db, patient):
    return run_in_transaction(
        db, lambda s: create_billing(
            s,
            BillingCreate(patient_id=patient.id,
                          consultation_fee=Decimal("100"),
                          notes="Initial")))


def _pay(db, billing_id, amount, notes=None):
    return run_in_transaction(
        db, lambda s: record_payment(s, billing_id, Decimal(amount),
                                     PaymentMethod.CASH, notes))


class TestRecordPayment:
    def test_partial_then_full(self, db, invoice):
        billing = _pay(db, invoice.id, "40", notes="First instalment")
        assert billing.payment_status == PaymentStatus.PARTIALLY_PAID
        assert billing.balance_due == Decimal("60.00")
        assert billing.notes == "Initial\nFirst instalment"

        billing = _pay(db, invoice.id, "60")
        assert billing.payment_status == PaymentStatus.PAID
        assert billing.is_paid
        assert billing.payment_method == PaymentMethod.CASH
        assert billing.payment_date is not None

    def test_overpayment_rejected(self, db, invoice):
        with pytest.raises(ValidationError, match="balance due"):
            _pay(db, invoice.id, "100.01")
        db.expire_all()
        assert db.get(Billing, invoice.id).amount_paid == Decimal("0")

    def test_non_positive_rejected(self, db, invoice):
        with pytest.raises(ValidationError):
            _pay(db, invoice.id, "0")

    def test_paid_invoice_rejected(self, db, invoice):
        _pay(db, invoice.id, "100")
        with pytest.raises(InvalidStateError):
            _pay(db, invoice.id, "1")

    def test_unknown_invoice(self, db):
        with pytest.raises(NotFoundError):
            _pay(db, 999, "1")


# ============================================
# BILLING ONLY AFTER DISPENSING
# ============================================


def _generate_dispensed(db, rx_id, fee=0):
    return run_in_transaction(
        db, lambda s: generate_billing(s, rx_id, fee, require_dispensed=True))


class TestBillingRequiresDispensed:
    @pytest.mark.parametrize("status", [
        PrescriptionStatus.DRAFT,
        PrescriptionStatus.SENT_TO_PHARMACY,
        PrescriptionStatus.CANCELLED,
    ])
    def test_rejected_before_dispensing(self, db, make_drug, make_prescription,
                                        status):
        rx = make_prescription([(make_drug(stock=10), 4)], status=status)

        with pytest.raises(InvalidStateError, match="before it is dispensed"):
            _generate_dispensed(db, rx.id, 20)

        db.expire_all()
        assert db.query(Billing).all() == []

    def test_cancelled_through_service(self, db, make_drug, make_prescription):
        rx = make_prescription([(make_drug(stock=10), 1)])
        run_in_transaction(db, lambda s: cancel_prescription(s, rx.id))

        with pytest.raises(InvalidStateError):
            _generate_dispensed(db, rx.id)

    def test_early_attempt_does_not_freeze_partial_dispense(
            self, db, make_drug, make_prescription, pharmacist):
        """4 prescribed @ 2.00, 1 dispensed with a 20 fee: billed 2.00 + 20."""
        drug = make_drug("A", "2.00", stock=10)
        rx = make_prescription([(drug, 4)])

        with pytest.raises(InvalidStateError):
            _generate_dispensed(db, rx.id)

        lines = [
            DispenseItemIn(prescription_item_id=rx.items[0].id, drug_id=drug.id,
                           quantity_to_dispense=1, unit_price=Decimal("2.00"))
        ]
        result = dispense_and_bill(db, rx.id, lines, pharmacist.id,
                                   consultation_fee=Decimal("20"))

        assert result.billing.medication_cost == Decimal("2.00")
        assert result.billing.consultation_fee == Decimal("20.00")
        assert result.billing.total_amount == Decimal("22.00")

    def test_allowed_once_dispensed(self, db, make_drug, make_prescription,
                                    pharmacist):
        drug = make_drug("A", "2.00", stock=10)
        rx = make_prescription([(drug, 3)])
        _dispense_all(db, rx, pharmacist, overrides={rx.items[0].id: 2})

        billing = _generate_dispensed(db, rx.id, 5)
        assert billing.total_amount == Decimal("9.00")

    def test_manual_invoice_for_undispensed_prescription(self, db, patient,
                                                         make_drug,
                                                         make_prescription):
        rx = make_prescription([(make_drug(stock=10), 1)])
        with pytest.raises(InvalidStateError, match="before it is dispensed"):
            run_in_transaction(
                db, lambda s: create_billing(
                    s, BillingCreate(patient_id=patient.id,
                                     prescription_id=rx.id)))
