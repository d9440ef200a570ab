"""
Tests for patients, visits, staff and clinics, plus the soft-delete read filter.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from clinicmis.models.audit import AuditLog
from clinicmis.models.patient import Patient
from clinicmis.models.staff import Staff, StaffRole
from clinicmis.models.user import User
from clinicmis.models.visit import VisitStatus
from clinicmis.schemas.clinic import ClinicCreate, ClinicUpdate
from clinicmis.schemas.patient import PatientCreate, PatientUpdate
from clinicmis.schemas.staff import StaffCreate, StaffUpdate
from clinicmis.schemas.visit import ConsultationIn, VisitCreate
from clinicmis.services import clinics as clinic_service
from clinicmis.services import patients as patient_service
from clinicmis.services import staff as staff_service
from clinicmis.services import visits as visit_service
from clinicmis.services.errors import (
    InvalidStateError,
    NotFoundError,
    StaffNotLinkedError,
    ValidationError,
)
from clinicmis.services.unit_of_work import run_in_transaction

# ============================================
# PATIENTS
# ============================================


class TestPatients:
    def test_register_assigns_clinic_number(self, db):
        patient = run_in_transaction(
            db, lambda s: patient_service.register_patient(
                s,
                PatientCreate(first_name="Mary", last_name="Major",
                              date_of_birth=date(2000, 1, 1), gender="Female",
                              phone_number="555-0001", address="2 Side St")))
        assert patient.clinic_number.startswith("CLN-")
        assert patient.clinic_number.endswith("-00001")
        assert patient.full_name == "Mary Major"
        assert patient.age >= 20

    def test_future_birth_date(self, db):
        with pytest.raises(ValidationError):
            run_in_transaction(
                db, lambda s: patient_service.register_patient(
                    s,
                    PatientCreate(first_name="A", last_name="B",
                                  date_of_birth=date(2999, 1, 1), gender="Male",
                                  phone_number="555", address="x")))

    def test_update_is_audited(self, db, patient):
        run_in_transaction(
            db, lambda s: patient_service.update_patient(
                s, patient.id, PatientUpdate(city="Springfield"), 7))
        entry = (db.query(AuditLog).filter(AuditLog.action == "UPDATE",
                                           AuditLog.table_name == "patients").one())
        assert entry.user_id == 7
        assert entry.new_values == {"city": "Springfield"}


class TestSoftDelete:
    def test_deleted_patient_hidden_from_reads(self, db, patient):
        run_in_transaction(
            db, lambda s: patient_service.delete_patient(s, patient.id, 3))
        db.expunge_all()

        assert db.query(Patient).all() == []
        with pytest.raises(NotFoundError):
            patient_service.get_patient(db, patient.id)

        row = (db.query(Patient).execution_options(include_deleted=True).one())
        assert row.is_deleted
        assert row.deleted_by == 3
        assert row.deleted_at is not None

    def test_deleted_patient_keeps_clinic_number_reserved(self, db, patient,
                                                          make_patient):
        run_in_transaction(
            db, lambda s: patient_service.delete_patient(s, patient.id))
        newcomer = make_patient(first_name="Late")
        assert newcomer.clinic_number.endswith("-00002")

    def test_relationship_loads_filtered(self, db, patient, make_drug,
                                         make_prescription):
        rx = make_prescription([(make_drug(), 1)])
        rx.items[0].mark_deleted()
        db.commit()
        db.expunge_all()

        reloaded = (db.query(type(rx)).filter_by(id=rx.id).one())
        assert reloaded.items == []


# ============================================
# VISITS
# ============================================


@pytest.fixture
def visit(db, patient, doctor, make_clinic):
    clinic = make_clinic()
    return run_in_transaction(
        db, lambda s: visit_service.create_visit(
            s,
            VisitCreate(patient_id=patient.id, clinic_id=clinic.id,
                        doctor_id=doctor.id, reason_for_visit="Cough")))


class TestVisits:
    def test_create_scheduled(self, visit, today_str):
        assert visit.visit_number == f"VIS-{today_str}-0001"
        assert visit.status == VisitStatus.SCHEDULED

    def test_number_follows_visit_date(self, db, patient, make_clinic):
        clinic = make_clinic("Cardiology")
        v = run_in_transaction(
            db, lambda s: visit_service.create_visit(
                s,
                VisitCreate(patient_id=patient.id, clinic_id=clinic.id,
                            visit_date=datetime(2024, 1, 15, 9, 30))))
        assert v.visit_number == "VIS-20240115-0001"

    def test_full_flow(self, db, visit):
        v = run_in_transaction(db, lambda s: visit_service.check_in(s, visit.id))
        assert v.status == VisitStatus.CHECKED_IN
        assert v.check_in_time is not None

        v = run_in_transaction(
            db, lambda s: visit_service.record_consultation(
                s, visit.id,
                ConsultationIn(diagnosis="Viral URTI", blood_pressure="120/80",
                               temperature=Decimal("37.8"), pulse_rate=88)))
        assert v.status == VisitStatus.IN_PROGRESS
        assert v.diagnosis == "Viral URTI"
        assert v.temperature == Decimal("37.8")

        v = run_in_transaction(db, lambda s: visit_service.complete_visit(s, visit.id))
        assert v.status == VisitStatus.COMPLETED
        assert v.check_out_time is not None

    def test_consultation_requires_check_in(self, db, visit):
        with pytest.raises(InvalidStateError):
            run_in_transaction(
                db, lambda s: visit_service.record_consultation(
                    s, visit.id, ConsultationIn(diagnosis="x")))

    def test_follow_up_needs_date(self, db, visit):
        run_in_transaction(db, lambda s: visit_service.check_in(s, visit.id))
        with pytest.raises(ValidationError):
            run_in_transaction(
                db, lambda s: visit_service.record_consultation(
                    s, visit.id, ConsultationIn(follow_up_required=True)))

    def test_unknown_clinic(self, db, patient):
        with pytest.raises(NotFoundError):
            run_in_transaction(
                db, lambda s: visit_service.create_visit(
                    s, VisitCreate(patient_id=patient.id, clinic_id=99)))


# ============================================
# STAFF
# ============================================


def _staff_payload(**kw):
    data = dict(first_name="Nina", last_name="Nurse", role=StaffRole.NURSE,
                phone_number="555-0123", email="nina@clinic.test")
    data.update(kw)
    return StaffCreate(**data)


class TestStaff:
    def test_create_assigns_employee_number(self, db):
        staff = run_in_transaction(
            db, lambda s: staff_service.create_staff(s, _staff_payload()))
        assert staff.employee_number == "EMP-0001"
        assert staff.display_title == "Nina Nurse"

    def test_doctor_title(self, db):
        staff = run_in_transaction(
            db, lambda s: staff_service.create_staff(
                s, _staff_payload(role=StaffRole.DOCTOR, last_name="Who")))
        assert staff.display_title == "Dr. Nina Who"

    def test_duplicate_email(self, db):
        run_in_transaction(db, lambda s: staff_service.create_staff(s, _staff_payload()))
        with pytest.raises(ValidationError, match="already exists"):
            run_in_transaction(
                db, lambda s: staff_service.create_staff(
                    s, _staff_payload(email="NINA@clinic.test")))

    def test_link_and_resolve(self, db, make_user, make_staff):
        user = make_user("pharm@clinic.test")
        staff = make_staff(StaffRole.PHARMACIST)

        with pytest.raises(StaffNotLinkedError) as exc:
            staff_service.resolve_staff_for_user(db, user)
        assert "not linked to a staff record" in exc.value.message
        assert exc.value.status_code == 403

        run_in_transaction(
            db, lambda s: staff_service.link_user(s, staff.id, user.id))
        assert staff_service.resolve_staff_for_user(db, user).id == staff.id

    def test_user_linked_once(self, db, make_user, make_staff):
        user = make_user()
        first = make_staff(StaffRole.NURSE, user=user)
        second = make_staff(StaffRole.NURSE)
        assert first.user_id == user.id
        with pytest.raises(InvalidStateError):
            run_in_transaction(
                db, lambda s: staff_service.link_user(s, second.id, user.id))

    def test_update(self, db, make_staff, make_clinic):
        staff = make_staff(StaffRole.NURSE)
        clinic = make_clinic("Pediatrics")
        updated = run_in_transaction(
            db, lambda s: staff_service.update_staff(
                s, staff.id,
                StaffUpdate(role=StaffRole.DOCTOR, specialization="Pediatrics",
                            clinic_id=clinic.id), 1))
        assert updated.display_title.startswith("Dr. ")
        assert updated.clinic_id == clinic.id

        entry = (db.query(AuditLog).filter(AuditLog.table_name == "staff",
                                           AuditLog.action == "UPDATE").one())
        assert entry.old_values["role"] == "NURSE"

    def test_update_unknown_clinic(self, db, make_staff):
        staff = make_staff(StaffRole.NURSE)
        with pytest.raises(NotFoundError):
            run_in_transaction(
                db, lambda s: staff_service.update_staff(
                    s, staff.id, StaffUpdate(clinic_id=99)))

    def test_deactivated_pharmacist_cannot_act(self, db, make_user, make_staff):
        user = make_user("pharm@clinic.test")
        staff = make_staff(StaffRole.PHARMACIST, user=user)

        run_in_transaction(
            db, lambda s: staff_service.set_staff_active(s, staff.id, False))

        db.expire_all()
        assert not db.get(User, user.id).is_active
        with pytest.raises(StaffNotLinkedError):
            staff_service.resolve_staff_for_user(db, user)

        run_in_transaction(
            db, lambda s: staff_service.set_staff_active(s, staff.id, True))
        db.expire_all()
        assert db.get(User, user.id).is_active
        assert staff_service.resolve_staff_for_user(db, user).id == staff.id

    def test_delete_releases_login(self, db, make_user, make_staff):
        user = make_user()
        staff = make_staff(StaffRole.RECEPTIONIST, user=user)

        run_in_transaction(db, lambda s: staff_service.delete_staff(s, staff.id, 1))
        db.expunge_all()

        with pytest.raises(NotFoundError):
            staff_service.get_staff(db, staff.id)
        row = (db.query(Staff).execution_options(include_deleted=True).filter(
            Staff.id == staff.id).one())
        assert row.is_deleted and not row.is_active
        assert row.user_id is None
        assert not db.get(User, user.id).is_active

    def test_delete_blocked_by_prescriptions(self, db, doctor, make_drug,
                                             make_prescription):
        make_prescription([(make_drug(), 1)])
        with pytest.raises(InvalidStateError, match="Consider deactivating"):
            run_in_transaction(
                db, lambda s: staff_service.delete_staff(s, doctor.id))


# ============================================
# CLINICS
# ============================================


def _new_clinic(db, name="Dermatology", **kw):
    return run_in_transaction(
        db, lambda s: clinic_service.create_clinic(
            s, ClinicCreate(name=name, **kw), 1))


class TestClinics:
    def test_create(self, db):
        clinic = _new_clinic(db, location="Building D")
        assert clinic.is_active
        assert clinic.location == "Building D"

    def test_duplicate_name(self, db):
        _new_clinic(db)
        with pytest.raises(ValidationError, match="already exists"):
            _new_clinic(db)

    def test_update_name_clash(self, db):
        _new_clinic(db, "Dermatology")
        other = _new_clinic(db, "Radiology")
        with pytest.raises(ValidationError):
            run_in_transaction(
                db, lambda s: clinic_service.update_clinic(
                    s, other.id, ClinicUpdate(name="Dermatology")))

        renamed = run_in_transaction(
            db, lambda s: clinic_service.update_clinic(
                s, other.id, ClinicUpdate(name="Imaging", contact_phone="555")))
        assert renamed.name == "Imaging"
        assert renamed.contact_phone == "555"

    def test_toggle_active(self, db, patient):
        clinic = _new_clinic(db)
        run_in_transaction(
            db, lambda s: clinic_service.toggle_clinic_active(s, clinic.id))
        assert [c.id for c in clinic_service.list_clinics(db, active_only=True)] == []

        # inactive clinics take no new visits
        with pytest.raises(NotFoundError):
            run_in_transaction(
                db, lambda s: visit_service.create_visit(
                    s, VisitCreate(patient_id=patient.id, clinic_id=clinic.id)))

        clinic = run_in_transaction(
            db, lambda s: clinic_service.toggle_clinic_active(s, clinic.id))
        assert clinic.is_active
