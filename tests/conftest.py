"""
Pytest configuration and shared fixtures for the clinic MIS tests.

Every test gets a fresh in-memory SQLite database (StaticPool keeps the
single connection alive across sessions) with foreign keys enforced.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("DB_RETRY_BACKOFF_SECONDS", "0")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinicmis.db.base import Base
from clinicmis.models.clinic import Clinic
from clinicmis.models.pharmacy import Drug
from clinicmis.models.prescription import PrescriptionStatus
from clinicmis.models.staff import Staff, StaffRole
from clinicmis.models.user import User
from clinicmis.schemas.patient import PatientCreate
from clinicmis.schemas.prescription import PrescriptionCreate, RxItemCreate
from clinicmis.services.patients import register_patient
from clinicmis.services.prescriptions import create_prescription, send_to_pharmacy
from clinicmis.utils.timezone import today_local

# ============================================
# DATABASE
# ============================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(eng, "connect")
    def _fk_on(dbapi_conn, _):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def today_str():
    return today_local().strftime("%Y%m%d")


# ============================================
# FACTORIES
# ============================================


@pytest.fixture
def make_clinic(db):
    def _make(name="General Medicine"):
        clinic = Clinic(name=name, is_active=True)
        db.add(clinic)
        db.commit()
        return clinic

    return _make


@pytest.fixture
def make_staff(db):
    counter = {"n": 0}

    def _make(role=StaffRole.DOCTOR, user=None, first_name="Ada", last_name="Lovelace"):
        counter["n"] += 1
        staff = Staff(
            employee_number=f"EMP-{counter['n']:04d}",
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone_number="555-0100",
            email=f"staff{counter['n']}@clinic.test",
            is_active=True,
            user_id=user.id if user else None,
        )
        db.add(staff)
        db.commit()
        return staff

    return _make


@pytest.fixture
def make_user(db):
    def _make(email="user@clinic.test", is_admin=False, is_active=True):
        user = User(name=email.split("@")[0], email=email,
                    is_admin=is_admin, is_active=is_active)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_patient(db):
    def _make(first_name="John", last_name="Doe"):
        patient = register_patient(
            db,
            PatientCreate(
                first_name=first_name,
                last_name=last_name,
                date_of_birth=date(1985, 5, 20),
                gender="Male",
                phone_number="555-0199",
                address="1 Main Street",
            ))
        db.commit()
        return patient

    return _make


@pytest.fixture
def make_drug(db):
    counter = {"n": 0}

    def _make(name="Paracetamol", unit_price="2.00", stock=100, reorder_level=10,
              strength="500mg", expiry_date=None, is_active=True):
        counter["n"] += 1
        drug = Drug(
            drug_code=f"DRG-{counter['n']:03d}",
            name=name,
            strength=strength,
            unit_price=Decimal(unit_price),
            quantity_in_stock=stock,
            reorder_level=reorder_level,
            expiry_date=expiry_date,
            is_active=is_active,
        )
        db.add(drug)
        db.commit()
        return drug

    return _make


@pytest.fixture
def doctor(make_staff):
    return make_staff(StaffRole.DOCTOR, first_name="Gregory", last_name="House")


@pytest.fixture
def pharmacist(make_staff):
    return make_staff(StaffRole.PHARMACIST, first_name="Pat", last_name="Pills")


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def make_prescription(db, patient, doctor):
    """
    Prescription for `lines` = [(drug, quantity), ...], by default already
    sent to the pharmacy.
    """

    def _make(lines, status=PrescriptionStatus.SENT_TO_PHARMACY):
        rx = create_prescription(
            db,
            PrescriptionCreate(
                patient_id=patient.id,
                doctor_id=doctor.id,
                items=[
                    RxItemCreate(drug_id=d.id, quantity=q,
                                 dosage_instructions="1 tab twice daily")
                    for d, q in lines
                ],
            ))
        db.commit()
        if status != PrescriptionStatus.DRAFT:
            send_to_pharmacy(db, rx.id)
            db.commit()
        if status not in (PrescriptionStatus.DRAFT,
                          PrescriptionStatus.SENT_TO_PHARMACY):
            rx.status = status
            db.commit()
        return rx

    return _make


# ============================================
# HTTP
# ============================================


@pytest.fixture
def client(session_factory):
    from clinicmis.api.deps import get_db
    from clinicmis.main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from clinicmis.utils.jwt import create_access_token

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.email)}"}

    return _headers
