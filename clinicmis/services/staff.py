# FILE: clinicmis/services/staff.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from clinicmis.db.soft_delete import INCLUDE_DELETED
from clinicmis.models.clinic import Clinic
from clinicmis.models.mixins import touch
from clinicmis.models.prescription import Prescription
from clinicmis.models.staff import Staff
from clinicmis.models.user import User
from clinicmis.models.visit import Visit
from clinicmis.schemas.staff import StaffCreate, StaffUpdate
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import (
    InvalidStateError,
    NotFoundError,
    StaffNotLinkedError,
    ValidationError,
)
from clinicmis.services.id_gen import generate_employee_number

logger = logging.getLogger(__name__)


def get_staff(db: Session, staff_id: int) -> Staff:
    staff = db.get(Staff, staff_id)
    if not staff or staff.is_deleted:
        raise NotFoundError(f"Staff with ID {staff_id} not found")
    return staff


def create_staff(db: Session,
                 data: StaffCreate,
                 user_id: Optional[int] = None) -> Staff:
    email = str(data.email).lower()
    taken = (db.query(Staff.id).filter(Staff.email == email).execution_options(
        **{INCLUDE_DELETED: True}).first())
    if taken:
        raise ValidationError(f"A staff member with email {email} already exists")
    if data.clinic_id and not db.get(Clinic, data.clinic_id):
        raise NotFoundError(f"Clinic with ID {data.clinic_id} not found")

    staff = Staff(
        employee_number=generate_employee_number(db),
        created_by=user_id,
        **data.model_dump(exclude={"email"}),
        email=email,
    )
    db.add(staff)
    db.flush()

    log_audit(db, user_id, "staff", staff.id, "CREATE",
              new_values={
                  "employee_number": staff.employee_number,
                  "role": staff.role,
              })
    logger.info("Staff %s created (%s)", staff.employee_number, staff.role.value)
    return staff


def link_user(db: Session,
              staff_id: int,
              target_user_id: int,
              user_id: Optional[int] = None) -> Staff:
    staff = get_staff(db, staff_id)
    user = db.get(User, target_user_id)
    if not user:
        raise NotFoundError(f"User with ID {target_user_id} not found")

    other = (db.query(Staff).filter(Staff.user_id == target_user_id,
                                    Staff.id != staff.id).first())
    if other:
        raise InvalidStateError(
            f"User {user.email} is already linked to {other.employee_number}")

    old = staff.user_id
    staff.user_id = user.id
    touch(staff, user_id)
    db.flush()

    log_audit(db, user_id, "staff", staff.id, "UPDATE",
              old_values={"user_id": old},
              new_values={"user_id": user.id})
    return staff


def resolve_staff_for_user(db: Session, user: User) -> Staff:
    """Staff record behind a login; pharmacists and doctors act through this."""
    staff = (db.query(Staff).filter(Staff.user_id == user.id,
                                    Staff.is_active.is_(True)).first())
    if not staff:
        logger.warning("User %s has no linked staff record", user.email)
        raise StaffNotLinkedError()
    return staff


def update_staff(db: Session,
                 staff_id: int,
                 data: StaffUpdate,
                 user_id: Optional[int] = None) -> Staff:
    staff = get_staff(db, staff_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("clinic_id") and not db.get(Clinic, changes["clinic_id"]):
        raise NotFoundError(f"Clinic with ID {changes['clinic_id']} not found")

    old_values = {k: getattr(staff, k) for k in changes}
    for field, value in changes.items():
        setattr(staff, field, value)
    touch(staff, user_id)
    db.flush()

    log_audit(db, user_id, "staff", staff.id, "UPDATE",
              old_values=old_values, new_values=changes)
    return staff


def set_staff_active(db: Session,
                     staff_id: int,
                     active: bool,
                     user_id: Optional[int] = None) -> Staff:
    """Activate or deactivate a staff member together with their login."""
    staff = get_staff(db, staff_id)
    old = staff.is_active
    staff.is_active = active
    if staff.user is not None:
        staff.user.is_active = active
    touch(staff, user_id)
    db.flush()

    log_audit(db, user_id, "staff", staff.id,
              "ACTIVATE" if active else "DEACTIVATE",
              old_values={"is_active": old},
              new_values={"is_active": active})
    logger.info("Staff %s %s", staff.employee_number,
                "activated" if active else "deactivated")
    return staff


def delete_staff(db: Session,
                 staff_id: int,
                 user_id: Optional[int] = None) -> Staff:
    """
    Soft delete. Staff who appear on visits or prescriptions are kept;
    deactivate them instead. A linked login is disabled and released.
    """
    staff = get_staff(db, staff_id)
    has_visits = db.query(Visit.id).filter(Visit.doctor_id == staff.id).first()
    has_rx = (db.query(Prescription.id).filter(
        Prescription.doctor_id == staff.id).execution_options(
            **{INCLUDE_DELETED: True}).first())
    if has_visits or has_rx:
        raise InvalidStateError(
            "Cannot delete staff member with existing visits or prescriptions. "
            "Consider deactivating instead.")

    old_user_id = staff.user_id
    if staff.user is not None:
        staff.user.is_active = False
    staff.user_id = None
    staff.is_active = False
    staff.mark_deleted(user_id)
    touch(staff, user_id)
    db.flush()

    log_audit(db, user_id, "staff", staff.id, "DELETE",
              old_values={
                  "employee_number": staff.employee_number,
                  "user_id": old_user_id,
              })
    logger.info("Staff %s soft deleted", staff.employee_number)
    return staff
