# FILE: clinicmis/services/clinics.py
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from clinicmis.db.soft_delete import INCLUDE_DELETED
from clinicmis.models.clinic import Clinic
from clinicmis.models.mixins import touch
from clinicmis.schemas.clinic import ClinicCreate, ClinicUpdate
from clinicmis.services.audit_logger import log_audit
from clinicmis.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def get_clinic(db: Session, clinic_id: int) -> Clinic:
    clinic = db.get(Clinic, clinic_id)
    if not clinic or clinic.is_deleted:
        raise NotFoundError(f"Clinic with ID {clinic_id} not found")
    return clinic


def list_clinics(db: Session, active_only: bool = False) -> List[Clinic]:
    q = db.query(Clinic)
    if active_only:
        q = q.filter(Clinic.is_active.is_(True))
    return q.order_by(Clinic.name).all()


def _ensure_name_free(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    q = (db.query(Clinic.id).filter(Clinic.name == name).execution_options(
        **{INCLUDE_DELETED: True}))
    if exclude_id is not None:
        q = q.filter(Clinic.id != exclude_id)
    if q.first():
        raise ValidationError("A clinic with this name already exists.")


def create_clinic(db: Session,
                  data: ClinicCreate,
                  user_id: Optional[int] = None) -> Clinic:
    name = data.name.strip()
    _ensure_name_free(db, name)

    clinic = Clinic(
        name=name,
        description=data.description,
        location=data.location,
        contact_phone=data.contact_phone,
        is_active=True,
        created_by=user_id,
    )
    db.add(clinic)
    db.flush()

    log_audit(db, user_id, "clinics", clinic.id, "CREATE",
              new_values={"name": clinic.name})
    logger.info("Clinic '%s' created", clinic.name)
    return clinic


def update_clinic(db: Session,
                  clinic_id: int,
                  data: ClinicUpdate,
                  user_id: Optional[int] = None) -> Clinic:
    clinic = get_clinic(db, clinic_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("name"):
        changes["name"] = changes["name"].strip()
        _ensure_name_free(db, changes["name"], exclude_id=clinic.id)

    old_values = {k: getattr(clinic, k) for k in changes}
    for field, value in changes.items():
        setattr(clinic, field, value)
    touch(clinic, user_id)
    db.flush()

    log_audit(db, user_id, "clinics", clinic.id, "UPDATE",
              old_values=old_values, new_values=changes)
    return clinic


def toggle_clinic_active(db: Session,
                         clinic_id: int,
                         user_id: Optional[int] = None) -> Clinic:
    clinic = get_clinic(db, clinic_id)
    clinic.is_active = not clinic.is_active
    touch(clinic, user_id)
    db.flush()

    log_audit(db, user_id, "clinics", clinic.id, "UPDATE",
              old_values={"is_active": not clinic.is_active},
              new_values={"is_active": clinic.is_active})
    logger.info("Clinic '%s' %s", clinic.name,
                "activated" if clinic.is_active else "deactivated")
    return clinic
