# FILE: clinicmis/services/id_gen.py
"""
Human-readable document numbers.

All families follow ``<prefix><zero padded seq>``. The next value is
derived from the greatest existing value under the prefix, tombstoned
rows included, so a number is never handed out twice. Generation is
optimistic: every target column is UNIQUE, a concurrent loser fails at
flush and the surrounding unit of work retries.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from clinicmis.db.soft_delete import INCLUDE_DELETED
from clinicmis.models.billing import Billing
from clinicmis.models.patient import Patient
from clinicmis.models.pharmacy import Dispensing
from clinicmis.models.prescription import Prescription
from clinicmis.models.staff import Staff
from clinicmis.models.visit import Visit
from clinicmis.utils.timezone import today_local

logger = logging.getLogger(__name__)


def next_sequence_number(db: Session, column, prefix: str, width: int) -> str:
    last_number = (db.query(column).filter(
        column.like(f"{prefix}%")).order_by(column.desc()).execution_options(
            **{INCLUDE_DELETED: True}).first())

    next_seq = 1
    if last_number and last_number[0]:
        suffix = last_number[0][len(prefix):]
        try:
            next_seq = int(suffix) + 1
        except ValueError:
            logger.warning("Unparseable suffix %r under prefix %s, restarting at 1",
                           last_number[0], prefix)
            next_seq = 1
    return f"{prefix}{next_seq:0{width}d}"


def _day(on: Optional[date]) -> str:
    return (on or today_local()).strftime("%Y%m%d")


def generate_invoice_number(db: Session, on: Optional[date] = None) -> str:
    """INV-YYYYMMDD-NNNN"""
    return next_sequence_number(db, Billing.invoice_number,
                                f"INV-{_day(on)}-", 4)


def generate_visit_number(db: Session, on: Optional[date] = None) -> str:
    """VIS-YYYYMMDD-NNNN"""
    return next_sequence_number(db, Visit.visit_number, f"VIS-{_day(on)}-", 4)


def generate_dispensing_number(db: Session, on: Optional[date] = None) -> str:
    """DSP-YYYYMMDD-NNNN"""
    return next_sequence_number(db, Dispensing.dispensing_number,
                                f"DSP-{_day(on)}-", 4)


def generate_prescription_number(db: Session, on: Optional[date] = None) -> str:
    """RX-YYYYMMDD-NNNN"""
    return next_sequence_number(db, Prescription.prescription_number,
                                f"RX-{_day(on)}-", 4)


def generate_clinic_number(db: Session, on: Optional[date] = None) -> str:
    """CLN-YYYY-NNNNN"""
    year = (on or today_local()).year
    return next_sequence_number(db, Patient.clinic_number, f"CLN-{year}-", 5)


def generate_employee_number(db: Session) -> str:
    """EMP-NNNN, never resets."""
    return next_sequence_number(db, Staff.employee_number, "EMP-", 4)
