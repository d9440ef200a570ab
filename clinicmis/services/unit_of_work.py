# FILE: clinicmis/services/unit_of_work.py
"""
One database transaction per attempt, retried on storage conflicts.

``work(db)`` must be safe to re-run from scratch: it regenerates
document numbers and re-checks its own idempotency guards on every
attempt. Business errors (:class:`ClinicError`) roll back and propagate
at once; only storage-level failures are retried.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clinicmis.core.config import settings
from clinicmis.services.errors import (
    ClinicError,
    ConstraintConflictError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE = (IntegrityError, OperationalError, StaleDataError)

CONFLICT_MESSAGES = {
    "duplicate":
    "A record with the same number already exists. Please try again.",
    "foreign_key":
    "A referenced record (drug, staff or prescription item) does not exist.",
    "not_null": "A required field is missing.",
    "check": "The change violates a data rule (for example negative stock).",
    "concurrent_update": "The record was modified by another user.",
    "unknown": "Database constraint violated.",
}


def classify_integrity_error(exc: IntegrityError) -> str:
    """Best effort mapping of driver messages (MySQL / SQLite) to a kind."""
    text = str(getattr(exc, "orig", None) or exc).lower()
    if "foreign key" in text:
        return "foreign_key"
    if "unique" in text or "duplicate" in text:
        return "duplicate"
    if "not null" in text or "cannot be null" in text or "doesn't have a default" in text:
        return "not_null"
    if "check constraint" in text:
        return "check"
    return "unknown"


def _conflict_from(exc: Exception) -> ClinicError:
    if isinstance(exc, StaleDataError):
        kind = "concurrent_update"
    elif isinstance(exc, IntegrityError):
        kind = classify_integrity_error(exc)
    else:
        return StorageUnavailableError(
            "The database is temporarily unavailable. Please try again.")
    return ConstraintConflictError(CONFLICT_MESSAGES[kind], kind=kind)


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> T:
    attempts = max(1, attempts or settings.DB_RETRY_ATTEMPTS)
    if backoff_seconds is None:
        backoff_seconds = settings.DB_RETRY_BACKOFF_SECONDS

    attempt = 0
    while True:
        attempt += 1
        try:
            result = work(db)
            db.commit()
            return result
        except ClinicError:
            db.rollback()
            raise
        except RETRYABLE as e:
            db.rollback()
            if attempt >= attempts:
                logger.error("Transaction failed after %s attempt(s): %s",
                             attempt, e)
                raise _conflict_from(e) from e
            logger.warning("Transaction attempt %s/%s failed (%s), retrying",
                           attempt, attempts, type(e).__name__)
            delay = backoff_seconds * (2**(attempt - 1))
            if delay > 0:
                time.sleep(delay)
        except Exception:
            db.rollback()
            raise
