# FILE: clinicmis/services/errors.py
from __future__ import annotations

from typing import Optional


# ============================================================
# Errors
# ============================================================
class ClinicError(RuntimeError):
    """Base for business failures; the API maps status_code onto the envelope."""
    status_code = 400
    kind: Optional[str] = None

    def __init__(self, message: str, *, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class NotFoundError(ClinicError):
    status_code = 404
    kind = "not_found"


class InvalidStateError(ClinicError):
    status_code = 409
    kind = "invalid_state"


class ValidationError(ClinicError):
    status_code = 422
    kind = "validation"


class InsufficientStockError(ClinicError):
    status_code = 409
    kind = "insufficient_stock"


class ConstraintConflictError(ClinicError):
    """Storage constraint still violated after all retries."""
    status_code = 409
    kind = "unknown"


class StorageUnavailableError(ClinicError):
    status_code = 503
    kind = "storage_unavailable"


class StaffNotLinkedError(ClinicError):
    status_code = 403
    kind = "staff_not_linked"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or
            "Your user account is not linked to a staff record. "
            "Please contact an administrator to link your account.")
