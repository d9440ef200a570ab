# clinicmis/models/__init__.py
from .user import User
from .clinic import Clinic
from .staff import Staff, StaffRole
from .patient import Patient
from .visit import Visit, VisitStatus
from .pharmacy import Drug, Dispensing
from .prescription import Prescription, PrescriptionItem, PrescriptionStatus
from .billing import Billing, PaymentStatus, PaymentMethod
from .audit import AuditLog

__all__ = [
    "User",
    "Clinic",
    "Staff",
    "StaffRole",
    "Patient",
    "Visit",
    "VisitStatus",
    "Drug",
    "Dispensing",
    "Prescription",
    "PrescriptionItem",
    "PrescriptionStatus",
    "Billing",
    "PaymentStatus",
    "PaymentMethod",
    "AuditLog",
]
