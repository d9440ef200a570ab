# FILE: clinicmis/schemas/prescription.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from clinicmis.models.prescription import PrescriptionStatus

# ---------- Rx Lines ----------


class RxItemCreate(BaseModel):
    drug_id: int
    quantity: int = Field(..., ge=1, le=1000)
    dosage_instructions: str = Field(..., min_length=1, max_length=500)
    duration_days: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = Field(None, max_length=500)


class RxItemOut(BaseModel):
    id: int
    drug_id: int
    quantity: int
    quantity_dispensed: Optional[int]
    dosage_instructions: str
    duration_days: Optional[int]
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)


# ---------- Rx Header ----------


class PrescriptionCreate(BaseModel):
    patient_id: int
    doctor_id: int
    visit_id: Optional[int] = None
    diagnosis: Optional[str] = Field(None, max_length=1000)
    special_instructions: Optional[str] = Field(None, max_length=1000)
    items: List[RxItemCreate] = Field(default_factory=list)


class PrescriptionOut(BaseModel):
    id: int
    prescription_number: str
    patient_id: int
    doctor_id: int
    visit_id: Optional[int]
    prescription_date: datetime
    status: PrescriptionStatus
    diagnosis: Optional[str]
    special_instructions: Optional[str]
    sent_to_pharmacy_at: Optional[datetime]
    dispensed_at: Optional[datetime]
    dispensed_by_staff_id: Optional[int]
    items: List[RxItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
