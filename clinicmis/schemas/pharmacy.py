# FILE: clinicmis/schemas/pharmacy.py
from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

# ---------- Drugs ----------


class DrugBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    generic_name: Optional[str] = Field(None, max_length=100)
    manufacturer: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=50)
    dosage_form: Optional[str] = Field(None, max_length=50)
    strength: Optional[str] = Field(None, max_length=50)
    unit_price: Decimal = Field(..., gt=0)
    reorder_level: int = Field(10, ge=1)
    expiry_date: Optional[date] = None
    storage_instructions: Optional[str] = Field(None, max_length=500)
    requires_prescription: bool = True
    is_active: bool = True


class DrugCreate(DrugBase):
    drug_code: str = Field(..., min_length=1, max_length=50)
    quantity_in_stock: int = Field(0, ge=0)


class DrugUpdate(BaseModel):
    # version the client last saw; mismatch => someone else saved first
    version: int

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    generic_name: Optional[str] = None
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    dosage_form: Optional[str] = None
    strength: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, gt=0)
    reorder_level: Optional[int] = Field(None, ge=1)
    expiry_date: Optional[date] = None
    storage_instructions: Optional[str] = None
    requires_prescription: Optional[bool] = None
    is_active: Optional[bool] = None


class DrugOut(DrugBase):
    id: int
    drug_code: str
    quantity_in_stock: int
    version: int
    display_name: str
    is_low_stock: bool
    is_expired: bool

    model_config = ConfigDict(from_attributes=True)


class StockAdjustIn(BaseModel):
    quantity_change: int
    reason: str = Field(..., min_length=1, max_length=500)


# ---------- Dispensing ----------


class DispenseItemIn(BaseModel):
    """One line handed out. quantity <= 0 lines are skipped."""
    prescription_item_id: Optional[int] = None  # None / 0 => ad-hoc
    drug_id: int
    quantity_to_dispense: int
    unit_price: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=500)


class DispenseIn(BaseModel):
    items: List[DispenseItemIn] = Field(default_factory=list)
    consultation_fee: Decimal = Field(Decimal("0"), ge=0)


class DispenseOut(BaseModel):
    prescription_id: int
    prescription_number: str
    dispensing_number: Optional[str] = None
    billing_id: int
    invoice_number: str
    total_amount: Decimal


class DispensingOut(BaseModel):
    id: int
    dispensing_number: str
    line_no: int
    prescription_id: Optional[int]
    prescription_item_id: Optional[int]
    drug_id: int
    pharmacist_id: int
    dispensing_date: datetime
    quantity: int
    unit_price: Decimal
    stock_before: int
    stock_after: int
    total_amount: Decimal
    notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class DispenseSheetLine(BaseModel):
    prescription_item_id: int
    drug_id: int
    drug_name: str
    dosage_instructions: str
    prescribed_quantity: int
    quantity_to_dispense: int
    available_stock: int
    unit_price: Decimal
    notes: Optional[str] = None


class DispenseSheetOut(BaseModel):
    prescription_id: int
    prescription_number: str
    patient_name: str
    patient_clinic_number: str
    doctor_name: str
    status: str
    items: List[DispenseSheetLine]


# ---------- Queue ----------


class QueueEntry(BaseModel):
    id: int
    prescription_number: str
    patient_name: str
    patient_clinic_number: str
    doctor_name: str
    status: str
    item_count: int
    prescription_date: datetime
    sent_to_pharmacy_at: Optional[datetime] = None


class PharmacyQueueOut(BaseModel):
    pending: List[QueueEntry] = Field(default_factory=list)
    processing: List[QueueEntry] = Field(default_factory=list)
    ready: List[QueueEntry] = Field(default_factory=list)
