# FILE: clinicmis/schemas/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from clinicmis.models.billing import PaymentMethod, PaymentStatus


class BillingCreate(BaseModel):
    patient_id: int
    visit_id: Optional[int] = None
    prescription_id: Optional[int] = None

    consultation_fee: Decimal = Field(Decimal("0"), ge=0)
    medication_cost: Decimal = Field(Decimal("0"), ge=0)
    other_charges: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class GenerateBillingIn(BaseModel):
    consultation_fee: Decimal = Field(Decimal("0"), ge=0)


class PaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=500)


class BillingOut(BaseModel):
    id: int
    invoice_number: str
    patient_id: int
    visit_id: Optional[int]
    prescription_id: Optional[int]
    billing_date: datetime

    consultation_fee: Decimal
    medication_cost: Decimal
    other_charges: Decimal
    discount: Decimal
    tax: Decimal
    sub_total: Decimal
    grand_total: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal

    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod]
    payment_date: Optional[datetime]
    is_paid: bool
    notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)
