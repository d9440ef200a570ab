# FILE: clinicmis/schemas/visit.py
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from clinicmis.models.visit import VisitStatus


class VisitCreate(BaseModel):
    patient_id: int
    clinic_id: int
    doctor_id: Optional[int] = None
    visit_date: Optional[datetime] = None  # defaults to now (clinic time)
    reason_for_visit: Optional[str] = Field(None, max_length=500)


class ConsultationIn(BaseModel):
    symptoms: Optional[str] = Field(None, max_length=1000)
    diagnosis: Optional[str] = Field(None, max_length=1000)
    doctor_notes: Optional[str] = None

    blood_pressure: Optional[str] = Field(None, max_length=10)
    temperature: Optional[Decimal] = Field(None, ge=30, le=45)
    pulse_rate: Optional[int] = Field(None, ge=20, le=250)
    weight: Optional[Decimal] = Field(None, gt=0)
    height: Optional[Decimal] = Field(None, gt=0)

    follow_up_required: bool = False
    follow_up_date: Optional[date] = None


class VisitOut(BaseModel):
    id: int
    visit_number: str
    patient_id: int
    clinic_id: int
    doctor_id: Optional[int]
    visit_date: datetime
    check_in_time: Optional[time]
    check_out_time: Optional[time]
    status: VisitStatus

    reason_for_visit: Optional[str]
    symptoms: Optional[str]
    diagnosis: Optional[str]
    doctor_notes: Optional[str]

    blood_pressure: Optional[str]
    temperature: Optional[Decimal]
    pulse_rate: Optional[int]
    weight: Optional[Decimal]
    height: Optional[Decimal]

    follow_up_required: bool
    follow_up_date: Optional[date]

    model_config = ConfigDict(from_attributes=True)
