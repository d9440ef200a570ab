# FILE: clinicmis/schemas/staff.py
from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, EmailStr

from clinicmis.models.staff import StaffRole


class StaffCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    role: StaffRole
    specialization: Optional[str] = Field(None, max_length=100)
    license_number: Optional[str] = Field(None, max_length=50)
    phone_number: str = Field(..., min_length=3, max_length=20)
    email: EmailStr
    hire_date: Optional[date] = None
    clinic_id: Optional[int] = None


class LinkUserIn(BaseModel):
    user_id: int


class StaffOut(BaseModel):
    id: int
    employee_number: str
    first_name: str
    last_name: str
    full_name: str
    display_title: str
    role: StaffRole
    specialization: Optional[str]
    license_number: Optional[str]
    phone_number: str
    email: str
    hire_date: Optional[date]
    is_active: bool
    clinic_id: Optional[int]
    user_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class StaffUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    role: Optional[StaffRole] = None
    specialization: Optional[str] = Field(None, max_length=100)
    license_number: Optional[str] = Field(None, max_length=50)
    phone_number: Optional[str] = Field(None, min_length=3, max_length=20)
    clinic_id: Optional[int] = None
