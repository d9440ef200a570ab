# FILE: clinicmis/schemas/clinic.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class ClinicCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=50)
    contact_phone: Optional[str] = Field(None, max_length=20)


class ClinicUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=50)
    contact_phone: Optional[str] = Field(None, max_length=20)
    is_active: Optional[bool] = None


class ClinicOut(BaseModel):
    id: int
    name: str
    description: Optional[str]
    location: Optional[str]
    contact_phone: Optional[str]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
