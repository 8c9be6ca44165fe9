from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EmployeeCreate(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    role: str = Field(min_length=1)
    department: str = "operations"
    phone: str | None = None
    address: str | None = None
    designation: str | None = None
    hire_date: date | None = None
    salary: Decimal | None = Field(default=None, ge=0)
    employee_id: str | None = None
    status: str = "active"


class EmployeeUpdate(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    address: str | None = None
    department: str | None = None
    role: str | None = None
    designation: str | None = None
    salary: Decimal | None = Field(default=None, ge=0)
    status: str | None = None


class EmployeeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: str | None
    full_name: str
    email: str
    phone: str | None
    address: str | None
    department: str
    role: str
    designation: str | None
    hire_date: date | None
    salary: Decimal | None
    status: str
    last_login: datetime | None
    created_at: datetime
    updated_at: datetime
