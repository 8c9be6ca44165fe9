from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


LeadStatus = Literal["new", "contacted", "qualified", "proposal_sent", "won", "lost", "cancelled"]


class LeadCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    service_type: str = "installation"
    urgency_level: str = "medium"
    property_type: str | None = None
    location: str | None = None
    estimated_value: Decimal | None = None
    source: str = "website"
    preferred_contact_method: str | None = None
    preferred_contact_time: str | None = None
    message: str | None = None
    notes: str | None = None


class LeadUpdate(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    service_type: str | None = None
    urgency_level: str | None = None
    property_type: str | None = None
    location: str | None = None
    estimated_value: Decimal | None = None
    source: str | None = None
    preferred_contact_method: str | None = None
    preferred_contact_time: str | None = None
    message: str | None = None
    notes: str | None = None
    status: LeadStatus | None = None
    assigned_to: UUID | None = None
    change_reason: str | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str | None
    phone: str | None
    company: str | None
    service_type: str
    urgency_level: str
    property_type: str | None
    location: str | None
    estimated_value: Decimal | None
    source: str
    preferred_contact_method: str | None
    preferred_contact_time: str | None
    message: str | None
    notes: str | None
    status: str
    assigned_to: UUID | None
    converted_to_project_id: UUID | None
    converted_at: datetime | None
    created_at: datetime
    updated_at: datetime


class LeadStatusHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    consultation_request_id: UUID
    previous_status: str | None
    new_status: str
    changed_by: str | None
    change_reason: str | None
    notes: str | None
    created_at: datetime


class LeadConvertRequest(BaseModel):
    overrides: dict[str, Any] = Field(default_factory=dict)


class ConversionResult(BaseModel):
    status: Literal["converted", "partial"]
    lead_id: UUID
    project_id: UUID
    project_number: str
    customer_id: UUID
    customer_created: bool
    message: str
    warning: str | None = None
    reconciliation_id: UUID | None = None


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str | None
    phone: str | None
    company: str | None
    address: str | None
    customer_type: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
