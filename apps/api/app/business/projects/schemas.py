from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProjectCreate(BaseModel):
    project_name: str = Field(min_length=1)
    project_type: str = Field(min_length=1)
    customer_id: UUID
    priority: str = "medium"
    status: str = "planning"
    consultation_request_id: UUID | None = None
    quotation_id: UUID | None = None
    project_manager_id: UUID | None = None
    supervisor_id: UUID | None = None
    estimated_start_date: date | None = None
    estimated_end_date: date | None = None
    project_value: Decimal = Field(default=Decimal("0"), ge=0)
    advance_amount: Decimal = Field(default=Decimal("0"), ge=0)
    site_address: str | None = None
    description: str | None = None
    notes: str | None = None


class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_number: str
    project_name: str
    project_type: str
    priority: str
    status: str
    customer_id: UUID
    consultation_request_id: UUID | None
    quotation_id: UUID | None
    project_manager_id: UUID | None
    supervisor_id: UUID | None
    estimated_start_date: date | None
    estimated_end_date: date | None
    project_value: Decimal
    advance_amount: Decimal
    site_address: str | None
    description: str | None
    notes: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class ProjectPage(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
