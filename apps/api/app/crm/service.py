from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import Select, or_, select
from sqlalchemy.orm import Session

from app import audit, events
from app.crm.models import ConsultationRequest, Customer, LeadStatusHistory
from app.crm.schemas import CustomerRead, LeadCreate, LeadRead, LeadStatusHistoryRead, LeadUpdate
from app.forms.options import LEAD_STATUSES


logger = logging.getLogger("app.crm")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeadService:
    entity_type = "crm.lead"
    closed_statuses = {"won", "lost", "cancelled"}

    def create_lead(self, session: Session, dto: LeadCreate, actor_user_id: str | None = None) -> LeadRead:
        lead = ConsultationRequest(
            name=dto.name.strip(),
            email=str(dto.email) if dto.email is not None else None,
            phone=dto.phone,
            company=dto.company,
            service_type=dto.service_type,
            urgency_level=dto.urgency_level,
            property_type=dto.property_type,
            location=dto.location,
            estimated_value=dto.estimated_value,
            source=dto.source,
            preferred_contact_method=dto.preferred_contact_method,
            preferred_contact_time=dto.preferred_contact_time,
            message=dto.message,
            notes=dto.notes,
            status="new",
        )
        session.add(lead)
        session.flush()
        session.add(
            LeadStatusHistory(
                consultation_request_id=lead.id,
                previous_status=None,
                new_status="new",
                changed_by=actor_user_id,
                change_reason="Lead captured",
            )
        )
        session.commit()
        session.refresh(lead)
        lead_read = LeadRead.model_validate(lead)

        audit.record(
            actor_user_id=actor_user_id or "public",
            entity_type=self.entity_type,
            entity_id=str(lead.id),
            action="create",
            before=None,
            after=lead_read.model_dump(mode="json"),
        )
        events.publish(
            events.build_envelope(
                "crm.lead.created",
                {"lead_id": str(lead.id), "status": lead.status, "source": lead.source},
                actor_user_id=actor_user_id,
            )
        )
        logger.info("lead.created", extra={"lead_id": str(lead.id), "status": lead.status})
        return lead_read

    def list_leads(
        self,
        session: Session,
        *,
        status_filter: str | None = None,
        q: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LeadRead]:
        stmt: Select[tuple[ConsultationRequest]] = select(ConsultationRequest)
        if status_filter:
            stmt = stmt.where(ConsultationRequest.status == status_filter)
        if q:
            pattern = f"%{q}%"
            stmt = stmt.where(
                or_(
                    ConsultationRequest.name.ilike(pattern),
                    ConsultationRequest.email.ilike(pattern),
                    ConsultationRequest.phone.ilike(pattern),
                )
            )
        leads = session.scalars(stmt.order_by(ConsultationRequest.created_at.desc()).offset(offset).limit(limit)).all()
        return [LeadRead.model_validate(item) for item in leads]

    def get_lead(self, session: Session, lead_id: uuid.UUID) -> LeadRead:
        return LeadRead.model_validate(self._load(session, lead_id))

    def update_lead(self, session: Session, actor_user_id: str, lead_id: uuid.UUID, dto: LeadUpdate) -> LeadRead:
        lead = self._load(session, lead_id)
        before = LeadRead.model_validate(lead).model_dump(mode="json")

        payload = dto.model_dump(exclude_unset=True)
        requested_status = payload.pop("status", None)
        change_reason = payload.pop("change_reason", None)
        if "email" in payload and payload["email"] is not None:
            payload["email"] = str(payload["email"])
        if "name" in payload and not (payload["name"] or "").strip():
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="name cannot be empty")

        for key, value in payload.items():
            setattr(lead, key, value)
        if requested_status is not None and requested_status != lead.status:
            self._apply_status(lead, requested_status, changed_by=actor_user_id, change_reason=change_reason or "Status updated")
        lead.updated_at = utcnow()
        session.commit()
        session.refresh(lead)

        lead_read = LeadRead.model_validate(lead)
        audit.record(
            actor_user_id=actor_user_id,
            entity_type=self.entity_type,
            entity_id=str(lead.id),
            action="update",
            before=before,
            after=lead_read.model_dump(mode="json"),
        )
        events.publish(
            events.build_envelope(
                "crm.lead.updated",
                {"lead_id": str(lead.id), "status": lead.status, "changed_fields": sorted(payload)},
                actor_user_id=actor_user_id,
            )
        )
        return lead_read

    def delete_lead(self, session: Session, actor_user_id: str, lead_id: uuid.UUID) -> None:
        lead = self._load(session, lead_id)
        before = LeadRead.model_validate(lead).model_dump(mode="json")
        session.delete(lead)
        session.commit()

        audit.record(
            actor_user_id=actor_user_id,
            entity_type=self.entity_type,
            entity_id=str(lead_id),
            action="delete",
            before=before,
            after=None,
        )
        events.publish(events.build_envelope("crm.lead.deleted", {"lead_id": str(lead_id)}, actor_user_id=actor_user_id))

    def change_status(
        self,
        session: Session,
        lead_id: uuid.UUID,
        new_status: str,
        *,
        changed_by: str | None,
        change_reason: str | None = None,
        notes: str | None = None,
    ) -> LeadStatusHistory:
        """Move a lead to ``new_status`` and record the transition.

        A history row is written even when the lead already holds
        ``new_status``; callers use that to log repeated triggers.
        """
        lead = self._load(session, lead_id)
        entry = self._apply_status(lead, new_status, changed_by=changed_by, change_reason=change_reason, notes=notes)
        session.commit()
        session.refresh(entry)
        logger.info(
            "lead.status_changed",
            extra={"lead_id": str(lead_id), "status": new_status, "detail": entry.previous_status},
        )
        return entry

    def mark_converted(self, session: Session, lead_id: uuid.UUID, project_id: uuid.UUID, *, changed_by: str | None) -> LeadRead:
        lead = self._load(session, lead_id)
        previous_status = lead.status
        lead.converted_to_project_id = project_id
        lead.converted_at = utcnow()
        self._apply_status(lead, "won", changed_by=changed_by, change_reason="Converted to project")
        session.commit()
        session.refresh(lead)

        audit.record(
            actor_user_id=changed_by,
            entity_type=self.entity_type,
            entity_id=str(lead.id),
            action="convert",
            before={"status": previous_status, "converted_at": None},
            after={"status": lead.status, "converted_to_project_id": str(project_id)},
        )
        return LeadRead.model_validate(lead)

    def history(self, session: Session, lead_id: uuid.UUID) -> list[LeadStatusHistoryRead]:
        self._load(session, lead_id)
        rows = session.scalars(
            select(LeadStatusHistory)
            .where(LeadStatusHistory.consultation_request_id == lead_id)
            .order_by(LeadStatusHistory.created_at)
        ).all()
        return [LeadStatusHistoryRead.model_validate(item) for item in rows]

    def _apply_status(
        self,
        lead: ConsultationRequest,
        new_status: str,
        *,
        changed_by: str | None,
        change_reason: str | None = None,
        notes: str | None = None,
    ) -> LeadStatusHistory:
        if new_status not in LEAD_STATUSES:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid lead status")
        entry = LeadStatusHistory(
            consultation_request_id=lead.id,
            previous_status=lead.status,
            new_status=new_status,
            changed_by=changed_by,
            change_reason=change_reason,
            notes=notes,
        )
        lead.status = new_status
        lead.updated_at = utcnow()
        lead.status_history.append(entry)
        return entry

    def _load(self, session: Session, lead_id: uuid.UUID) -> ConsultationRequest:
        lead = session.get(ConsultationRequest, lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consultation request not found")
        return lead


class CustomerService:
    entity_type = "crm.customer"

    def find_by_contact(self, session: Session, email: str | None, phone: str | None) -> Customer | None:
        conditions = []
        if email:
            conditions.append(Customer.email == email)
        if phone:
            conditions.append(Customer.phone == phone)
        if not conditions:
            return None
        return session.scalar(select(Customer).where(or_(*conditions)).order_by(Customer.created_at).limit(1))

    def create_customer(self, session: Session, actor_user_id: str | None, **values: Any) -> Customer:
        customer = Customer(**values)
        session.add(customer)
        session.commit()
        session.refresh(customer)

        audit.record(
            actor_user_id=actor_user_id,
            entity_type=self.entity_type,
            entity_id=str(customer.id),
            action="create",
            before=None,
            after=CustomerRead.model_validate(customer).model_dump(mode="json"),
        )
        logger.info("customer.created", extra={"customer_id": str(customer.id)})
        return customer

    def delete_customer(self, session: Session, actor_user_id: str | None, customer_id: uuid.UUID) -> None:
        customer = session.get(Customer, customer_id)
        if customer is None:
            return
        session.delete(customer)
        session.commit()
        audit.record(
            actor_user_id=actor_user_id,
            entity_type=self.entity_type,
            entity_id=str(customer_id),
            action="delete",
            before={"id": str(customer_id)},
            after=None,
        )
        logger.info("customer.deleted", extra={"customer_id": str(customer_id)})

    def list_customers(self, session: Session, *, active_only: bool = True, limit: int = 200) -> list[CustomerRead]:
        stmt = select(Customer)
        if active_only:
            stmt = stmt.where(Customer.is_active.is_(True))
        rows = session.scalars(stmt.order_by(Customer.name).limit(limit)).all()
        return [CustomerRead.model_validate(item) for item in rows]


lead_service = LeadService()
customer_service = CustomerService()
