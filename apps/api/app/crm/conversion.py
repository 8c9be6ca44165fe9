from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import events
from app.crm.models import ConsultationRequest, Customer, PendingReconciliation
from app.crm.progression import StatusProgressionService, status_progression_service
from app.crm.service import CustomerService, LeadService, customer_service, lead_service
from app.forms.config import get_project_form_config
from app.forms.errors import ConversionInProgressError, FormValidationError, LeadAlreadyConvertedError
from app.forms.manager import FormManager
from app.forms.validation import validate_form_data
from app.metrics import observe_form_validation_failure, observe_lead_conversion
from app.notify import Notifier, notifier as default_notifier
from app.otel import get_tracer, set_span_attributes


logger = logging.getLogger("app.crm.conversion")
tracer = get_tracer("app.crm.conversion")

IN_PROGRESS_MESSAGE = "A conversion is already in progress. Please wait."
PARTIAL_MESSAGE = "Project {number} created successfully, but failed to update lead status. Please manually update the lead."
SUCCESS_MESSAGE = "Lead successfully converted to project {number}!"

URGENCY_PRIORITY = {
    "emergency": "high",
    "high": "high",
    "medium": "medium",
}
PROTECTED_FIELDS = frozenset({"customer_id", "notes", "consultation_request_id"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def map_urgency_to_priority(urgency: str | None) -> str:
    return URGENCY_PRIORITY.get((urgency or "").strip().lower(), "low")


def format_conversion_notes(lead: ConsultationRequest, converted_at: datetime) -> str:
    lines = [
        "CONVERTED FROM LEAD:",
        f"- Lead ID: {lead.id}",
        f"- Customer: {lead.name} ({lead.email}, {lead.phone})",
        f"- Company: {lead.company or 'N/A'}",
        f"- Service Type: {lead.service_type}",
        f"- Urgency: {lead.urgency_level}",
        f"- Property Type: {lead.property_type}",
        f"- Preferred Contact: {lead.preferred_contact_method}",
        f"- Contact Time: {lead.preferred_contact_time or 'N/A'}",
        f"- Source: {lead.source}",
        f"- Original Message: {lead.message}",
        f"- Original Notes: {lead.notes or 'None'}",
        f"- Conversion Date: {converted_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
    ]
    return "\n".join(lines)


def build_project_record(
    lead: ConsultationRequest,
    customer_id: uuid.UUID,
    *,
    converted_at: datetime,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Project draft pre-filled from ``lead``.

    Staff overrides win over derived values, except for the customer link and
    the audit notes block which always come from the lead.
    """
    record: dict[str, Any] = {
        "project_name": f"{lead.service_type} - {lead.name}",
        "project_type": lead.service_type,
        "customer_id": str(customer_id),
        "consultation_request_id": str(lead.id),
        "priority": map_urgency_to_priority(lead.urgency_level),
        "status": "draft",
        "project_value": lead.estimated_value if lead.estimated_value is not None else 0,
        "site_address": lead.location or "",
        "description": lead.message,
        "notes": format_conversion_notes(lead, converted_at),
    }
    for key, value in (overrides or {}).items():
        if key in PROTECTED_FIELDS:
            continue
        record[key] = value
    return record


class ConversionLockRegistry:
    """Per-lead in-flight guard shared by every request in the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._held: set[str] = set()

    @contextmanager
    def hold(self, lead_id: uuid.UUID | str) -> Iterator[bool]:
        key = str(lead_id)
        with self._lock:
            acquired = key not in self._held
            if acquired:
                self._held.add(key)
        try:
            yield acquired
        finally:
            if acquired:
                with self._lock:
                    self._held.discard(key)

    def is_held(self, lead_id: uuid.UUID | str) -> bool:
        with self._lock:
            return str(lead_id) in self._held


@dataclass(slots=True)
class ConversionOutcome:
    status: Literal["converted", "partial"]
    lead_id: uuid.UUID
    project_id: uuid.UUID
    project_number: str
    customer_id: uuid.UUID
    customer_created: bool
    message: str
    warning: str | None = None
    reconciliation_id: uuid.UUID | None = None


@dataclass(slots=True)
class Compensations:
    """Undo actions for completed steps, run newest first."""

    actions: list[tuple[str, Callable[[], None]]] = field(default_factory=list)

    def add(self, name: str, action: Callable[[], None]) -> None:
        self.actions.append((name, action))

    def run(self) -> None:
        while self.actions:
            name, action = self.actions.pop()
            try:
                action()
            except SQLAlchemyError:
                logger.exception("lead.conversion_compensation_failed", extra={"action": name})


conversion_locks = ConversionLockRegistry()


@dataclass(slots=True)
class LeadConversionWorkflow:
    leads: LeadService = lead_service
    customers: CustomerService = customer_service
    progression: StatusProgressionService = status_progression_service
    locks: ConversionLockRegistry = conversion_locks
    notifier: Notifier = default_notifier
    clock: Callable[[], datetime] = utcnow

    def convert(
        self,
        session: Session,
        actor_user_id: str | None,
        lead_id: uuid.UUID,
        overrides: dict[str, Any] | None = None,
    ) -> ConversionOutcome:
        started = time.perf_counter()
        with self.locks.hold(lead_id) as acquired:
            if not acquired:
                logger.warning("lead.conversion_in_progress", extra={"lead_id": str(lead_id)})
                self.notifier.warning(IN_PROGRESS_MESSAGE)
                observe_lead_conversion("in_progress", time.perf_counter() - started)
                raise ConversionInProgressError(str(lead_id))

            with tracer.start_as_current_span("crm.lead.convert") as span:
                set_span_attributes(span, lead_id=str(lead_id), actor_user_id=actor_user_id)
                try:
                    outcome = self._run(session, actor_user_id, lead_id, overrides or {})
                except (FormValidationError, LeadAlreadyConvertedError, HTTPException):
                    observe_lead_conversion("rejected", time.perf_counter() - started)
                    raise
                except SQLAlchemyError:
                    observe_lead_conversion("failed", time.perf_counter() - started)
                    raise
                set_span_attributes(span, outcome=outcome.status, project_id=str(outcome.project_id))

        observe_lead_conversion(outcome.status, time.perf_counter() - started)
        return outcome

    def _run(
        self,
        session: Session,
        actor_user_id: str | None,
        lead_id: uuid.UUID,
        overrides: dict[str, Any],
    ) -> ConversionOutcome:
        lead = session.get(ConsultationRequest, lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consultation request not found")
        if lead.converted_at is not None:
            project_ref = str(lead.converted_to_project_id) if lead.converted_to_project_id else None
            raise LeadAlreadyConvertedError(str(lead.id), project_ref)

        previous_status = lead.status
        converted_at = self.clock()
        compensations = Compensations()
        self.notifier.loading("Starting project creation...")

        with tracer.start_as_current_span("crm.lead.convert.resolve_customer") as span:
            customer, customer_created = self._resolve_customer(session, actor_user_id, lead)
            customer_id = customer.id
            set_span_attributes(span, customer_id=str(customer_id), customer_created=customer_created)
        if customer_created:
            compensations.add(
                "delete_customer",
                lambda: self.customers.delete_customer(session, actor_user_id, customer_id),
            )

        record = build_project_record(lead, customer_id, converted_at=converted_at, overrides=overrides)
        with tracer.start_as_current_span("crm.lead.convert.create_project") as span:
            try:
                project = self._create_project(session, actor_user_id, record)
            except (FormValidationError, SQLAlchemyError):
                session.rollback()
                compensations.run()
                raise
            project_id = project["id"]
            project_number = project["project_number"]
            set_span_attributes(span, project_id=str(project_id), project_number=project_number)

        with tracer.start_as_current_span("crm.lead.convert.mark_lead") as span:
            try:
                self.leads.mark_converted(session, lead_id, project_id, changed_by=actor_user_id)
            except (SQLAlchemyError, HTTPException) as exc:
                session.rollback()
                set_span_attributes(span, error=str(exc)[:200])
                return self._partial(session, actor_user_id, lead_id, project_id, project_number, customer_id, customer_created, exc)

        self._notify_downstream(session, actor_user_id, lead_id, previous_status, project_id)

        message = SUCCESS_MESSAGE.format(number=project_number)
        self.notifier.success(message)
        events.publish(
            events.build_envelope(
                "crm.lead.converted",
                {
                    "lead_id": str(lead_id),
                    "project_id": str(project_id),
                    "project_number": project_number,
                    "customer_id": str(customer_id),
                    "customer_created": customer_created,
                    "previous_status": previous_status,
                },
                actor_user_id=actor_user_id,
            )
        )
        logger.info(
            "lead.converted",
            extra={"lead_id": str(lead_id), "project_id": str(project_id), "customer_id": str(customer_id)},
        )
        return ConversionOutcome(
            status="converted",
            lead_id=lead_id,
            project_id=project_id,
            project_number=project_number,
            customer_id=customer_id,
            customer_created=customer_created,
            message=message,
        )

    def _resolve_customer(
        self,
        session: Session,
        actor_user_id: str | None,
        lead: ConsultationRequest,
    ) -> tuple[Customer, bool]:
        existing = self.customers.find_by_contact(session, lead.email, lead.phone)
        if existing is not None:
            logger.info("lead.conversion_customer_matched", extra={"lead_id": str(lead.id), "customer_id": str(existing.id)})
            return existing, False

        customer = self.customers.create_customer(
            session,
            actor_user_id,
            name=lead.name,
            email=lead.email,
            phone=lead.phone,
            company=lead.company or None,
            address=lead.location or "",
            customer_type="individual",
            is_active=True,
        )
        return customer, True

    def _create_project(self, session: Session, actor_user_id: str | None, record: dict[str, Any]) -> dict[str, Any]:
        errors = validate_form_data(record, get_project_form_config())
        if errors:
            observe_form_validation_failure("projects")
            self.notifier.error("Project details are incomplete", detail=", ".join(sorted(errors)))
            raise FormValidationError(errors)

        manager = FormManager("projects", session, actor_user_id=actor_user_id, notifier=self.notifier, clock=self.clock)
        return manager.create(record)

    def _partial(
        self,
        session: Session,
        actor_user_id: str | None,
        lead_id: uuid.UUID,
        project_id: uuid.UUID,
        project_number: str,
        customer_id: uuid.UUID,
        customer_created: bool,
        exc: Exception,
    ) -> ConversionOutcome:
        marker = PendingReconciliation(
            kind="lead_conversion_status",
            entity_type="consultation_requests",
            entity_id=str(lead_id),
            related_entity_id=str(project_id),
            payload={"project_number": project_number, "target_status": "won", "actor_user_id": actor_user_id},
            error=str(exc)[:1000],
        )
        session.add(marker)
        session.commit()

        warning = PARTIAL_MESSAGE.format(number=project_number)
        logger.error(
            "lead.conversion_partial",
            extra={"lead_id": str(lead_id), "project_id": str(project_id), "error": str(exc)[:500]},
        )
        self.notifier.warning(warning)
        events.publish(
            events.build_envelope(
                "crm.lead.conversion_partial",
                {"lead_id": str(lead_id), "project_id": str(project_id), "reconciliation_id": str(marker.id)},
                actor_user_id=actor_user_id,
            )
        )
        return ConversionOutcome(
            status="partial",
            lead_id=lead_id,
            project_id=project_id,
            project_number=project_number,
            customer_id=customer_id,
            customer_created=customer_created,
            message=warning,
            warning=warning,
            reconciliation_id=marker.id,
        )

    def _notify_downstream(
        self,
        session: Session,
        actor_user_id: str | None,
        lead_id: uuid.UUID,
        previous_status: str,
        project_id: uuid.UUID,
    ) -> None:
        try:
            result = self.progression.on_project_created(session, lead_id, previous_status, project_id, changed_by=actor_user_id)
            if not result.success:
                logger.info("lead.progression_skipped", extra={"lead_id": str(lead_id), "detail": result.message})
            events.publish(
                events.build_envelope(
                    "dashboard.refresh_requested",
                    {"reason": "lead_converted", "lead_id": str(lead_id), "project_id": str(project_id)},
                    actor_user_id=actor_user_id,
                )
            )
        except Exception:
            session.rollback()
            logger.exception("lead.progression_failed", extra={"lead_id": str(lead_id), "project_id": str(project_id)})


lead_conversion_workflow = LeadConversionWorkflow()
