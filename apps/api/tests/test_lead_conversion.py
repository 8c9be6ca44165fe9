from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from contextlib import nullcontext
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events, notify
from app.business.employees.models import Employee
from app.business.projects.models import Project
from app.core.config import get_settings
from app.core.database import Base
from app.crm.conversion import (
    IN_PROGRESS_MESSAGE,
    ConversionLockRegistry,
    LeadConversionWorkflow,
    build_project_record,
    format_conversion_notes,
    map_urgency_to_priority,
)
from app.crm.models import ConsultationRequest, Customer, LeadStatusHistory, PendingReconciliation
from app.crm.progression import StatusProgressionService
from app.crm.service import LeadService
from app.forms.errors import ConversionInProgressError, FormValidationError, LeadAlreadyConvertedError
from app.main import dashboard_refresher


NOW = datetime(2026, 10, 19, 8, 30, 15, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def dashboard_session(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dashboard_refresher, "session_scope", lambda: nullcontext(db_session))


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    notify.sent_notifications.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    notify.sent_notifications.clear()
    get_settings.cache_clear()


class BrokenMarkLeadService(LeadService):
    def mark_converted(self, session, lead_id, project_id, *, changed_by):  # type: ignore[no-untyped-def]
        raise OperationalError("UPDATE consultation_requests", {}, Exception("database is locked"))


class BrokenProgressionService(StatusProgressionService):
    def on_project_created(self, session, lead_id, current_status, project_id, changed_by=None):  # type: ignore[no-untyped-def]
        raise RuntimeError("progression store offline")


class FailingProjectWorkflow(LeadConversionWorkflow):
    def _create_project(self, session, actor_user_id, record):  # type: ignore[no-untyped-def]
        raise OperationalError("INSERT INTO projects", {}, Exception("disk full"))


class UntouchableSession:
    def __getattr__(self, name: str) -> Any:
        raise AssertionError(f"session.{name} used while another conversion held the lead")


def _workflow(**overrides: Any) -> LeadConversionWorkflow:
    values: dict[str, Any] = {"locks": ConversionLockRegistry(), "clock": lambda: NOW}
    values.update(overrides)
    return LeadConversionWorkflow(**values)


def _count(session: Session, model: type) -> int:
    return session.scalar(select(func.count()).select_from(model)) or 0


def _lead(session: Session, **values: Any) -> ConsultationRequest:
    fields: dict[str, Any] = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "phone": "9999999999",
        "service_type": "installation",
        "urgency_level": "high",
        "property_type": "residential",
        "location": "12 Lake Road, Pune",
        "estimated_value": Decimal("120000"),
        "source": "website",
        "preferred_contact_method": "phone",
        "message": "Two split units for the living room",
        "status": "qualified",
    }
    fields.update(values)
    lead = ConsultationRequest(**fields)
    session.add(lead)
    session.commit()
    return lead


def _manager(session: Session) -> Employee:
    employee = Employee(full_name="Meera Iyer", email="meera@example.com", role="manager")
    session.add(employee)
    session.commit()
    return employee


def _overrides(manager: Employee) -> dict[str, Any]:
    return {
        "project_manager_id": str(manager.id),
        "estimated_start_date": "2026-11-01",
        "estimated_end_date": "2026-11-15",
    }


@pytest.mark.parametrize(
    ("urgency", "priority"),
    [("emergency", "high"), ("high", "high"), ("medium", "medium"), ("low", "low"), ("", "low"), (None, "low"), ("unknown", "low")],
)
def test_map_urgency_to_priority(urgency: str | None, priority: str) -> None:
    assert map_urgency_to_priority(urgency) == priority


def test_build_project_record_keeps_protected_fields(db_session: Session) -> None:
    lead = _lead(db_session, urgency_level="emergency", estimated_value=None)
    customer_id = uuid.uuid4()

    record = build_project_record(
        lead,
        customer_id,
        converted_at=NOW,
        overrides={"customer_id": "someone-else", "notes": "overwritten", "project_name": "Living room AC"},
    )

    assert record["customer_id"] == str(customer_id)
    assert record["consultation_request_id"] == str(lead.id)
    assert record["notes"].startswith("CONVERTED FROM LEAD:")
    assert record["project_name"] == "Living room AC"
    assert record["priority"] == "high"
    assert record["status"] == "draft"
    assert record["project_value"] == 0
    assert record["site_address"] == "12 Lake Road, Pune"


def test_conversion_notes_block(db_session: Session) -> None:
    lead = _lead(db_session, company=None, notes=None)

    notes = format_conversion_notes(lead, NOW).splitlines()

    assert notes[0] == "CONVERTED FROM LEAD:"
    assert f"- Lead ID: {lead.id}" in notes
    assert "- Customer: Jane Doe (jane@example.com, 9999999999)" in notes
    assert "- Company: N/A" in notes
    assert "- Original Notes: None" in notes
    assert notes[-1] == "- Conversion Date: 2026-10-19 08:30:15 UTC"


def test_conversion_reuses_customer_matched_by_email(db_session: Session) -> None:
    existing = Customer(name="Jane D.", email="jane@example.com", phone="1111111111")
    db_session.add(existing)
    db_session.commit()
    lead = _lead(db_session)
    manager = _manager(db_session)

    outcome = _workflow().convert(db_session, "user-1", lead.id, _overrides(manager))

    assert outcome.status == "converted"
    assert outcome.customer_id == existing.id
    assert outcome.customer_created is False
    assert outcome.message == f"Lead successfully converted to project {outcome.project_number}!"
    assert _count(db_session, Customer) == 1

    project = db_session.get(Project, outcome.project_id)
    assert project is not None
    assert project.customer_id == existing.id
    assert project.consultation_request_id == lead.id
    assert project.priority == "high"
    assert project.status == "draft"
    assert project.project_number == f"PRJ-{int(NOW.timestamp() * 1000)}"
    assert project.notes is not None and project.notes.startswith("CONVERTED FROM LEAD:")

    db_session.refresh(lead)
    assert lead.status == "won"
    assert lead.converted_to_project_id == project.id
    assert lead.converted_at is not None

    reasons = db_session.scalars(
        select(LeadStatusHistory.change_reason).where(LeadStatusHistory.consultation_request_id == lead.id)
    ).all()
    assert "Converted to project" in reasons
    assert "Project created from lead" in reasons

    event_types = [item["event_type"] for item in events.published_events]
    assert "crm.lead.converted" in event_types
    assert "dashboard.refresh_requested" in event_types
    assert [item["level"] for item in notify.sent_notifications] == ["loading", "success", "success"]


def test_conversion_matches_customer_by_phone(db_session: Session) -> None:
    existing = Customer(name="Jane", email="other@example.com", phone="9999999999")
    db_session.add(existing)
    db_session.commit()
    lead = _lead(db_session)

    outcome = _workflow().convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert outcome.customer_id == existing.id


def test_conversion_creates_customer_from_lead(db_session: Session) -> None:
    lead = _lead(db_session, company="Doe Interiors")

    outcome = _workflow().convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert outcome.customer_created is True
    customer = db_session.get(Customer, outcome.customer_id)
    assert customer is not None
    assert customer.name == "Jane Doe"
    assert customer.company == "Doe Interiors"
    assert customer.address == "12 Lake Road, Pune"
    assert customer.customer_type == "individual"


def test_second_conversion_while_in_flight_is_rejected(db_session: Session) -> None:
    locks = ConversionLockRegistry()
    lead_id = uuid.uuid4()

    with locks.hold(lead_id) as acquired:
        assert acquired
        with pytest.raises(ConversionInProgressError):
            _workflow(locks=locks).convert(UntouchableSession(), "user-1", lead_id, {})  # type: ignore[arg-type]

    assert not locks.is_held(lead_id)
    assert notify.sent_notifications[-1]["level"] == "warning"
    assert notify.sent_notifications[-1]["message"] == IN_PROGRESS_MESSAGE


def test_lock_is_released_after_failure(db_session: Session) -> None:
    locks = ConversionLockRegistry()
    lead_id = uuid.uuid4()

    with pytest.raises(HTTPException) as exc_info:
        _workflow(locks=locks).convert(db_session, "user-1", lead_id, {})

    assert exc_info.value.status_code == 404
    assert not locks.is_held(lead_id)


def test_converted_lead_cannot_be_converted_again(db_session: Session) -> None:
    lead = _lead(db_session)
    workflow = _workflow()
    first = workflow.convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    with pytest.raises(LeadAlreadyConvertedError) as exc_info:
        workflow.convert(db_session, "user-1", lead.id, {})

    assert exc_info.value.project_id == str(first.project_id)
    assert _count(db_session, Project) == 1


def test_failed_lead_update_leaves_reconciliation_marker(db_session: Session) -> None:
    lead = _lead(db_session)

    outcome = _workflow(leads=BrokenMarkLeadService()).convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert outcome.status == "partial"
    assert outcome.warning == (
        f"Project {outcome.project_number} created successfully, but failed to update lead status. "
        "Please manually update the lead."
    )
    assert db_session.get(Project, outcome.project_id) is not None

    marker = db_session.scalar(select(PendingReconciliation))
    assert marker is not None
    assert marker.id == outcome.reconciliation_id
    assert marker.kind == "lead_conversion_status"
    assert marker.entity_id == str(lead.id)
    assert marker.related_entity_id == str(outcome.project_id)
    assert marker.payload["target_status"] == "won"
    assert marker.status == "open"

    db_session.refresh(lead)
    assert lead.status == "qualified"
    assert lead.converted_at is None
    assert events.published_events[-1]["event_type"] == "crm.lead.conversion_partial"
    assert notify.sent_notifications[-1]["level"] == "warning"


def test_progression_failure_does_not_fail_conversion(db_session: Session, caplog: pytest.LogCaptureFixture) -> None:
    lead = _lead(db_session)
    workflow = _workflow(progression=BrokenProgressionService())

    with caplog.at_level(logging.ERROR, logger="app.crm.conversion"):
        outcome = workflow.convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert outcome.status == "converted"
    db_session.refresh(lead)
    assert lead.status == "won"
    assert any(record.getMessage() == "lead.progression_failed" for record in caplog.records)


def test_progression_is_skipped_for_new_leads(db_session: Session) -> None:
    lead = _lead(db_session, status="new")

    outcome = _workflow().convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert outcome.status == "converted"
    reasons = db_session.scalars(
        select(LeadStatusHistory.change_reason).where(LeadStatusHistory.consultation_request_id == lead.id)
    ).all()
    assert reasons == ["Converted to project"]


def test_missing_project_details_remove_the_new_customer(db_session: Session) -> None:
    lead = _lead(db_session)

    with pytest.raises(FormValidationError) as exc_info:
        _workflow().convert(db_session, "user-1", lead.id, {})

    assert {"project_manager_id", "estimated_start_date", "estimated_end_date"} <= set(exc_info.value.errors)
    assert _count(db_session, Customer) == 0
    assert _count(db_session, Project) == 0
    db_session.refresh(lead)
    assert lead.status == "qualified"


def test_storage_failure_during_project_creation_removes_the_new_customer(db_session: Session) -> None:
    lead = _lead(db_session)
    workflow = FailingProjectWorkflow(locks=ConversionLockRegistry(), clock=lambda: NOW)

    with pytest.raises(OperationalError):
        workflow.convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert _count(db_session, Customer) == 0
    assert [entry["action"] for entry in audit.entries_for("crm.customer")] == ["create", "delete"]


def test_existing_customer_is_kept_when_project_creation_fails(db_session: Session) -> None:
    db_session.add(Customer(name="Jane", email="jane@example.com", phone="1"))
    db_session.commit()
    lead = _lead(db_session)
    workflow = FailingProjectWorkflow(locks=ConversionLockRegistry(), clock=lambda: NOW)

    with pytest.raises(OperationalError):
        workflow.convert(db_session, "user-1", lead.id, _overrides(_manager(db_session)))

    assert _count(db_session, Customer) == 1
