from __future__ import annotations

import logging
import uuid
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.crm.models import ConsultationRequest, LeadStatusHistory
from app.crm.progression import PROGRESSION_RULES, ProgressionRule, StatusProgressionService


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


@pytest.fixture()
def service() -> StatusProgressionService:
    return StatusProgressionService()


def _lead(session: Session, status: str) -> ConsultationRequest:
    lead = ConsultationRequest(
        name="Kiran Shah",
        email=f"kiran.{uuid.uuid4().hex[:6]}@example.com",
        phone="9811122233",
        service_type="repair",
        status=status,
    )
    session.add(lead)
    session.commit()
    return lead


def _history(session: Session, lead: ConsultationRequest) -> list[LeadStatusHistory]:
    return list(
        session.scalars(select(LeadStatusHistory).where(LeadStatusHistory.consultation_request_id == lead.id)).all()
    )


@pytest.mark.parametrize(
    ("action", "current_status", "expected_status", "reason"),
    [
        ("contact_attempted", "new", "contacted", "Contact attempted with lead"),
        ("lead_responded", "contacted", "qualified", "Lead responded and showed interest"),
        ("quotation_sent", "contacted", "proposal_sent", "Quotation sent to lead"),
        ("quotation_sent", "qualified", "proposal_sent", "Quotation sent to lead"),
        ("project_created", "qualified", "won", "Project created from lead"),
        ("project_created", "proposal_sent", "won", "Project created from lead"),
        ("lead_lost", "contacted", "lost", "Lead marked as lost"),
        ("lead_lost", "qualified", "lost", "Lead marked as lost"),
        ("lead_lost", "proposal_sent", "lost", "Lead marked as lost"),
    ],
)
def test_rules_move_the_lead_and_record_history(
    db_session: Session,
    service: StatusProgressionService,
    action: str,
    current_status: str,
    expected_status: str,
    reason: str,
) -> None:
    lead = _lead(db_session, current_status)

    result = service.progress(db_session, lead.id, current_status, action, changed_by="user-7")

    assert result.success is True
    assert result.new_status == expected_status
    assert result.message == reason
    db_session.refresh(lead)
    assert lead.status == expected_status

    history = _history(db_session, lead)
    assert len(history) == 1
    assert history[0].previous_status == current_status
    assert history[0].new_status == expected_status
    assert history[0].changed_by == "user-7"
    assert history[0].change_reason == reason


@pytest.mark.parametrize(
    ("action", "current_status"),
    [
        ("contact_attempted", "qualified"),
        ("lead_responded", "new"),
        ("project_created", "new"),
        ("lead_lost", "won"),
        ("site_visit_booked", "contacted"),
    ],
)
def test_missing_rule_leaves_the_lead_untouched(
    db_session: Session,
    service: StatusProgressionService,
    action: str,
    current_status: str,
) -> None:
    lead = _lead(db_session, current_status)

    result = service.progress(db_session, lead.id, current_status, action)

    assert result.success is False
    assert result.new_status is None
    assert result.message == f"No progression rule for {action} from {current_status}"
    db_session.refresh(lead)
    assert lead.status == current_status
    assert _history(db_session, lead) == []


def test_rule_targeting_the_current_status_only_records_history(db_session: Session) -> None:
    rules = PROGRESSION_RULES + (ProgressionRule("site_visit_done", frozenset({"qualified"}), "qualified", "Site visit completed"),)
    service = StatusProgressionService(rules=rules)
    lead = _lead(db_session, "qualified")

    result = service.progress(db_session, lead.id, "qualified", "site_visit_done", changed_by="user-2", data={"visit": "SV-1"})

    assert result.success is True
    assert result.new_status == "qualified"
    assert result.message == "Status already current"
    db_session.refresh(lead)
    assert lead.status == "qualified"

    history = _history(db_session, lead)
    assert len(history) == 1
    assert history[0].previous_status == "qualified"
    assert history[0].new_status == "qualified"
    assert history[0].change_reason == "Site visit completed (status unchanged)"
    assert history[0].notes == "visit=SV-1"


def test_on_quotation_sent_records_quotation_reference(db_session: Session, service: StatusProgressionService) -> None:
    lead = _lead(db_session, "qualified")
    quotation_id = uuid.uuid4()

    result = service.on_quotation_sent(db_session, lead.id, "qualified", quotation_id, changed_by="user-3")

    assert result.new_status == "proposal_sent"
    history = _history(db_session, lead)
    assert [entry.new_status for entry in history] == ["proposal_sent"]
    assert history[0].notes == f"quotation_id={quotation_id}"


def test_on_contact_attempted_records_method(db_session: Session, service: StatusProgressionService) -> None:
    lead = _lead(db_session, "new")

    result = service.on_contact_attempted(db_session, lead.id, "new", changed_by="user-4", method="phone")

    assert result.new_status == "contacted"
    history = _history(db_session, lead)
    assert history[0].notes == "method=phone"
    assert history[0].changed_by == "user-4"


def test_on_contact_attempted_without_method_has_no_notes(db_session: Session, service: StatusProgressionService) -> None:
    lead = _lead(db_session, "new")

    service.on_contact_attempted(db_session, lead.id, "new")

    assert _history(db_session, lead)[0].notes is None


def test_on_project_created_logs_the_transition(
    db_session: Session,
    service: StatusProgressionService,
    caplog: pytest.LogCaptureFixture,
) -> None:
    lead = _lead(db_session, "proposal_sent")
    project_id = uuid.uuid4()

    with caplog.at_level(logging.INFO, logger="app.crm.progression"):
        result = service.on_project_created(db_session, lead.id, "proposal_sent", project_id, changed_by="user-5")

    assert result.new_status == "won"
    assert _history(db_session, lead)[0].notes == f"project_id={project_id}"
    record = next(item for item in caplog.records if item.getMessage() == "lead.progressed")
    assert record.lead_id == str(lead.id)
    assert record.action == "project_created"
    assert record.status == "won"
