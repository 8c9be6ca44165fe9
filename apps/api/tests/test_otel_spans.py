from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import nullcontext

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from app.business.employees.models import Employee
from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.conversion import conversion_locks
from app.main import app, dashboard_refresher
from app.middleware.rate_limit import reset_rate_limiter
from app.otel import setup_inmemory_otel


LEAD = {
    "name": "OTel Lead",
    "email": "otel@example.com",
    "phone": "9999999999",
    "service_type": "installation",
    "urgency_level": "high",
    "property_type": "commercial",
    "source": "website",
    "preferred_contact_method": "phone",
    "message": "Cooling for the server room",
    "location": "Data centre, Plot 9, Hyderabad",
}


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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", roles=["admin"], email="admin@example.com", name="Admin")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.post("/api/consultation-requests", json=LEAD, headers={"X-Correlation-Id": "otel-corr-1"})
    assert response.status_code == 201

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_conversion_spans_carry_lead_and_project(
    client: TestClient,
    db_session: Session,
    span_exporter: InMemorySpanExporter,
) -> None:
    lead = client.post("/api/consultation-requests", json=LEAD).json()["data"]
    manager = Employee(full_name="OTel Manager", email="otel.manager@example.com", role="manager")
    db_session.add(manager)
    db_session.commit()

    response = client.post(
        f"/api/consultation-requests/{lead['id']}/convert",
        json={
            "overrides": {
                "project_manager_id": str(manager.id),
                "estimated_start_date": "2026-11-01",
                "estimated_end_date": "2026-11-30",
            }
        },
        headers={"X-Correlation-Id": "otel-convert-1"},
    )
    assert response.status_code == 201
    project_id = response.json()["data"]["project_id"]

    spans = span_exporter.get_finished_spans()
    names = {span.name for span in spans}
    assert {
        "crm.lead.convert",
        "crm.lead.convert.resolve_customer",
        "crm.lead.convert.create_project",
        "crm.lead.convert.mark_lead",
    } <= names

    root = next(span for span in spans if span.name == "crm.lead.convert")
    assert root.attributes.get("lead_id") == lead["id"]
    assert root.attributes.get("project_id") == project_id
    assert root.attributes.get("outcome") == "converted"
    assert root.attributes.get("correlation_id") == "otel-convert-1"

    customer_span = next(span for span in spans if span.name == "crm.lead.convert.resolve_customer")
    assert customer_span.attributes.get("customer_created") is True


def test_in_flight_conversion_opens_no_span(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    lead_id = str(uuid.uuid4())
    with conversion_locks.hold(lead_id):
        response = client.post(f"/api/consultation-requests/{lead_id}/convert", json={"overrides": {}})

    assert response.status_code == 409
    assert not [span for span in span_exporter.get_finished_spans() if span.name == "crm.lead.convert"]
