from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events, notify
from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter


LEAD = {
    "name": "Corr Lead",
    "email": "corr@example.com",
    "phone": "9999999999",
    "service_type": "maintenance",
    "urgency_level": "medium",
    "property_type": "commercial",
    "source": "referral",
    "preferred_contact_method": "email",
    "message": "Annual maintenance for the office",
    "location": "4 MG Road, Bengaluru",
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
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    notify.sent_notifications.clear()
    reset_rate_limiter()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    notify.sent_notifications.clear()
    reset_rate_limiter()
    get_settings.cache_clear()


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


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get(f"/api/consultation-requests/{uuid.uuid4()}")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get(f"/api/consultation-requests/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_request_id_header_is_accepted(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-Id": "req-77"})
    assert response.headers.get("x-correlation-id") == "req-77"


def test_oversized_correlation_id_is_replaced(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "x" * 500})
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    assert header_value != "x" * 500


def test_audit_and_events_use_request_correlation_id(client: TestClient) -> None:
    response = client.post("/api/consultation-requests", json=LEAD, headers={"X-Correlation-Id": "corr-audit-1"})
    assert response.status_code == 201

    lead_audits = [entry for entry in audit.audit_entries if entry.get("entity_type") == "crm.lead"]
    assert lead_audits
    assert lead_audits[-1]["correlation_id"] == "corr-audit-1"

    created_events = [item for item in events.published_events if item.get("event_type") == "crm.lead.created"]
    assert created_events
    assert created_events[-1].get("correlation_id") == "corr-audit-1"


def test_notifications_carry_correlation_id(client: TestClient) -> None:
    response = client.post(
        "/api/forms/employees",
        json={
            "data": {
                "full_name": "Corr Employee",
                "email": "corr.employee@example.com",
                "phone": "9876500000",
                "department": "technical",
                "role": "technician",
                "designation": "Technician",
                "hire_date": "2026-10-01",
                "status": "active",
            }
        },
        headers={"X-Correlation-Id": "corr-notify-1"},
    )
    assert response.status_code == 201
    assert [item["correlation_id"] for item in response.json()["notifications"]] == ["corr-notify-1"]


def test_rate_limited_response_includes_correlation_id(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_MUTATIONS_PER_MINUTE", "1")
    get_settings.cache_clear()
    reset_rate_limiter()

    first = client.post("/api/consultation-requests", json=LEAD, headers={"X-Correlation-Id": "corr-rate-1"})
    assert first.status_code == 201

    second = client.post("/api/consultation-requests", json=LEAD, headers={"X-Correlation-Id": "corr-rate-1"})
    assert second.status_code == 429
    payload = second.json()
    assert payload["correlation_id"] == "corr-rate-1"
    assert second.headers.get("x-correlation-id") == "corr-rate-1"
