from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.business.employees.models import Employee
from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.context import reset_correlation_id, set_correlation_id
from app.logging import JsonLogFormatter, configure_logging
from app.main import app
from app.middleware.rate_limit import reset_rate_limiter


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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


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


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    path = f"/api/consultation-requests/{uuid.uuid4()}"
    response = client.get(path, headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/consultation-requests/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_form_logs_carry_module_and_correlation_id(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    employee = Employee(full_name="Log Employee", email="log@example.com", role="technician")
    db_session.add(employee)
    db_session.commit()

    response = client.patch(
        f"/api/forms/employees/{employee.id}",
        json={"data": {"designation": "Senior Technician"}},
        headers={"X-Correlation-Id": "abc-456"},
    )
    assert response.status_code == 200

    form_records = [record for record in caplog.records if record.name == "app.forms"]
    assert any(
        record.getMessage() == "form.update"
        and getattr(record, "form_module", None) == "employees"
        and getattr(record, "record_id", None) == str(employee.id)
        and getattr(record, "correlation_id", None) == "abc-456"
        for record in form_records
    )


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.makeLogRecord(
        {
            "name": "app.forms",
            "levelname": "INFO",
            "msg": "form.create",
            "form_module": "quotations",
            "record_id": "r-1",
            "secret": "hidden",
            "correlation_id": "corr-1",
            "error": "x" * 900,
        }
    )

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "form.create"
    assert payload["correlation_id"] == "corr-1"
    assert payload["fields"]["form_module"] == "quotations"
    assert payload["fields"]["record_id"] == "r-1"
    assert "secret" not in payload["fields"]
    assert len(payload["fields"]["error"]) == 500


def test_json_formatter_uses_record_time_and_includes_exceptions() -> None:
    try:
        raise RuntimeError("refresh failed")
    except RuntimeError:
        record = logging.getLogger("app.crm.dashboard").makeRecord(
            "app.crm.dashboard", logging.ERROR, __file__, 1, "dashboard_refresh_failed", (), sys.exc_info()
        )
    record.created = 0.0

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["ts"] == "1970-01-01T00:00:00+00:00"
    assert payload["level"] == "ERROR"
    assert "RuntimeError: refresh failed" in payload["fields"]["exception"]


def test_configure_logging_installs_a_single_handler_and_stamps_correlation_ids() -> None:
    root = logging.getLogger()
    original_level = root.level
    handler = configure_logging("debug")
    try:
        assert configure_logging("warning") is handler
        assert sum(1 for item in root.handlers if item is handler) == 1
        assert handler.level == logging.WARNING
        assert isinstance(handler.formatter, JsonLogFormatter)

        token = set_correlation_id("corr-789")
        try:
            record = logging.getLogger("app.forms").makeRecord("app.forms", logging.INFO, __file__, 1, "form.create", (), None)
        finally:
            reset_correlation_id(token)
        assert record.correlation_id == "corr-789"
    finally:
        configure_logging("info")
        root.setLevel(original_level)


def test_configure_logging_falls_back_to_info_for_unknown_levels() -> None:
    handler = configure_logging("chatty")
    try:
        assert handler.level == logging.INFO
    finally:
        configure_logging("info")
