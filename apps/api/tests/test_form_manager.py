from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events, notify
from app.business.billing.models import Invoice, InvoiceItem, Quotation, QuotationItem
from app.business.employees.models import Employee
from app.business.projects.models import Project, ProjectActivity
from app.core.config import get_settings
from app.core.database import Base
from app.crm.models import ConsultationRequest, Customer
from app.forms.errors import FormValidationError, MissingReferenceError, RecordNotFoundError, UnknownModuleError
from app.forms.manager import FormManager, coerce_column_value, serialize_value, table_for


NOW = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)


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
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    notify.sent_notifications.clear()
    get_settings.cache_clear()


def _manager(module: str, session: Session) -> FormManager:
    return FormManager(module, session, actor_user_id="user-1", clock=lambda: NOW)


def _count(session: Session, model: type) -> int:
    return session.scalar(select(func.count()).select_from(model)) or 0


def _customer(session: Session) -> Customer:
    customer = Customer(name="Acme Cooling", email="ops@acme.test", phone="9876543210")
    session.add(customer)
    session.commit()
    return customer


def _project(session: Session, customer: Customer) -> Project:
    project = Project(
        project_number="PRJ-1",
        project_name="Office retrofit",
        project_type="installation",
        customer_id=customer.id,
    )
    session.add(project)
    session.commit()
    return project


def _items() -> list[dict[str, object]]:
    return [
        {"id": "1", "description": "AC unit", "quantity": 2, "unit_price": 15000, "total": 30000},
        {"id": "2", "description": "", "quantity": 1, "unit_price": 0, "total": 0},
    ]


def _new_customer_quotation(project_id: str) -> dict[str, object]:
    return {
        "customer_type": "new",
        "customer_name": "Jane Doe",
        "customer_email": "jane@x.com",
        "customer_phone": "9999999999",
        "customer_address": "123 St",
        "project_id": project_id,
        "valid_until": "2026-11-30",
        "quote_number": "QT-2001",
        "tax_rate": 18,
        "discount_percentage": 0,
        "items": _items(),
    }


class FailingItemsFormManager(FormManager):
    def _add_line_items(self, item_model, parent_key, parent_id, items):  # type: ignore[no-untyped-def]
        raise OperationalError("INSERT INTO quotation_items", {}, Exception("disk I/O error"))


def test_unknown_module_is_rejected(db_session: Session) -> None:
    with pytest.raises(UnknownModuleError):
        FormManager("warehouses", db_session)
    with pytest.raises(UnknownModuleError):
        table_for("warehouses")


def test_table_names() -> None:
    assert table_for("leads") == "consultation_requests"
    assert table_for("sitevisits") == "site_visits"
    assert table_for("amc") == "amc_contracts"


def test_create_lead_applies_defaults_and_notifies(db_session: Session) -> None:
    record = _manager("leads", db_session).create(
        {
            "name": "Anita Rao",
            "email": "anita@example.com",
            "phone": "9876500000",
            "service_type": "repair",
            "urgency_level": "high",
            "source": "referral",
            "message": "Unit leaking",
            "estimated_value": "",
        }
    )

    lead = db_session.get(ConsultationRequest, record["id"])
    assert lead is not None
    assert lead.status == "new"
    assert lead.estimated_value is None

    assert notify.sent_notifications[-1]["level"] == "success"
    assert notify.sent_notifications[-1]["message"] == "Lead created successfully"
    assert audit.audit_entries[-1]["entity_type"] == "consultation_requests"
    assert events.published_events[-1]["event_type"] == "forms.leads.created"


def test_create_employee_generates_reference_number(db_session: Session) -> None:
    record = _manager("employees", db_session).create(
        {"full_name": "Ravi Kumar", "email": "ravi@example.com", "department": "technical", "role": "technician"}
    )

    assert record["employee_id"] == f"EMP-{int(NOW.timestamp() * 1000)}"
    assert record["hire_date"] == date(2026, 10, 19)
    assert record["status"] == "active"


def test_create_project_records_activity(db_session: Session) -> None:
    customer = _customer(db_session)

    record = _manager("projects", db_session).create(
        {
            "project_name": "Villa HVAC",
            "project_type": "installation",
            "priority": "high",
            "customer_id": str(customer.id),
            "estimated_start_date": "2026-11-01",
            "project_value": "250000",
        }
    )

    assert record["project_number"].startswith("PRJ-")
    assert record["status"] == "planning"
    assert record["created_by"] == "user-1"
    assert record["project_value"] == Decimal("250000.00")
    activity = db_session.scalar(select(ProjectActivity).where(ProjectActivity.project_id == record["id"]))
    assert activity is not None
    assert activity.activity_type == "project_created"


def test_quotation_with_new_customer_writes_customer_parent_and_items(db_session: Session) -> None:
    customer = _customer(db_session)
    project = _project(db_session, customer)

    record = _manager("quotations", db_session).create(_new_customer_quotation(str(project.id)))

    assert record["quotation_number"] == "QT-2001"
    assert record["subtotal"] == Decimal("30000.00")
    assert record["tax_amount"] == Decimal("5400.00")
    assert record["total_amount"] == Decimal("35400.00")
    assert record["status"] == "draft"
    assert len(record["items"]) == 1
    assert record["items"][0]["total_amount"] == Decimal("30000.00")
    assert record["items"][0]["quotation_id"] == record["id"]

    new_customer = db_session.get(Customer, record["customer_id"])
    assert new_customer is not None
    assert new_customer.name == "Jane Doe"
    assert _count(db_session, Customer) == 2

    serialized = serialize_value(record)
    assert serialized["total_amount"] == 35400.0
    assert serialized["items"][0]["quotation_id"] == str(record["id"])


def test_quotation_without_new_customer_name_fails_before_any_insert(db_session: Session) -> None:
    customer = _customer(db_session)
    project = _project(db_session, customer)
    payload = _new_customer_quotation(str(project.id))
    payload["customer_name"] = ""

    with pytest.raises(MissingReferenceError) as exc_info:
        _manager("quotations", db_session).create(payload)

    assert exc_info.value.field_name == "customer_name"
    assert _count(db_session, Customer) == 1
    assert _count(db_session, Quotation) == 0


def test_quotation_without_project_fails_fast(db_session: Session) -> None:
    payload = _new_customer_quotation("")

    with pytest.raises(MissingReferenceError) as exc_info:
        _manager("quotations", db_session).create(payload)

    assert exc_info.value.message == "Project is required for quotations"
    assert _count(db_session, Customer) == 0


def test_item_failure_rolls_back_parent_and_customer(db_session: Session) -> None:
    customer = _customer(db_session)
    project = _project(db_session, customer)
    manager = FailingItemsFormManager("quotations", db_session, actor_user_id="user-1", clock=lambda: NOW)

    with pytest.raises(OperationalError):
        manager.create(_new_customer_quotation(str(project.id)))

    assert _count(db_session, Quotation) == 0
    assert _count(db_session, QuotationItem) == 0
    assert _count(db_session, Customer) == 1
    assert notify.sent_notifications[-1]["level"] == "error"
    assert notify.sent_notifications[-1]["message"] == "Failed to create quotation"


def test_invoice_defaults_due_date_and_terms(db_session: Session) -> None:
    customer = _customer(db_session)
    project = _project(db_session, customer)

    record = _manager("invoices", db_session).create(
        {
            "project_id": str(project.id),
            "customer_id": str(customer.id),
            "invoice_type": "final",
            "invoice_date": "2026-10-01",
            "tax_rate": 18,
            "discount_percentage": 10,
            "items": [{"description": "Final installation", "quantity": 1, "unit_price": 10000}],
        }
    )

    assert record["invoice_number"] == f"INV-{int(NOW.timestamp() * 1000)}"
    assert record["due_date"] == date(2026, 10, 31)
    assert record["payment_terms"] == "30 days"
    assert record["discount_amount"] == Decimal("1000.00")
    assert record["tax_amount"] == Decimal("1620.00")
    assert record["total_amount"] == Decimal("10620.00")
    assert _count(db_session, InvoiceItem) == 1


def test_invoice_requires_customer(db_session: Session) -> None:
    customer = _customer(db_session)
    project = _project(db_session, customer)

    with pytest.raises(MissingReferenceError) as exc_info:
        _manager("invoices", db_session).create(
            {"project_id": str(project.id), "items": [{"description": "x", "quantity": 1, "unit_price": 1}]}
        )

    assert exc_info.value.field_name == "customer_id"
    assert _count(db_session, Invoice) == 0


def test_update_and_delete(db_session: Session) -> None:
    manager = _manager("employees", db_session)
    created = manager.create({"full_name": "Meera Iyer", "email": "meera@example.com", "role": "manager"})

    updated = manager.update(str(created["id"]), {"designation": "Service Head", "salary": "85000", "id": str(uuid.uuid4())})
    assert updated["id"] == created["id"]
    assert updated["designation"] == "Service Head"
    assert updated["salary"] == Decimal("85000.00")
    assert audit.audit_entries[-1]["before"]["designation"] is None

    manager.delete(created["id"])
    assert db_session.get(Employee, created["id"]) is None
    assert [item["message"] for item in notify.sent_notifications] == [
        "Employee created successfully",
        "Employee updated successfully",
        "Employee deleted successfully",
    ]


def test_update_rejects_bad_values(db_session: Session) -> None:
    manager = _manager("leads", db_session)
    created = manager.create({"name": "Anita Rao"})

    with pytest.raises(FormValidationError) as exc_info:
        manager.update(created["id"], {"estimated_value": "lots"})

    assert exc_info.value.errors == {"estimated_value": "Invalid value for estimated_value"}


def test_missing_records(db_session: Session) -> None:
    manager = _manager("payments", db_session)

    with pytest.raises(RecordNotFoundError):
        manager.update(uuid.uuid4(), {"notes": "x"})
    with pytest.raises(RecordNotFoundError):
        manager.delete("not-a-uuid")


def test_coerce_column_value() -> None:
    assert coerce_column_value(Invoice, "invoice_date", "2026-10-01T10:00:00") == date(2026, 10, 1)
    assert coerce_column_value(Invoice, "subtotal", 12.5) == Decimal("12.5")
    assert coerce_column_value(Invoice, "notes", 42) == "42"
    assert coerce_column_value(Customer, "is_active", "false") is False
    assert coerce_column_value(Invoice, "project_id", "") is None


def test_coerce_rejects_non_finite_amounts() -> None:
    with pytest.raises(FormValidationError) as exc_info:
        coerce_column_value(Invoice, "subtotal", "NaN")

    assert exc_info.value.errors == {"subtotal": "Invalid value for subtotal"}
