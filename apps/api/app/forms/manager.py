from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import audit, events
from app.business.billing.models import Invoice, InvoiceItem, Payment, Quotation, QuotationItem
from app.business.employees.models import Employee
from app.business.field_service.models import AMCContract, Installation, SiteVisit
from app.business.projects.models import Project, ProjectActivity
from app.core.config import get_settings
from app.core.database import Base
from app.crm.models import ConsultationRequest, Customer
from app.forms.defaults import DEFAULT_DISCOUNT_PERCENTAGE, DEFAULT_TAX_RATE, reference_number
from app.forms.errors import FormValidationError, MissingReferenceError, RecordNotFoundError, UnknownModuleError
from app.forms.line_items import LineItem, Totals, compute_totals, quantize, valid_line_items
from app.forms.validation import is_empty
from app.metrics import observe_form_submission
from app.notify import Notifier, notifier as default_notifier


logger = logging.getLogger("app.forms")

MODULE_MODELS: dict[str, type[Base]] = {
    "leads": ConsultationRequest,
    "employees": Employee,
    "projects": Project,
    "quotations": Quotation,
    "invoices": Invoice,
    "payments": Payment,
    "sitevisits": SiteVisit,
    "installations": Installation,
    "amc": AMCContract,
}

MODULE_LABELS = {
    "leads": "Lead",
    "employees": "Employee",
    "projects": "Project",
    "quotations": "Quotation",
    "invoices": "Invoice",
    "payments": "Payment",
    "sitevisits": "Site visit",
    "installations": "Installation",
    "amc": "AMC contract",
}

_FIELD_ALIASES = {
    "quotations": {"quote_number": "quotation_number"},
}
_READ_ONLY_COLUMNS = {"id", "created_at", "updated_at"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def table_for(module: str) -> str:
    model = MODULE_MODELS.get(module)
    if model is None:
        raise UnknownModuleError(module)
    return model.__tablename__


def serialize_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    return value


def next_reference_number(session: Session, column: Any, prefix: str, now: datetime) -> str:
    """Timestamp-based number for ``column``, stepped forward past any number already stored."""
    number = reference_number(prefix, now)
    while session.scalar(select(column).where(column == number).limit(1)) is not None:
        now = now + timedelta(milliseconds=1)
        number = reference_number(prefix, now)
    return number


def to_record(entity: Base) -> dict[str, Any]:
    record = {attr.key: getattr(entity, attr.key) for attr in inspect(entity).mapper.column_attrs}
    items = getattr(entity, "items", None)
    if isinstance(items, list):
        record["items"] = [to_record(item) for item in items]
    return record


def _python_type(column: Any) -> type | None:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def coerce_column_value(model: type[Base], field_name: str, value: Any) -> Any:
    column = inspect(model).columns[field_name]
    python_type = _python_type(column)
    if value is None or python_type is None:
        return value
    if python_type is str:
        return str(value)
    if value == "":
        return None
    try:
        if python_type is uuid.UUID:
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        if python_type is date:
            return value if isinstance(value, date) else date.fromisoformat(str(value)[:10])
        if python_type is datetime:
            return value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
        if python_type is Decimal:
            amount = Decimal(str(value))
            if not amount.is_finite():
                raise ValueError(f"non-finite amount {value!r}")
            return amount
        if python_type is int:
            return int(value)
        if python_type is bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in {"true", "false"}:
                return value.lower() == "true"
            raise ValueError(f"invalid boolean {value!r}")
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise FormValidationError({field_name: f"Invalid value for {field_name}"}) from exc
    return value


@dataclass(slots=True)
class FormManager:
    """Maps one completed form record onto storage writes for its module."""

    module: str
    session: Session
    actor_user_id: str | None = None
    notifier: Notifier = field(default=default_notifier)
    clock: Callable[[], datetime] = utcnow

    def __post_init__(self) -> None:
        if self.module not in MODULE_MODELS:
            raise UnknownModuleError(self.module)

    @property
    def model(self) -> type[Base]:
        return MODULE_MODELS[self.module]

    @property
    def label(self) -> str:
        return MODULE_LABELS[self.module]

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def prepare_form_data(self, record: Mapping[str, Any]) -> dict[str, Any]:
        data = dict(record)
        for source, target in _FIELD_ALIASES.get(self.module, {}).items():
            if source in data and is_empty(data.get(target)):
                data[target] = data.pop(source)
            else:
                data.pop(source, None)

        now = self.clock()
        today = now.date().isoformat()

        def fill(name: str, value: Any) -> None:
            if is_empty(data.get(name)):
                data[name] = value

        if self.module == "leads":
            fill("status", "new")
        elif self.module == "employees":
            fill("hire_date", today)
            fill("status", "active")
            fill("employee_id", next_reference_number(self.session, Employee.employee_id, "EMP", now))
        elif self.module == "projects":
            fill("project_number", next_reference_number(self.session, Project.project_number, "PRJ", now))
            fill("status", "planning")
            fill("created_by", self.actor_user_id)
        elif self.module == "quotations":
            fill("quotation_number", next_reference_number(self.session, Quotation.quotation_number, "QT", now))
            fill("status", "draft")
            fill("created_by", self.actor_user_id)
        elif self.module == "invoices":
            fill("invoice_number", next_reference_number(self.session, Invoice.invoice_number, "INV", now))
            fill("status", "draft")
            fill("invoice_date", today)
            invoice_date = coerce_column_value(Invoice, "invoice_date", data["invoice_date"])
            fill("due_date", (invoice_date + timedelta(days=get_settings().invoice_due_days)).isoformat())
            fill("payment_terms", "30 days")
            fill("created_by", self.actor_user_id)
        elif self.module == "payments":
            fill("payment_date", today)
            fill("status", "completed")
        elif self.module in {"sitevisits", "installations"}:
            fill("status", "scheduled")
        elif self.module == "amc":
            fill("contract_number", next_reference_number(self.session, AMCContract.contract_number, "AMC", now))
            fill("status", "active")
        return data

    def create(self, record: Mapping[str, Any]) -> dict[str, Any]:
        data = self.prepare_form_data(record)
        try:
            if self.module == "quotations":
                entity = self._create_quotation(data)
            elif self.module == "invoices":
                entity = self._create_invoice(data)
            else:
                entity = self._insert(self.model, data)
                if self.module == "projects":
                    self._record_project_activity(entity)
            self.session.commit()
        except (MissingReferenceError, FormValidationError):
            self.session.rollback()
            observe_form_submission(self.module, "create", "rejected")
            raise
        except SQLAlchemyError as exc:
            self._fail("create", exc)
            raise

        self.session.refresh(entity)
        result = to_record(entity)
        self._succeed("create", result["id"], before=None, after=result)
        return result

    def update(self, record_id: uuid.UUID | str, record: Mapping[str, Any]) -> dict[str, Any]:
        entity = self._get(record_id)
        before = to_record(entity)
        data = dict(record)
        for source, target in _FIELD_ALIASES.get(self.module, {}).items():
            if source in data:
                data[target] = data.pop(source)
        try:
            for name, value in self._column_values(self.model, data).items():
                setattr(entity, name, value)
            self.session.commit()
        except FormValidationError:
            self.session.rollback()
            observe_form_submission(self.module, "update", "rejected")
            raise
        except SQLAlchemyError as exc:
            self._fail("update", exc, record_id=str(record_id))
            raise

        self.session.refresh(entity)
        result = to_record(entity)
        self._succeed("update", result["id"], before=before, after=result)
        return result

    def delete(self, record_id: uuid.UUID | str) -> None:
        entity = self._get(record_id)
        before = to_record(entity)
        try:
            self.session.delete(entity)
            self.session.commit()
        except SQLAlchemyError as exc:
            self._fail("delete", exc, record_id=str(record_id))
            raise
        self._succeed("delete", before["id"], before=before, after=None)

    def _get(self, record_id: uuid.UUID | str) -> Base:
        try:
            key = record_id if isinstance(record_id, uuid.UUID) else uuid.UUID(str(record_id))
        except ValueError as exc:
            raise RecordNotFoundError(self.module, str(record_id)) from exc
        entity = self.session.get(self.model, key)
        if entity is None:
            raise RecordNotFoundError(self.module, str(record_id))
        return entity

    def _column_values(self, model: type[Base], data: Mapping[str, Any]) -> dict[str, Any]:
        columns = {column.key for column in inspect(model).columns}
        return {
            name: coerce_column_value(model, name, value)
            for name, value in data.items()
            if name in columns and name not in _READ_ONLY_COLUMNS
        }

    def _insert(self, model: type[Base], data: Mapping[str, Any]) -> Base:
        values = {name: value for name, value in self._column_values(model, data).items() if value is not None}
        entity = model(**values)
        self.session.add(entity)
        self.session.flush()
        return entity

    def _record_project_activity(self, project: Project) -> None:
        if project.consultation_request_id is not None:
            description = f"Project {project.project_number} created from lead {project.consultation_request_id}"
        else:
            description = f"Project {project.project_number} created"
        self.session.add(
            ProjectActivity(
                project_id=project.id,
                activity_type="project_created",
                description=description,
                performed_by=self.actor_user_id,
            )
        )

    def _resolve_document_customer(self, data: dict[str, Any]) -> None:
        customer_type = data.get("customer_type") or "existing"
        if customer_type == "existing":
            if is_empty(data.get("customer_id")):
                raise MissingReferenceError("customer_id", "Customer is required")
            return

        for name in ("customer_name", "customer_email", "customer_phone", "customer_address"):
            if is_empty(data.get(name)):
                label = name.replace("_", " ").capitalize()
                raise MissingReferenceError(name, f"{label} is required")

    def _insert_document_customer(self, data: dict[str, Any]) -> None:
        if (data.get("customer_type") or "existing") == "existing":
            return
        customer = self._insert(
            Customer,
            {
                "name": str(data["customer_name"]).strip(),
                "email": str(data["customer_email"]).strip(),
                "phone": str(data["customer_phone"]).strip(),
                "address": data.get("customer_address"),
                "customer_type": "individual",
                "is_active": True,
            },
        )
        data["customer_id"] = customer.id

    def _document_totals(self, data: dict[str, Any]) -> tuple[list[LineItem], Totals]:
        fill_defaults = {"tax_rate": DEFAULT_TAX_RATE, "discount_percentage": DEFAULT_DISCOUNT_PERCENTAGE}
        for name, value in fill_defaults.items():
            if is_empty(data.get(name)):
                data[name] = value
        items = valid_line_items(data.get("items"))
        totals = compute_totals(items, data["tax_rate"], data["discount_percentage"])
        data.update(totals.as_dict())
        return items, totals

    def _add_line_items(self, item_model: type[Base], parent_key: str, parent_id: uuid.UUID, items: list[LineItem]) -> None:
        for position, item in enumerate(items, start=1):
            self.session.add(
                item_model(
                    **{parent_key: parent_id},
                    position=position,
                    description=item.description.strip(),
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_amount=quantize(item.total),
                )
            )
        self.session.flush()

    def _create_quotation(self, data: dict[str, Any]) -> Quotation:
        if is_empty(data.get("project_id")):
            raise MissingReferenceError("project_id", "Project is required for quotations")
        self._resolve_document_customer(data)
        items, _ = self._document_totals(data)

        self._insert_document_customer(data)
        quotation = self._insert(Quotation, data)
        self._add_line_items(QuotationItem, "quotation_id", quotation.id, items)
        return quotation

    def _create_invoice(self, data: dict[str, Any]) -> Invoice:
        if is_empty(data.get("project_id")):
            raise MissingReferenceError("project_id", "Project is required for invoices")
        if is_empty(data.get("customer_id")):
            raise MissingReferenceError("customer_id", "Customer is required for invoices")
        items, _ = self._document_totals(data)

        invoice = self._insert(Invoice, data)
        self._add_line_items(InvoiceItem, "invoice_id", invoice.id, items)
        return invoice

    def _succeed(self, action: str, record_id: Any, *, before: dict[str, Any] | None, after: dict[str, Any] | None) -> None:
        past = {"create": "created", "update": "updated", "delete": "deleted"}[action]
        audit.record(
            actor_user_id=self.actor_user_id,
            entity_type=self.table_name,
            entity_id=str(record_id),
            action=action,
            before=serialize_value(before) if before is not None else None,
            after=serialize_value(after) if after is not None else None,
        )
        events.publish(
            events.build_envelope(
                f"forms.{self.module}.{past}",
                {"record_id": str(record_id), "table": self.table_name},
                actor_user_id=self.actor_user_id,
            )
        )
        observe_form_submission(self.module, action, "success")
        logger.info("form.%s", action, extra={"form_module": self.module, "action": action, "record_id": str(record_id)})
        self.notifier.success(f"{self.label} {past} successfully")

    def _fail(self, action: str, exc: Exception, record_id: str | None = None) -> None:
        self.session.rollback()
        observe_form_submission(self.module, action, "failure")
        logger.exception(
            "form.%s_failed",
            action,
            extra={"form_module": self.module, "action": action, "record_id": record_id, "error": str(exc)[:500]},
        )
        self.notifier.error(f"Failed to {action} {self.label.lower()}", detail=str(exc)[:500])
