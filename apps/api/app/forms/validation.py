from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from app.forms.descriptors import FieldDescriptor, FormDescriptor
from app.forms.line_items import totals_for_record, valid_line_items

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")

NEW_CUSTOMER_FIELDS = (
    ("customer_name", "Customer name"),
    ("customer_email", "Customer email"),
    ("customer_phone", "Customer phone"),
    ("customer_address", "Customer address"),
)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_RE.match(_PHONE_SEPARATORS_RE.sub("", value)))


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _check_field(field: FieldDescriptor, value: Any) -> str | None:
    if field.type == "line-items":
        if field.required and not valid_line_items(value):
            return "At least one valid line item is required"
        return None

    if is_empty(value):
        return f"{field.label} is required" if field.required else None

    if field.type == "email" and not is_valid_email(str(value).strip()):
        return "Invalid email format"
    if field.type == "tel" and not is_valid_phone(str(value)):
        return "Invalid phone format"
    if field.type in {"number", "currency"}:
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return f"{field.label} must be a number"
        if not number.is_finite():
            return f"{field.label} must be a number"
        if field.min is not None and number < Decimal(str(field.min)):
            return f"{field.label} must be at least {field.min:g}"
        if field.max is not None and number > Decimal(str(field.max)):
            return f"{field.label} must be at most {field.max:g}"
    if field.type == "date" and _parse_date(value) is None:
        return f"{field.label} must be a valid date"

    if field.validator is not None:
        return field.validator(value)
    return None


def validate_form_data(record: Mapping[str, Any], descriptor: FormDescriptor) -> dict[str, str]:
    """Field-level checks for every field visible in ``record``.

    Hidden fields (by field or section predicate) are skipped entirely, so a
    stale value left behind by a visibility switch never blocks a submit.
    """
    errors: dict[str, str] = {}
    for field in descriptor.visible_fields(record):
        if field.type == "display":
            continue
        message = _check_field(field, record.get(field.name))
        if message:
            errors[field.name] = message
    return errors


def validate_quotation(record: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    customer_type = record.get("customer_type")
    if customer_type == "existing":
        if is_empty(record.get("customer_id")):
            errors["customer_id"] = "Please select a customer"
    elif customer_type in {"new", "consultation"}:
        for name, label in NEW_CUSTOMER_FIELDS:
            if is_empty(record.get(name)):
                errors[name] = f"{label} is required"
    else:
        errors["customer_type"] = "Please choose how the customer is identified"

    if not valid_line_items(record.get("items")):
        errors["items"] = "At least one valid item is required"
    if is_empty(record.get("project_id")):
        errors["project_id"] = "Project is required for quotations"
    return errors


def validate_invoice(record: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    if is_empty(record.get("project_id")):
        errors["project_id"] = "Project is required"
    if is_empty(record.get("customer_id")):
        errors["customer_id"] = "Customer is required"
    if is_empty(record.get("invoice_type")):
        errors["invoice_type"] = "Invoice type is required"
    if is_empty(record.get("payment_terms")):
        errors["payment_terms"] = "Payment terms are required"

    due_date = _parse_date(record.get("due_date"))
    if due_date is None:
        errors["due_date"] = "Due date is required"
    else:
        invoice_date = _parse_date(record.get("invoice_date"))
        if invoice_date is not None and due_date < invoice_date:
            errors["due_date"] = "Due date cannot be before invoice date"

    if not valid_line_items(record.get("items")):
        errors["items"] = "At least one valid item is required"
    elif totals_for_record(record).total_amount <= 0:
        errors["total_amount"] = "Total amount must be greater than zero"
    return errors


_MODULE_RULES = {
    "quotations": validate_quotation,
    "invoices": validate_invoice,
}


def validate_submission(record: Mapping[str, Any], descriptor: FormDescriptor) -> dict[str, str]:
    errors = validate_form_data(record, descriptor)
    module_rules = _MODULE_RULES.get(descriptor.module)
    if module_rules is not None:
        for name, message in module_rules(record).items():
            errors.setdefault(name, message)
    return errors


def validate_partial(record: Mapping[str, Any], descriptor: FormDescriptor) -> dict[str, str]:
    """Field-level checks for the keys present in ``record`` only; used for patches."""
    errors: dict[str, str] = {}
    for name, value in record.items():
        if not descriptor.has_field(name):
            continue
        field = descriptor.field(name)
        if field.type == "display":
            continue
        message = _check_field(field, value)
        if message:
            errors[name] = message
    return errors
