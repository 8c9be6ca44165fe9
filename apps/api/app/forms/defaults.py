from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.forms.descriptors import FieldDescriptor, FormDescriptor
from app.forms.line_items import empty_line_item

DEFAULT_TIME = "09:00"
DEFAULT_TAX_RATE = 18
DEFAULT_DISCOUNT_PERCENTAGE = 0

_NUMBER_PREFIXES = {
    "quote_number": "QT",
    "invoice_number": "INV",
}
_SELECT_OVERRIDES = {
    ("quotations", "customer_type"): "consultation",
}
_NUMERIC_OVERRIDES = {
    "tax_rate": DEFAULT_TAX_RATE,
    "discount_percentage": DEFAULT_DISCOUNT_PERCENTAGE,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def reference_number(prefix: str, now: datetime) -> str:
    return f"{prefix}-{int(now.timestamp() * 1000)}"


def default_for_field(field: FieldDescriptor, now: datetime, module: str | None = None) -> Any:
    if field.type == "select":
        override = _SELECT_OVERRIDES.get((module, field.name)) if module else None
        if override is not None:
            return override
        return field.options[0].value if field.options else ""
    if field.type in {"number", "currency"}:
        if field.name in _NUMERIC_OVERRIDES:
            return _NUMERIC_OVERRIDES[field.name]
        return field.min if field.min is not None else 0
    if field.type == "date":
        return now.date().isoformat()
    if field.type == "datetime":
        return now.replace(second=0, microsecond=0).isoformat(timespec="minutes")
    if field.type == "time":
        return DEFAULT_TIME
    if field.type == "line-items":
        return [empty_line_item()]
    if field.name in _NUMBER_PREFIXES:
        return reference_number(_NUMBER_PREFIXES[field.name], now)
    return ""


def get_default_form_data(descriptor: FormDescriptor, now: datetime | None = None) -> dict[str, Any]:
    """Initial draft for ``descriptor``.

    Only ``now`` varies between calls; pass it explicitly for a
    reproducible draft.
    """
    current = now or utcnow()
    return {
        field.name: default_for_field(field, current, descriptor.module)
        for field in descriptor.iter_fields()
        if field.type != "display"
    }
