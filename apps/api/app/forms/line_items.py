from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None or value == "":
        return default
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    return number if number.is_finite() else default


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class LineItem:
    id: str
    description: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.quantity * self.unit_price

    def is_valid(self) -> bool:
        return bool(self.description.strip()) and self.quantity > 0 and self.unit_price > 0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LineItem:
        return cls(
            id=str(raw.get("id") or uuid.uuid4().hex[:8]),
            description=str(raw.get("description") or ""),
            quantity=to_decimal(raw.get("quantity")),
            unit_price=to_decimal(raw.get("unit_price")),
        )

    def as_draft(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": float(self.quantity),
            "unit_price": float(self.unit_price),
            "total": float(self.total),
        }


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
        }


def empty_line_item(item_id: str = "1") -> dict[str, Any]:
    return {"id": item_id, "description": "", "quantity": 1, "unit_price": 0, "total": 0}


def parse_line_items(raw: Any) -> list[LineItem]:
    if not isinstance(raw, Iterable) or isinstance(raw, (str, bytes, Mapping)):
        return []
    return [LineItem.from_mapping(item) for item in raw if isinstance(item, Mapping)]


def valid_line_items(raw: Any) -> list[LineItem]:
    return [item for item in parse_line_items(raw) if item.is_valid()]


def normalize_line_items(raw: Any) -> list[dict[str, Any]]:
    """Re-derive every item's ``total`` from quantity and unit price."""
    return [item.as_draft() for item in parse_line_items(raw)]


def compute_totals(items: Iterable[LineItem], tax_rate: Any, discount_percentage: Any) -> Totals:
    subtotal = quantize(sum((item.total for item in items), start=ZERO))
    discount_amount = quantize(subtotal * to_decimal(discount_percentage) / HUNDRED)
    tax_amount = quantize((subtotal - discount_amount) * to_decimal(tax_rate) / HUNDRED)
    return Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total_amount=subtotal - discount_amount + tax_amount,
    )


def totals_for_record(record: Mapping[str, Any]) -> Totals:
    return compute_totals(
        valid_line_items(record.get("items")),
        record.get("tax_rate"),
        record.get("discount_percentage"),
    )
