from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from app.forms.defaults import default_for_field, utcnow
from app.forms.descriptors import FormDescriptor
from app.forms.line_items import normalize_line_items, totals_for_record

_BLANK_TYPES = {"text", "email", "tel", "password", "textarea", "select"}


def _reset_value(descriptor: FormDescriptor, name: str, now: datetime) -> Any:
    field = descriptor.field(name)
    if field.type in _BLANK_TYPES:
        return ""
    return default_for_field(field, now, descriptor.module)


def _refresh_derived(descriptor: FormDescriptor, draft: dict[str, Any]) -> None:
    line_item_fields = [item.name for item in descriptor.iter_fields() if item.type == "line-items"]
    for name in line_item_fields:
        draft[name] = normalize_line_items(draft.get(name))
    if line_item_fields:
        for name, value in totals_for_record(draft).as_dict().items():
            if descriptor.has_field(name):
                draft[name] = float(value)


def refresh_draft(descriptor: FormDescriptor, draft: Mapping[str, Any], now: datetime | None = None) -> dict[str, Any]:
    current = now or utcnow()
    updated = dict(draft)
    _refresh_derived(descriptor, updated)
    for item in descriptor.hidden_fields(updated):
        if item.when_hidden == "clear":
            updated[item.name] = _reset_value(descriptor, item.name, current)
    return updated


def apply_field_change(
    descriptor: FormDescriptor,
    draft: Mapping[str, Any],
    name: str,
    value: Any,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Apply one field edit and return the next draft.

    Declared ``resets`` run first, then derived values are recomputed and
    visibility predicates are evaluated against the resulting draft.
    """
    current = now or utcnow()
    changed = descriptor.field(name)
    updated = dict(draft)
    previous = updated.get(name)
    updated[name] = value
    if previous != value:
        for target in changed.resets:
            updated[target] = _reset_value(descriptor, target, current)
    return refresh_draft(descriptor, updated, current)


def build_submission(descriptor: FormDescriptor, draft: Mapping[str, Any]) -> dict[str, Any]:
    hidden = {item.name: item for item in descriptor.hidden_fields(draft)}
    known = set(descriptor.field_names)
    submission: dict[str, Any] = {}
    for name, value in draft.items():
        item = hidden.get(name)
        if item is not None and item.when_hidden == "exclude":
            continue
        if name in known and descriptor.field(name).type == "display":
            continue
        submission[name] = value
    return submission
