from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from app.forms.descriptors import FieldDescriptor, FormDescriptor, Record, SectionDescriptor


class FieldOptionRead(BaseModel):
    value: str
    label: str
    color: str | None = None


class FieldRead(BaseModel):
    name: str
    label: str
    type: str
    required: bool
    visible: bool
    placeholder: str | None = None
    hint: str | None = None
    options: list[FieldOptionRead] | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    rows: int | None = None
    currency: str | None = None
    when_hidden: str = "keep"
    resets: list[str] = Field(default_factory=list)


class SectionRead(BaseModel):
    title: str | None
    description: str | None
    columns: int
    visible: bool
    fields: list[FieldRead]


class FormRead(BaseModel):
    title: str
    subtitle: str | None
    module: str
    max_width: str
    submit_label: str
    sections: list[SectionRead]
    defaults: dict[str, Any]


class FormRecordRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class DraftChangeRequest(BaseModel):
    draft: dict[str, Any] = Field(default_factory=dict)
    field: str = Field(min_length=1)
    value: Any = None


class DraftRead(BaseModel):
    draft: dict[str, Any]
    visible_fields: list[str]
    submission: dict[str, Any]
    totals: dict[str, float] | None = None


class ValidationRead(BaseModel):
    valid: bool
    errors: dict[str, str]


def _field_read(field: FieldDescriptor, visible: bool) -> FieldRead:
    return FieldRead(
        name=field.name,
        label=field.label,
        type=field.type,
        required=field.required,
        visible=visible,
        placeholder=field.placeholder,
        hint=field.hint,
        options=(
            [FieldOptionRead(value=item.value, label=item.label, color=item.color) for item in field.options]
            if field.options is not None
            else None
        ),
        min=field.min,
        max=field.max,
        step=field.step,
        rows=field.rows,
        currency=field.currency,
        when_hidden=field.when_hidden,
        resets=list(field.resets),
    )


def _section_read(section: SectionDescriptor, record: Record) -> SectionRead:
    section_visible = section.is_visible(record)
    return SectionRead(
        title=section.title,
        description=section.description,
        columns=section.columns,
        visible=section_visible,
        fields=[_field_read(item, section_visible and item.is_visible(record)) for item in section.fields],
    )


def form_read(descriptor: FormDescriptor, defaults: dict[str, Any]) -> FormRead:
    """Serializable view of ``descriptor`` with visibility evaluated against ``defaults``."""
    return FormRead(
        title=descriptor.title,
        subtitle=descriptor.subtitle,
        module=descriptor.module,
        max_width=descriptor.max_width,
        submit_label=descriptor.submit_label,
        sections=[_section_read(section, defaults) for section in descriptor.sections],
        defaults=defaults,
    )
