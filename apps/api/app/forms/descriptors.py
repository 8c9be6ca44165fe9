from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Literal, get_args

FieldType = Literal[
    "text",
    "email",
    "tel",
    "number",
    "password",
    "date",
    "datetime",
    "time",
    "textarea",
    "select",
    "currency",
    "display",
    "line-items",
]
ModuleType = Literal[
    "leads",
    "employees",
    "projects",
    "quotations",
    "invoices",
    "payments",
    "sitevisits",
    "installations",
    "amc",
]
HiddenPolicy = Literal["keep", "exclude", "clear"]

FIELD_TYPES: frozenset[str] = frozenset(get_args(FieldType))
MODULES: tuple[str, ...] = get_args(ModuleType)

Record = Mapping[str, Any]
Predicate = Callable[[Record], bool]
FieldValidator = Callable[[Any], str | None]


@dataclass(frozen=True, slots=True)
class FieldOption:
    value: str
    label: str
    color: str | None = None


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    name: str
    label: str
    type: FieldType
    required: bool = False
    placeholder: str | None = None
    hint: str | None = None
    options: tuple[FieldOption, ...] | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    rows: int | None = None
    currency: str | None = None
    validator: FieldValidator | None = None
    show_when: Predicate | None = None
    when_hidden: HiddenPolicy = "keep"
    resets: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type not in FIELD_TYPES:
            raise ValueError(f"unsupported field type {self.type!r} for {self.name}")
        if self.type == "select" and self.options is None:
            raise ValueError(f"select field {self.name} requires options")

    def is_visible(self, record: Record) -> bool:
        return self.show_when is None or bool(self.show_when(record))


@dataclass(frozen=True, slots=True)
class SectionDescriptor:
    fields: tuple[FieldDescriptor, ...]
    title: str | None = None
    description: str | None = None
    columns: int = 2
    show_when: Predicate | None = None

    def __post_init__(self) -> None:
        if self.columns not in (1, 2, 3, 4):
            raise ValueError(f"section columns must be 1-4, got {self.columns}")
        names = [item.name for item in self.fields]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate field names in section {self.title!r}: {', '.join(duplicates)}")

    def is_visible(self, record: Record) -> bool:
        return self.show_when is None or bool(self.show_when(record))


@dataclass(frozen=True, slots=True)
class FormDescriptor:
    """Declarative description of one entity form.

    Descriptors are immutable; factories build a new one whenever the
    reference lists feeding select options change.
    """

    title: str
    module: ModuleType
    sections: tuple[SectionDescriptor, ...]
    subtitle: str | None = None
    max_width: str = "4xl"
    submit_label: str = "Save"

    def iter_fields(self) -> Iterator[FieldDescriptor]:
        for section in self.sections:
            yield from section.fields

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.iter_fields())

    def field(self, name: str) -> FieldDescriptor:
        for item in self.iter_fields():
            if item.name == name:
                return item
        raise KeyError(name)

    def has_field(self, name: str) -> bool:
        return any(item.name == name for item in self.iter_fields())

    def visible_fields(self, record: Record) -> list[FieldDescriptor]:
        visible: list[FieldDescriptor] = []
        for section in self.sections:
            if not section.is_visible(record):
                continue
            visible.extend(item for item in section.fields if item.is_visible(record))
        return visible

    def hidden_fields(self, record: Record) -> list[FieldDescriptor]:
        visible_names = {item.name for item in self.visible_fields(record)}
        return [item for item in self.iter_fields() if item.name not in visible_names]
