from __future__ import annotations


class FormError(Exception):
    """Base class for form engine failures."""


class UnknownModuleError(FormError):
    def __init__(self, module: str) -> None:
        super().__init__(f"unknown form module: {module}")
        self.module = module


class MissingReferenceError(FormError):
    """A mandatory association is absent; raised before any write."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field_name = field_name
        self.message = message


class RecordNotFoundError(FormError):
    def __init__(self, module: str, record_id: str) -> None:
        super().__init__(f"{module} record {record_id} not found")
        self.module = module
        self.record_id = record_id


class FormValidationError(FormError):
    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("validation failed")
        self.errors = errors


class ConversionInProgressError(FormError):
    def __init__(self, lead_id: str) -> None:
        super().__init__("A conversion is already in progress. Please wait.")
        self.lead_id = lead_id


class LeadAlreadyConvertedError(FormError):
    def __init__(self, lead_id: str, project_id: str | None) -> None:
        super().__init__("lead has already been converted")
        self.lead_id = lead_id
        self.project_id = project_id
