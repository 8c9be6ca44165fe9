from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from app.forms.descriptors import FieldDescriptor, FieldOption, FormDescriptor, ModuleType, Record, SectionDescriptor
from app.forms.errors import UnknownModuleError
from app.forms.options import (
    AMC_CONTRACT_TYPE_OPTIONS,
    CONTACT_METHOD_OPTIONS,
    DEPARTMENT_OPTIONS,
    INVOICE_TYPE_OPTIONS,
    LEAD_SOURCE_OPTIONS,
    PAYMENT_METHOD_OPTIONS,
    PAYMENT_TERMS_OPTIONS,
    PRIORITY_OPTIONS,
    PROPERTY_TYPE_OPTIONS,
    QUOTATION_CUSTOMER_TYPE_OPTIONS,
    ROLE_OPTIONS,
    SERVICE_FREQUENCY_OPTIONS,
    SERVICE_TYPE_OPTIONS,
    STATUS_OPTIONS,
    URGENCY_OPTIONS,
    VISIT_TYPE_OPTIONS,
)

CURRENCY = "INR"

Reference = Iterable[Mapping[str, Any] | Any]


@dataclass(frozen=True)
class ReferenceData:
    customers: tuple[Any, ...] = ()
    employees: tuple[Any, ...] = ()
    projects: tuple[Any, ...] = ()
    consultation_requests: tuple[Any, ...] = ()
    invoices: tuple[Any, ...] = ()


def _get(item: Mapping[str, Any] | Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def _reference_options(
    items: Reference | None,
    label: Callable[[Mapping[str, Any] | Any], str],
    where: Callable[[Mapping[str, Any] | Any], bool] | None = None,
) -> tuple[FieldOption, ...]:
    if not items:
        return ()
    return tuple(
        FieldOption(value=str(_get(item, "id")), label=label(item))
        for item in items
        if _get(item, "id") is not None and (where is None or where(item))
    )


def _customer_label(item: Mapping[str, Any] | Any) -> str:
    email = _get(item, "email")
    return f"{_get(item, 'name')} ({email})" if email else str(_get(item, "name"))


def _employee_label(item: Mapping[str, Any] | Any) -> str:
    return f"{_get(item, 'full_name')} ({_get(item, 'role')})"


def _project_label(item: Mapping[str, Any] | Any) -> str:
    return f"{_get(item, 'project_number')} - {_get(item, 'project_name')}"


def _lead_label(item: Mapping[str, Any] | Any) -> str:
    return f"{_get(item, 'name')} - {_get(item, 'service_type')}"


def _invoice_label(item: Mapping[str, Any] | Any) -> str:
    return f"{_get(item, 'invoice_number')} - {CURRENCY} {_get(item, 'total_amount')}"


def _is_manager(item: Mapping[str, Any] | Any) -> bool:
    return _get(item, "role") in {"manager", "admin"}


def _is_technician(item: Mapping[str, Any] | Any) -> bool:
    return _get(item, "role") in {"technician", "employee"}


# visibility predicates are module-level so equal inputs give equal descriptors


def _customer_is_existing(record: Record) -> bool:
    return record.get("customer_type") == "existing"


def _customer_is_new_or_consultation(record: Record) -> bool:
    return record.get("customer_type") in {"new", "consultation"}


def _customer_is_consultation(record: Record) -> bool:
    return record.get("customer_type") == "consultation"


def _to_decimal(value: Any) -> Decimal | None:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def non_negative(value: Any) -> str | None:
    amount = _to_decimal(value)
    if amount is not None and amount < 0:
        return "Value cannot be negative"
    return None


def positive_amount(value: Any) -> str | None:
    amount = _to_decimal(value)
    if amount is not None and amount <= 0:
        return "Amount must be greater than zero"
    return None


def _status_field(module: str, default_label: str = "Status") -> FieldDescriptor:
    return FieldDescriptor(name="status", label=default_label, type="select", required=True, options=STATUS_OPTIONS[module])


def get_lead_form_config() -> FormDescriptor:
    return FormDescriptor(
        title="Add New Lead",
        subtitle="Capture potential customer information",
        module="leads",
        submit_label="Create Lead",
        sections=(
            SectionDescriptor(
                title="Basic Information",
                fields=(
                    FieldDescriptor(name="name", label="Full Name", type="text", required=True, placeholder="Enter full name"),
                    FieldDescriptor(name="email", label="Email Address", type="email", required=True, placeholder="Enter email address"),
                    FieldDescriptor(name="phone", label="Phone Number", type="tel", required=True, placeholder="Enter phone number"),
                    FieldDescriptor(name="company", label="Company/Organization", type="text", placeholder="Enter company name (optional)"),
                ),
            ),
            SectionDescriptor(
                title="Service Requirements",
                fields=(
                    FieldDescriptor(name="service_type", label="Service Type", type="select", required=True, options=SERVICE_TYPE_OPTIONS),
                    FieldDescriptor(name="urgency_level", label="Urgency Level", type="select", required=True, options=URGENCY_OPTIONS),
                    FieldDescriptor(name="property_type", label="Property Type", type="select", required=True, options=PROPERTY_TYPE_OPTIONS),
                    FieldDescriptor(name="location", label="Location", type="text", placeholder="Enter location/address"),
                ),
            ),
            SectionDescriptor(
                title="Additional Information",
                fields=(
                    FieldDescriptor(
                        name="estimated_value",
                        label="Estimated Project Value",
                        type="currency",
                        currency=CURRENCY,
                        min=0,
                        placeholder="Enter estimated value (optional)",
                        validator=non_negative,
                    ),
                    FieldDescriptor(name="source", label="Lead Source", type="select", required=True, options=LEAD_SOURCE_OPTIONS),
                    FieldDescriptor(
                        name="preferred_contact_method",
                        label="Preferred Contact Method",
                        type="select",
                        required=True,
                        options=CONTACT_METHOD_OPTIONS,
                    ),
                    FieldDescriptor(
                        name="preferred_contact_time",
                        label="Preferred Contact Time",
                        type="text",
                        placeholder="e.g., 9 AM - 6 PM, Weekends",
                    ),
                ),
            ),
            SectionDescriptor(
                title="Message & Notes",
                columns=1,
                fields=(
                    FieldDescriptor(
                        name="message",
                        label="Requirements/Message",
                        type="textarea",
                        required=True,
                        rows=4,
                        placeholder="Describe the customer's requirements and needs...",
                    ),
                    FieldDescriptor(name="notes", label="Additional Notes", type="textarea", rows=3),
                ),
            ),
        ),
    )


def get_employee_form_config() -> FormDescriptor:
    return FormDescriptor(
        title="Add New Employee",
        subtitle="Create a new employee account",
        module="employees",
        submit_label="Create Employee",
        sections=(
            SectionDescriptor(
                title="Personal Information",
                fields=(
                    FieldDescriptor(name="full_name", label="Full Name", type="text", required=True),
                    FieldDescriptor(name="email", label="Email Address", type="email", required=True),
                    FieldDescriptor(name="phone", label="Phone Number", type="tel", required=True),
                    FieldDescriptor(name="address", label="Address", type="textarea", rows=2),
                ),
            ),
            SectionDescriptor(
                title="Job Information",
                fields=(
                    FieldDescriptor(name="department", label="Department", type="select", required=True, options=DEPARTMENT_OPTIONS),
                    FieldDescriptor(name="role", label="Role", type="select", required=True, options=ROLE_OPTIONS),
                    FieldDescriptor(name="designation", label="Designation", type="text", required=True, placeholder="e.g., Senior Technician"),
                    FieldDescriptor(name="hire_date", label="Hire Date", type="date", required=True),
                ),
            ),
            SectionDescriptor(
                title="Employment Details",
                columns=3,
                fields=(
                    FieldDescriptor(name="salary", label="Monthly Salary", type="currency", currency=CURRENCY, min=0, validator=non_negative),
                    FieldDescriptor(name="employee_id", label="Employee ID", type="text", placeholder="Auto-generated if empty"),
                    _status_field("employees"),
                ),
            ),
        ),
    )


def get_project_form_config(customers: Reference | None = None, employees: Reference | None = None) -> FormDescriptor:
    return FormDescriptor(
        title="Create New Project",
        subtitle="Plan and manage a new project",
        module="projects",
        submit_label="Create Project",
        sections=(
            SectionDescriptor(
                title="Project Information",
                fields=(
                    FieldDescriptor(name="project_name", label="Project Name", type="text", required=True),
                    FieldDescriptor(name="project_type", label="Project Type", type="select", required=True, options=SERVICE_TYPE_OPTIONS),
                    FieldDescriptor(name="priority", label="Priority", type="select", required=True, options=PRIORITY_OPTIONS),
                    _status_field("projects"),
                ),
            ),
            SectionDescriptor(
                title="Customer & Assignment",
                columns=3,
                fields=(
                    FieldDescriptor(
                        name="customer_id",
                        label="Customer",
                        type="select",
                        required=True,
                        options=_reference_options(customers, _customer_label),
                    ),
                    FieldDescriptor(
                        name="project_manager_id",
                        label="Project Manager",
                        type="select",
                        required=True,
                        options=_reference_options(employees, _employee_label, _is_manager),
                    ),
                    FieldDescriptor(
                        name="supervisor_id",
                        label="Supervisor",
                        type="select",
                        options=_reference_options(employees, _employee_label),
                    ),
                ),
            ),
            SectionDescriptor(
                title="Timeline & Budget",
                fields=(
                    FieldDescriptor(name="estimated_start_date", label="Estimated Start Date", type="date", required=True),
                    FieldDescriptor(name="estimated_end_date", label="Estimated End Date", type="date", required=True),
                    FieldDescriptor(
                        name="project_value",
                        label="Project Value",
                        type="currency",
                        currency=CURRENCY,
                        required=True,
                        min=0,
                        validator=non_negative,
                    ),
                    FieldDescriptor(
                        name="advance_amount",
                        label="Advance Amount",
                        type="currency",
                        currency=CURRENCY,
                        min=0,
                        validator=non_negative,
                    ),
                ),
            ),
            SectionDescriptor(
                title="Location & Details",
                columns=1,
                fields=(
                    FieldDescriptor(name="site_address", label="Site Address", type="textarea", required=True, rows=2),
                    FieldDescriptor(name="description", label="Project Description", type="textarea", rows=4),
                    FieldDescriptor(name="notes", label="Internal Notes", type="textarea", rows=3),
                ),
            ),
        ),
    )


def _line_item_sections(number_field: FieldDescriptor) -> tuple[SectionDescriptor, ...]:
    return (
        SectionDescriptor(
            title="Line Items",
            columns=1,
            fields=(
                FieldDescriptor(
                    name="items",
                    label="Items",
                    type="line-items",
                    required=True,
                    hint="Each item needs a description, a quantity and a unit price",
                ),
            ),
        ),
        SectionDescriptor(
            title="Pricing",
            columns=3,
            fields=(
                FieldDescriptor(name="tax_rate", label="Tax Rate (%)", type="number", required=True, min=0, max=100, step=0.01),
                FieldDescriptor(
                    name="discount_percentage",
                    label="Discount (%)",
                    type="number",
                    min=0,
                    max=100,
                    step=0.01,
                ),
                number_field,
                FieldDescriptor(name="subtotal", label="Subtotal", type="display", currency=CURRENCY),
                FieldDescriptor(name="discount_amount", label="Discount Amount", type="display", currency=CURRENCY),
                FieldDescriptor(name="tax_amount", label="Tax Amount", type="display", currency=CURRENCY),
                FieldDescriptor(name="total_amount", label="Total Amount", type="display", currency=CURRENCY),
            ),
        ),
    )


def get_quotation_form_config(
    customers: Reference | None = None,
    projects: Reference | None = None,
    consultation_requests: Reference | None = None,
) -> FormDescriptor:
    """Quotation form.

    ``customer_type`` decides how the customer is identified: an existing
    customer row, a brand new customer, or a customer sourced from a
    consultation request. Switching it resets the reference selects; the
    new-customer block is dropped from the payload while hidden.
    """
    return FormDescriptor(
        title="Create Quotation",
        subtitle="Generate detailed customer quotation",
        module="quotations",
        max_width="6xl",
        submit_label="Create Quotation",
        sections=(
            SectionDescriptor(
                title="Customer",
                fields=(
                    FieldDescriptor(
                        name="customer_type",
                        label="Customer Type",
                        type="select",
                        required=True,
                        options=QUOTATION_CUSTOMER_TYPE_OPTIONS,
                        resets=("customer_id", "consultation_request_id"),
                    ),
                    FieldDescriptor(
                        name="customer_id",
                        label="Existing Customer",
                        type="select",
                        required=True,
                        options=_reference_options(customers, _customer_label),
                        show_when=_customer_is_existing,
                        when_hidden="exclude",
                    ),
                    FieldDescriptor(
                        name="consultation_request_id",
                        label="Consultation Request",
                        type="select",
                        options=_reference_options(consultation_requests, _lead_label),
                        show_when=_customer_is_consultation,
                        when_hidden="clear",
                    ),
                ),
            ),
            SectionDescriptor(
                title="New Customer Details",
                show_when=_customer_is_new_or_consultation,
                fields=(
                    FieldDescriptor(name="customer_name", label="Customer Name", type="text", required=True, when_hidden="exclude"),
                    FieldDescriptor(name="customer_email", label="Customer Email", type="email", required=True, when_hidden="exclude"),
                    FieldDescriptor(name="customer_phone", label="Customer Phone", type="tel", required=True, when_hidden="exclude"),
                    FieldDescriptor(
                        name="customer_address",
                        label="Customer Address",
                        type="textarea",
                        required=True,
                        rows=2,
                        when_hidden="exclude",
                    ),
                ),
            ),
            SectionDescriptor(
                title="Quotation Details",
                fields=(
                    FieldDescriptor(
                        name="project_id",
                        label="Project",
                        type="select",
                        required=True,
                        options=_reference_options(projects, _project_label),
                    ),
                    FieldDescriptor(name="valid_until", label="Valid Until", type="date", required=True),
                ),
            ),
            *_line_item_sections(FieldDescriptor(name="quote_number", label="Quotation Number", type="text", required=True)),
            SectionDescriptor(
                title="Terms & Notes",
                columns=1,
                fields=(
                    FieldDescriptor(name="terms_conditions", label="Terms & Conditions", type="textarea", rows=3),
                    FieldDescriptor(name="notes", label="Notes", type="textarea", rows=2),
                ),
            ),
        ),
    )


def get_invoice_form_config(projects: Reference | None = None, customers: Reference | None = None) -> FormDescriptor:
    return FormDescriptor(
        title="Create Invoice",
        subtitle="Generate customer invoice",
        module="invoices",
        max_width="6xl",
        submit_label="Create Invoice",
        sections=(
            SectionDescriptor(
                title="Invoice Details",
                fields=(
                    FieldDescriptor(
                        name="project_id",
                        label="Project",
                        type="select",
                        required=True,
                        options=_reference_options(projects, _project_label),
                    ),
                    FieldDescriptor(
                        name="customer_id",
                        label="Customer",
                        type="select",
                        required=True,
                        options=_reference_options(customers, _customer_label),
                    ),
                    FieldDescriptor(name="invoice_type", label="Invoice Type", type="select", required=True, options=INVOICE_TYPE_OPTIONS),
                    FieldDescriptor(
                        name="payment_terms",
                        label="Payment Terms",
                        type="select",
                        required=True,
                        options=PAYMENT_TERMS_OPTIONS,
                    ),
                    FieldDescriptor(name="invoice_date", label="Invoice Date", type="date", required=True),
                    FieldDescriptor(name="due_date", label="Due Date", type="date", required=True),
                ),
            ),
            *_line_item_sections(FieldDescriptor(name="invoice_number", label="Invoice Number", type="text", required=True)),
            SectionDescriptor(
                title="Additional Information",
                columns=1,
                fields=(
                    FieldDescriptor(name="description", label="Description", type="textarea", rows=3),
                    FieldDescriptor(name="notes", label="Notes", type="textarea", rows=2),
                ),
            ),
        ),
    )


def get_payment_form_config(invoices: Reference | None = None) -> FormDescriptor:
    return FormDescriptor(
        title="Record Payment",
        subtitle="Track customer payment",
        module="payments",
        max_width="2xl",
        submit_label="Record Payment",
        sections=(
            SectionDescriptor(
                title="Payment Information",
                fields=(
                    FieldDescriptor(
                        name="invoice_id",
                        label="Invoice",
                        type="select",
                        required=True,
                        options=_reference_options(invoices, _invoice_label),
                    ),
                    FieldDescriptor(
                        name="payment_method",
                        label="Payment Method",
                        type="select",
                        required=True,
                        options=PAYMENT_METHOD_OPTIONS,
                    ),
                    FieldDescriptor(
                        name="amount",
                        label="Amount",
                        type="currency",
                        currency=CURRENCY,
                        required=True,
                        min=0,
                        validator=positive_amount,
                    ),
                    FieldDescriptor(name="payment_date", label="Payment Date", type="date", required=True),
                ),
            ),
            SectionDescriptor(
                title="Transaction Details",
                fields=(
                    FieldDescriptor(name="transaction_id", label="Transaction ID", type="text", placeholder="Reference or UTR number"),
                    _status_field("payments"),
                ),
            ),
            SectionDescriptor(
                title="Additional Information",
                columns=1,
                fields=(FieldDescriptor(name="notes", label="Notes", type="textarea", rows=3),),
            ),
        ),
    )


def get_site_visit_form_config(leads: Reference | None = None, employees: Reference | None = None) -> FormDescriptor:
    return FormDescriptor(
        title="Schedule Site Visit",
        subtitle="Plan a customer site assessment",
        module="sitevisits",
        submit_label="Schedule Visit",
        sections=(
            SectionDescriptor(
                title="Visit Information",
                columns=3,
                fields=(
                    FieldDescriptor(
                        name="consultation_request_id",
                        label="Lead",
                        type="select",
                        required=True,
                        options=_reference_options(leads, _lead_label),
                    ),
                    FieldDescriptor(name="visit_type", label="Visit Type", type="select", required=True, options=VISIT_TYPE_OPTIONS),
                    FieldDescriptor(
                        name="assigned_technician_id",
                        label="Assigned Technician",
                        type="select",
                        required=True,
                        options=_reference_options(employees, _employee_label, _is_technician),
                    ),
                ),
            ),
            SectionDescriptor(
                title="Schedule",
                columns=3,
                fields=(
                    FieldDescriptor(name="scheduled_date", label="Visit Date", type="date", required=True),
                    FieldDescriptor(name="scheduled_time", label="Visit Time", type="time", required=True),
                    FieldDescriptor(name="estimated_duration", label="Duration (hours)", type="number", min=0.5, step=0.5),
                ),
            ),
            SectionDescriptor(
                title="Visit Details",
                columns=1,
                fields=(
                    FieldDescriptor(name="purpose", label="Purpose of Visit", type="textarea", required=True, rows=3),
                    FieldDescriptor(name="special_instructions", label="Special Instructions", type="textarea", rows=2),
                ),
            ),
        ),
    )


def get_installation_form_config(projects: Reference | None = None, employees: Reference | None = None) -> FormDescriptor:
    return FormDescriptor(
        title="Create Installation",
        subtitle="Schedule and manage equipment installation",
        module="installations",
        submit_label="Create Installation",
        sections=(
            SectionDescriptor(
                title="Installation Information",
                columns=3,
                fields=(
                    FieldDescriptor(
                        name="project_id",
                        label="Project",
                        type="select",
                        required=True,
                        options=_reference_options(projects, _project_label),
                    ),
                    FieldDescriptor(
                        name="installation_type",
                        label="Installation Type",
                        type="select",
                        required=True,
                        options=SERVICE_TYPE_OPTIONS,
                    ),
                    FieldDescriptor(name="priority", label="Priority", type="select", required=True, options=PRIORITY_OPTIONS),
                ),
            ),
            SectionDescriptor(
                title="Schedule & Team",
                columns=3,
                fields=(
                    FieldDescriptor(name="scheduled_date", label="Installation Date", type="date", required=True),
                    FieldDescriptor(name="estimated_duration", label="Duration (days)", type="number", required=True, min=1, step=1),
                    FieldDescriptor(
                        name="lead_technician_id",
                        label="Lead Technician",
                        type="select",
                        required=True,
                        options=_reference_options(employees, _employee_label, _is_technician),
                    ),
                ),
            ),
            SectionDescriptor(
                title="Equipment & Requirements",
                columns=1,
                fields=(
                    FieldDescriptor(name="equipment_details", label="Equipment Details", type="textarea", required=True, rows=3),
                    FieldDescriptor(name="special_requirements", label="Special Requirements", type="textarea", rows=2),
                ),
            ),
        ),
    )


def get_amc_form_config(customers: Reference | None = None, employees: Reference | None = None) -> FormDescriptor:
    return FormDescriptor(
        title="Create AMC Contract",
        subtitle="Set up Annual Maintenance Contract",
        module="amc",
        submit_label="Create Contract",
        sections=(
            SectionDescriptor(
                title="Contract Information",
                columns=3,
                fields=(
                    FieldDescriptor(
                        name="customer_id",
                        label="Customer",
                        type="select",
                        required=True,
                        options=_reference_options(customers, _customer_label),
                    ),
                    FieldDescriptor(
                        name="contract_type",
                        label="Contract Type",
                        type="select",
                        required=True,
                        options=AMC_CONTRACT_TYPE_OPTIONS,
                    ),
                    FieldDescriptor(
                        name="assigned_technician_id",
                        label="Assigned Technician",
                        type="select",
                        required=True,
                        options=_reference_options(employees, _employee_label, _is_technician),
                    ),
                ),
            ),
            SectionDescriptor(
                title="Contract Terms",
                fields=(
                    FieldDescriptor(name="start_date", label="Start Date", type="date", required=True),
                    FieldDescriptor(name="end_date", label="End Date", type="date", required=True),
                    FieldDescriptor(
                        name="service_frequency",
                        label="Service Frequency",
                        type="select",
                        required=True,
                        options=SERVICE_FREQUENCY_OPTIONS,
                    ),
                    FieldDescriptor(
                        name="contract_value",
                        label="Contract Value",
                        type="currency",
                        currency=CURRENCY,
                        required=True,
                        min=0,
                        validator=non_negative,
                    ),
                ),
            ),
            SectionDescriptor(
                title="Service Details",
                columns=1,
                fields=(
                    FieldDescriptor(name="equipment_covered", label="Equipment Covered", type="textarea", required=True, rows=3),
                    FieldDescriptor(name="service_scope", label="Service Scope", type="textarea", required=True, rows=3),
                    FieldDescriptor(name="terms_conditions", label="Terms & Conditions", type="textarea", rows=2),
                ),
            ),
        ),
    )


def get_form_config(module: ModuleType | str, reference: ReferenceData | None = None) -> FormDescriptor:
    ref = reference or ReferenceData()
    builders: dict[str, Callable[[], FormDescriptor]] = {
        "leads": get_lead_form_config,
        "employees": get_employee_form_config,
        "projects": lambda: get_project_form_config(ref.customers, ref.employees),
        "quotations": lambda: get_quotation_form_config(ref.customers, ref.projects, ref.consultation_requests),
        "invoices": lambda: get_invoice_form_config(ref.projects, ref.customers),
        "payments": lambda: get_payment_form_config(ref.invoices),
        "sitevisits": lambda: get_site_visit_form_config(ref.consultation_requests, ref.employees),
        "installations": lambda: get_installation_form_config(ref.projects, ref.employees),
        "amc": lambda: get_amc_form_config(ref.customers, ref.employees),
    }
    builder = builders.get(module)
    if builder is None:
        raise UnknownModuleError(module)
    return builder()
