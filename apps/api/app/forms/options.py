from __future__ import annotations

from app.forms.descriptors import FieldOption


def _options(*pairs: tuple[str, str] | tuple[str, str, str]) -> tuple[FieldOption, ...]:
    return tuple(FieldOption(*pair) for pair in pairs)


PRIORITY_OPTIONS = _options(
    ("low", "Low", "green"),
    ("medium", "Medium", "yellow"),
    ("high", "High", "orange"),
    ("urgent", "Urgent", "red"),
)

URGENCY_OPTIONS = _options(
    ("low", "Low", "green"),
    ("medium", "Medium", "yellow"),
    ("high", "High", "orange"),
    ("emergency", "Emergency", "red"),
)

STATUS_OPTIONS: dict[str, tuple[FieldOption, ...]] = {
    "leads": _options(
        ("new", "New", "blue"),
        ("contacted", "Contacted", "yellow"),
        ("qualified", "Qualified", "purple"),
        ("proposal_sent", "Proposal Sent", "orange"),
        ("won", "Won", "green"),
        ("lost", "Lost", "red"),
        ("cancelled", "Cancelled", "gray"),
    ),
    "projects": _options(
        ("draft", "Draft", "gray"),
        ("planning", "Planning", "blue"),
        ("approved", "Approved", "purple"),
        ("in_progress", "In Progress", "yellow"),
        ("on_hold", "On Hold", "orange"),
        ("completed", "Completed", "green"),
        ("cancelled", "Cancelled", "red"),
    ),
    "quotations": _options(
        ("draft", "Draft", "gray"),
        ("sent", "Sent", "blue"),
        ("approved", "Approved", "green"),
        ("rejected", "Rejected", "red"),
        ("expired", "Expired", "orange"),
    ),
    "invoices": _options(
        ("draft", "Draft", "gray"),
        ("sent", "Sent", "blue"),
        ("paid", "Paid", "green"),
        ("overdue", "Overdue", "red"),
        ("cancelled", "Cancelled", "gray"),
    ),
    "payments": _options(
        ("pending", "Pending", "yellow"),
        ("completed", "Completed", "green"),
        ("failed", "Failed", "red"),
        ("refunded", "Refunded", "gray"),
    ),
    "sitevisits": _options(
        ("scheduled", "Scheduled", "blue"),
        ("in_progress", "In Progress", "yellow"),
        ("completed", "Completed", "green"),
        ("cancelled", "Cancelled", "red"),
    ),
    "installations": _options(
        ("scheduled", "Scheduled", "blue"),
        ("in_progress", "In Progress", "yellow"),
        ("completed", "Completed", "green"),
        ("on_hold", "On Hold", "orange"),
    ),
    "amc": _options(
        ("active", "Active", "green"),
        ("expired", "Expired", "red"),
        ("suspended", "Suspended", "orange"),
    ),
    "employees": _options(
        ("active", "Active", "green"),
        ("inactive", "Inactive", "gray"),
        ("on_leave", "On Leave", "yellow"),
    ),
}

LEAD_STATUSES: frozenset[str] = frozenset(option.value for option in STATUS_OPTIONS["leads"])

SERVICE_TYPE_OPTIONS = _options(
    ("installation", "Installation"),
    ("maintenance", "Maintenance"),
    ("repair", "Repair"),
    ("consultation", "Consultation"),
    ("amc", "AMC Contract"),
)

PROPERTY_TYPE_OPTIONS = _options(
    ("residential", "Residential"),
    ("commercial", "Commercial"),
    ("industrial", "Industrial"),
)

CONTACT_METHOD_OPTIONS = _options(
    ("phone", "Phone"),
    ("email", "Email"),
    ("whatsapp", "WhatsApp"),
)

LEAD_SOURCE_OPTIONS = _options(
    ("website", "Website"),
    ("referral", "Referral"),
    ("advertisement", "Advertisement"),
    ("cold_call", "Cold Call"),
    ("walk_in", "Walk In"),
    ("other", "Other"),
)

DEPARTMENT_OPTIONS = _options(
    ("management", "Management"),
    ("sales", "Sales"),
    ("technical", "Technical"),
    ("operations", "Operations"),
    ("accounts", "Accounts"),
)

ROLE_OPTIONS = _options(
    ("admin", "Admin"),
    ("manager", "Manager"),
    ("employee", "Employee"),
    ("technician", "Technician"),
)

PAYMENT_METHOD_OPTIONS = _options(
    ("cash", "Cash"),
    ("bank_transfer", "Bank Transfer"),
    ("upi", "UPI"),
    ("credit_card", "Credit Card"),
    ("debit_card", "Debit Card"),
    ("cheque", "Cheque"),
)

VISIT_TYPE_OPTIONS = _options(
    ("consultation", "Consultation"),
    ("installation", "Installation"),
    ("maintenance", "Maintenance"),
    ("repair", "Repair"),
    ("inspection", "Inspection"),
)

AMC_CONTRACT_TYPE_OPTIONS = _options(
    ("comprehensive", "Comprehensive"),
    ("preventive", "Preventive Maintenance"),
    ("breakdown", "Breakdown Only"),
)

SERVICE_FREQUENCY_OPTIONS = _options(
    ("monthly", "Monthly"),
    ("quarterly", "Quarterly"),
    ("half_yearly", "Half Yearly"),
    ("yearly", "Yearly"),
)

INVOICE_TYPE_OPTIONS = _options(
    ("advance", "Advance Payment"),
    ("progress", "Progress Payment"),
    ("final", "Final Payment"),
    ("amc", "AMC Invoice"),
)

PAYMENT_TERMS_OPTIONS = _options(
    ("immediate", "Immediate"),
    ("15 days", "15 Days"),
    ("30 days", "30 Days"),
    ("45 days", "45 Days"),
    ("60 days", "60 Days"),
)

QUOTATION_CUSTOMER_TYPE_OPTIONS = _options(
    ("consultation", "From Consultation Request"),
    ("new", "New Customer"),
    ("existing", "Existing Customer"),
)
