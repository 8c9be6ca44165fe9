"""create crm tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _money(name: str, default: str | None = "0", nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=nullable, server_default=default)


def _document_totals() -> list[sa.Column]:
    return [
        _money("subtotal"),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        _money("discount_amount"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="18"),
        _money("tax_amount"),
        _money("total_amount"),
    ]


def _line_items(table_name: str, parent_table: str, parent_key: str) -> None:
    op.create_table(
        table_name,
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(parent_key, sa.Uuid(), sa.ForeignKey(f"{parent_table}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{table_name}_{parent_table[:-1]}", table_name, [parent_key], unique=False)


def upgrade() -> None:
    op.create_table(
        "consultation_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("service_type", sa.String(length=32), nullable=False),
        sa.Column("urgency_level", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("property_type", sa.String(length=32), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        _money("estimated_value", default=None, nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="website"),
        sa.Column("preferred_contact_method", sa.String(length=16), nullable=True),
        sa.Column("preferred_contact_time", sa.String(length=64), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("assigned_to", sa.Uuid(), nullable=True),
        sa.Column("converted_to_project_id", sa.Uuid(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_consultation_requests_status_created",
        "consultation_requests",
        ["status", "created_at"],
        unique=False,
    )
    op.create_index("ix_consultation_requests_email", "consultation_requests", ["email"], unique=False)

    op.create_table(
        "lead_status_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "consultation_request_id",
            sa.Uuid(),
            sa.ForeignKey("consultation_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("previous_status", sa.String(length=32), nullable=True),
        sa.Column("new_status", sa.String(length=32), nullable=False),
        sa.Column("changed_by", sa.String(length=128), nullable=True),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_lead_status_history_request",
        "lead_status_history",
        ["consultation_request_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("customer_type", sa.String(length=32), nullable=False, server_default="individual"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customers_email", "customers", ["email"], unique=False)
    op.create_index("ix_customers_phone", "customers", ["phone"], unique=False)

    op.create_table(
        "pending_reconciliations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("related_entity_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_pending_reconciliations_status",
        "pending_reconciliations",
        ["status", "created_at"],
        unique=False,
    )

    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.String(length=64), nullable=True),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("department", sa.String(length=32), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="employee"),
        sa.Column("designation", sa.Text(), nullable=True),
        sa.Column("hire_date", sa.Date(), nullable=True),
        _money("salary", default=None, nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", name="uq_employees_employee_id"),
        sa.UniqueConstraint("email", name="uq_employees_email"),
    )
    op.create_index("ix_employees_role_status", "employees", ["role", "status"], unique=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_number", sa.String(length=64), nullable=False),
        sa.Column("project_name", sa.Text(), nullable=False),
        sa.Column("project_type", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="planning"),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "consultation_request_id",
            sa.Uuid(),
            sa.ForeignKey("consultation_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("quotation_id", sa.Uuid(), nullable=True),
        sa.Column("project_manager_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True),
        sa.Column("supervisor_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="SET NULL"), nullable=True),
        sa.Column("estimated_start_date", sa.Date(), nullable=True),
        sa.Column("estimated_end_date", sa.Date(), nullable=True),
        _money("project_value"),
        _money("advance_amount"),
        sa.Column("site_address", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_number", name="uq_projects_project_number"),
    )
    op.create_index("ix_projects_customer", "projects", ["customer_id"], unique=False)
    op.create_index("ix_projects_status_created", "projects", ["status", "created_at"], unique=False)

    op.create_table(
        "project_activities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("activity_type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_project_activities_project",
        "project_activities",
        ["project_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "quotations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("quotation_number", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("consultation_request_id", sa.Uuid(), nullable=True),
        sa.Column("customer_type", sa.String(length=16), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        *_document_totals(),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("terms_conditions", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quotation_number", name="uq_quotations_quotation_number"),
    )
    op.create_index(
        "ix_quotations_customer_created",
        "quotations",
        ["customer_id", "created_at"],
        unique=False,
    )
    _line_items("quotation_items", "quotations", "quotation_id")

    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_type", sa.String(length=16), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("payment_terms", sa.String(length=32), nullable=False),
        *_document_totals(),
        _money("paid_amount"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
    )
    op.create_index("ix_invoices_customer_created", "invoices", ["customer_id", "created_at"], unique=False)
    op.create_index("ix_invoices_status_due", "invoices", ["status", "due_date"], unique=False)
    _line_items("invoice_items", "invoices", "invoice_id")

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("transaction_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="completed"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_invoice", "payments", ["invoice_id"], unique=False)

    op.create_table(
        "site_visits",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "consultation_request_id",
            sa.Uuid(),
            sa.ForeignKey("consultation_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("visit_type", sa.String(length=32), nullable=False),
        sa.Column(
            "assigned_technician_id",
            sa.Uuid(),
            sa.ForeignKey("employees.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(length=8), nullable=True),
        sa.Column("estimated_duration", sa.Numeric(5, 1), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="scheduled"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_site_visits_schedule",
        "site_visits",
        ["scheduled_date", "assigned_technician_id"],
        unique=False,
    )

    op.create_table(
        "installations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("installation_type", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("estimated_duration", sa.Numeric(5, 1), nullable=True),
        sa.Column(
            "lead_technician_id",
            sa.Uuid(),
            sa.ForeignKey("employees.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("equipment_details", sa.Text(), nullable=True),
        sa.Column("special_requirements", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="scheduled"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_installations_project", "installations", ["project_id"], unique=False)

    op.create_table(
        "amc_contracts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("contract_number", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("contract_type", sa.String(length=32), nullable=False),
        sa.Column(
            "assigned_technician_id",
            sa.Uuid(),
            sa.ForeignKey("employees.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("service_frequency", sa.String(length=16), nullable=False),
        _money("contract_value"),
        sa.Column("equipment_covered", sa.Text(), nullable=True),
        sa.Column("service_scope", sa.Text(), nullable=True),
        sa.Column("terms_conditions", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("contract_number", name="uq_amc_contracts_contract_number"),
    )
    op.create_index("ix_amc_contracts_customer", "amc_contracts", ["customer_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_amc_contracts_customer", table_name="amc_contracts")
    op.drop_table("amc_contracts")
    op.drop_index("ix_installations_project", table_name="installations")
    op.drop_table("installations")
    op.drop_index("ix_site_visits_schedule", table_name="site_visits")
    op.drop_table("site_visits")
    op.drop_index("ix_payments_invoice", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_invoice_items_invoice", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_index("ix_invoices_status_due", table_name="invoices")
    op.drop_index("ix_invoices_customer_created", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_quotation_items_quotation", table_name="quotation_items")
    op.drop_table("quotation_items")
    op.drop_index("ix_quotations_customer_created", table_name="quotations")
    op.drop_table("quotations")
    op.drop_index("ix_project_activities_project", table_name="project_activities")
    op.drop_table("project_activities")
    op.drop_index("ix_projects_status_created", table_name="projects")
    op.drop_index("ix_projects_customer", table_name="projects")
    op.drop_table("projects")
    op.drop_index("ix_employees_role_status", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_pending_reconciliations_status", table_name="pending_reconciliations")
    op.drop_table("pending_reconciliations")
    op.drop_index("ix_customers_phone", table_name="customers")
    op.drop_index("ix_customers_email", table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_lead_status_history_request", table_name="lead_status_history")
    op.drop_table("lead_status_history")
    op.drop_index("ix_consultation_requests_email", table_name="consultation_requests")
    op.drop_index("ix_consultation_requests_status_created", table_name="consultation_requests")
    op.drop_table("consultation_requests")
