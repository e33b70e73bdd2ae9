"""initial schema

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role = postgresql.ENUM("owner", "finance", "pm", "readonly", name="user_role", create_type=False)
project_status = postgresql.ENUM(
    "draft", "active", "on_hold", "completed", "cancelled", name="project_status", create_type=False
)
pricing_model = postgresql.ENUM("TnM", "Retainer", "Milestone", name="pricing_model", create_type=False)
staff_category = postgresql.ENUM("support", "operational", name="staff_category", create_type=False)
leave_status = postgresql.ENUM("pending", "approved", "rejected", "cancelled", name="leave_status", create_type=False)
holiday_type = postgresql.ENUM("public", "restricted", "optional", name="holiday_type", create_type=False)
bill_status = postgresql.ENUM("draft", "open", "overdue", "paid", "void", name="bill_status", create_type=False)
expense_status = postgresql.ENUM(
    "unbilled", "invoiced", "reimbursed", "billable", "non_billable", name="expense_status", create_type=False
)
product_type = postgresql.ENUM("reselling", "outsourcing", "custom", name="product_type", create_type=False)
project_cost_type = postgresql.ENUM(
    "tool", "travel", "contractor", "other", name="project_cost_type", create_type=False
)
pod_status = postgresql.ENUM("active", "inactive", "archived", name="pod_status", create_type=False)

ENUMS = (
    user_role,
    project_status,
    pricing_model,
    staff_category,
    leave_status,
    holiday_type,
    bill_status,
    expense_status,
    product_type,
    project_cost_type,
    pod_status,
)


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _fk(name: str, target: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(target), nullable=nullable)


def upgrade() -> None:
    for enum_type in ENUMS:
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("subject", sa.String(length=128), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "clients",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("billing_currency", sa.String(length=3), nullable=False),
        sa.Column("tags", postgresql.JSONB(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "projects",
        _uuid_pk(),
        _fk("client_id", "clients.id"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("pricing_model", pricing_model, nullable=False),
        sa.Column("status", project_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("budget", sa.Numeric(14, 2), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_projects_client_id", "projects", ["client_id"])
    op.create_index("ix_projects_name", "projects", ["name"])

    op.create_table(
        "people",
        _uuid_pk(),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=128), nullable=False),
        sa.Column("department", sa.String(length=128), nullable=True),
        sa.Column("staff_category", staff_category, nullable=False),
        sa.Column("billable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("ctc_monthly", sa.Numeric(14, 2), nullable=False),
        sa.Column("utilization_target", sa.Numeric(4, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("employee_code", sa.String(length=64), nullable=True, unique=True),
        sa.Column("zoho_employee_id", sa.String(length=64), nullable=True, unique=True),
        _fk("manager_id", "people.id", nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "utilization_target >= 0 AND utilization_target <= 1",
            name="ck_people_utilization_target_range",
        ),
    )
    op.create_index("ix_people_manager_id", "people", ["manager_id"])

    op.create_table(
        "manager_history",
        _uuid_pk(),
        _fk("person_id", "people.id"),
        _fk("manager_id", "people.id"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_manager_history_person_id", "manager_history", ["person_id"])

    op.create_table(
        "products",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("type", product_type, nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "allocations",
        _uuid_pk(),
        _fk("person_id", "people.id"),
        _fk("project_id", "projects.id"),
        sa.Column("period_month", sa.Date(), nullable=False),
        sa.Column("hours_billable", sa.Numeric(8, 2), nullable=False),
        sa.Column("hours_nonbillable", sa.Numeric(8, 2), nullable=False),
        sa.Column("pct_effort", sa.Numeric(5, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("hours_billable >= 0", name="ck_allocations_hours_billable_non_negative"),
        sa.CheckConstraint("hours_nonbillable >= 0", name="ck_allocations_hours_nonbillable_non_negative"),
    )
    op.create_index("ix_allocations_person_month", "allocations", ["person_id", "period_month"])
    op.create_index("ix_allocations_project_month", "allocations", ["project_id", "period_month"])

    op.create_table(
        "timesheet_import_batches",
        _uuid_pk(),
        _fk("imported_by", "users.id", nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_rows", sa.Integer(), nullable=False),
        sa.Column("imported_rows", sa.Integer(), nullable=False),
        sa.Column("skipped_rows", sa.Integer(), nullable=False),
        sa.Column("deleted_entries", sa.Integer(), nullable=False),
        sa.Column("error_messages", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "timesheet_entries",
        _uuid_pk(),
        _fk("person_id", "people.id"),
        _fk("project_id", "projects.id"),
        _fk("batch_id", "timesheet_import_batches.id", nullable=True),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("hours_logged", sa.Numeric(6, 2), nullable=False),
        sa.Column("is_billable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("task_name", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("source_row_hash", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "person_id",
            "project_id",
            "work_date",
            "source_row_hash",
            name="uq_timesheet_entries_person_project_date_hash",
        ),
    )
    op.create_index("ix_timesheet_entries_work_date", "timesheet_entries", ["work_date"])
    op.create_index("ix_timesheet_entries_person_date", "timesheet_entries", ["person_id", "work_date"])

    op.create_table(
        "leaves",
        _uuid_pk(),
        _fk("person_id", "people.id"),
        sa.Column("zoho_leave_id", sa.String(length=64), nullable=True, unique=True),
        sa.Column("leave_type", sa.String(length=128), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", leave_status, nullable=False),
        sa.Column("reason", sa.String(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("end_date >= start_date", name="ck_leaves_date_order"),
    )
    op.create_index("ix_leaves_person_dates", "leaves", ["person_id", "start_date", "end_date"])

    op.create_table(
        "holidays",
        _uuid_pk(),
        sa.Column("date", sa.Date(), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", holiday_type, nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("zoho_holiday_id", sa.String(length=64), nullable=True),
    )

    op.create_table(
        "monthly_utilization",
        _uuid_pk(),
        _fk("person_id", "people.id"),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("working_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("worked_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("billable_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("utilization_pct", sa.Numeric(7, 2), nullable=False),
        sa.Column("billable_utilization", sa.Numeric(7, 2), nullable=False),
        sa.Column("leave_days", sa.Numeric(5, 2), nullable=False),
        sa.Column("holiday_days", sa.Integer(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("person_id", "month", name="uq_monthly_utilization_person_month"),
    )
    op.create_index("ix_monthly_utilization_month", "monthly_utilization", ["month"])

    op.create_table(
        "person_salaries",
        _uuid_pk(),
        _fk("person_id", "people.id"),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("base_salary", sa.Numeric(14, 2), nullable=False),
        sa.Column("bonus", sa.Numeric(14, 2), nullable=False),
        sa.Column("deductions", sa.Numeric(14, 2), nullable=False),
        sa.Column("overtime", sa.Numeric(14, 2), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("is_support_staff", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("person_id", "month", name="uq_person_salaries_person_month"),
    )
    op.create_index("ix_person_salaries_month", "person_salaries", ["month"])

    op.create_table(
        "bills",
        _uuid_pk(),
        sa.Column("zoho_bill_id", sa.String(length=64), nullable=True, unique=True),
        sa.Column("vendor_id", sa.String(length=64), nullable=True),
        sa.Column("vendor_name", sa.String(length=255), nullable=False),
        sa.Column("bill_number", sa.String(length=128), nullable=True),
        sa.Column("bill_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", bill_status, nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False),
        sa.Column("sub_total", sa.Numeric(14, 2), nullable=True),
        sa.Column("tax_total", sa.Numeric(14, 2), nullable=True),
        sa.Column("account_name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("reference_number", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("billed_for_month", sa.Date(), nullable=True),
        sa.Column("include_in_calculation", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("exclusion_reason", sa.String(length=512), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_bills_billed_for_month", "bills", ["billed_for_month"])
    op.create_index("ix_bills_bill_date", "bills", ["bill_date"])

    op.create_table(
        "bill_line_items",
        _uuid_pk(),
        _fk("bill_id", "bills.id"),
        sa.Column("zoho_line_item_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("account_name", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("rate", sa.Numeric(14, 2), nullable=False),
        sa.Column("item_total", sa.Numeric(14, 2), nullable=False),
    )
    op.create_index("ix_bill_line_items_bill_id", "bill_line_items", ["bill_id"])

    op.create_table(
        "expenses",
        _uuid_pk(),
        sa.Column("zoho_expense_id", sa.String(length=64), nullable=True, unique=True),
        sa.Column("account_name", sa.String(length=255), nullable=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", expense_status, nullable=False),
        sa.Column("is_billable", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("reference_number", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("include_in_calculation", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("exclusion_reason", sa.String(length=512), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_expenses_expense_date", "expenses", ["expense_date"])

    op.create_table(
        "reselling_invoices",
        _uuid_pk(),
        _fk("project_id", "projects.id"),
        _fk("product_id", "products.id"),
        sa.Column("period_month", sa.Date(), nullable=False),
        sa.Column("external_invoice_id", sa.String(length=128), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("invoice_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("resource_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("other_expenses", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_oem_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("gross_profit", sa.Numeric(14, 2), nullable=False),
        sa.Column("profit_margin_pct", sa.Numeric(7, 2), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("invoice_amount > 0", name="ck_reselling_invoices_amount_positive"),
    )
    op.create_index("ix_reselling_invoices_project_month", "reselling_invoices", ["project_id", "period_month"])
    op.create_index("ix_reselling_invoices_period_month", "reselling_invoices", ["period_month"])

    op.create_table(
        "reselling_bill_allocations",
        _uuid_pk(),
        _fk("reselling_invoice_id", "reselling_invoices.id"),
        _fk("bill_id", "bills.id"),
        _fk("product_id", "products.id"),
        sa.Column("allocation_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("allocated_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("reselling_invoice_id", "bill_id", name="uq_reselling_bill_allocations_invoice_bill"),
        sa.CheckConstraint(
            "allocation_percentage >= 0 AND allocation_percentage <= 100",
            name="ck_reselling_bill_allocations_pct_range",
        ),
    )
    op.create_index("ix_reselling_bill_allocations_bill_id", "reselling_bill_allocations", ["bill_id"])

    op.create_table(
        "project_costs",
        _uuid_pk(),
        _fk("project_id", "projects.id"),
        sa.Column("period_month", sa.Date(), nullable=False),
        sa.Column("type", project_cost_type, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "period_month", "type", name="uq_project_costs_project_month_type"),
    )
    op.create_index("ix_project_costs_period_month", "project_costs", ["period_month"])

    op.create_table(
        "financial_pods",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        _fk("leader_id", "people.id"),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("status", pod_status, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "pod_memberships",
        _uuid_pk(),
        _fk("pod_id", "financial_pods.id"),
        _fk("person_id", "people.id"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("allocation_pct", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("pod_id", "person_id", "start_date", name="uq_pod_memberships_pod_person_start"),
        sa.CheckConstraint(
            "allocation_pct >= 0 AND allocation_pct <= 100",
            name="ck_pod_memberships_allocation_pct_range",
        ),
    )
    op.create_index("ix_pod_memberships_person_id", "pod_memberships", ["person_id"])

    op.create_table(
        "pod_project_mappings",
        _uuid_pk(),
        _fk("pod_id", "financial_pods.id"),
        _fk("project_id", "projects.id"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_pod_project_mappings_pod_id", "pod_project_mappings", ["pod_id"])

    op.create_table(
        "integration_settings",
        _uuid_pk(),
        sa.Column("key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("config", postgresql.JSONB(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "sync_logs",
        _uuid_pk(),
        sa.Column("sync_type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("records_synced", sa.Integer(), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=False),
        _fk("triggered_by", "users.id", nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sync_logs_started_at", "sync_logs", ["started_at"])

    op.create_table(
        "audit_logs",
        _uuid_pk(),
        _fk("actor_id", "users.id", nullable=True),
        sa.Column("entity", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("before_json", postgresql.JSONB(), nullable=True),
        sa.Column("after_json", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_sync_logs_started_at", table_name="sync_logs")
    op.drop_table("sync_logs")
    op.drop_table("integration_settings")

    op.drop_index("ix_pod_project_mappings_pod_id", table_name="pod_project_mappings")
    op.drop_table("pod_project_mappings")
    op.drop_index("ix_pod_memberships_person_id", table_name="pod_memberships")
    op.drop_table("pod_memberships")
    op.drop_table("financial_pods")

    op.drop_index("ix_project_costs_period_month", table_name="project_costs")
    op.drop_table("project_costs")

    op.drop_index("ix_reselling_bill_allocations_bill_id", table_name="reselling_bill_allocations")
    op.drop_table("reselling_bill_allocations")
    op.drop_index("ix_reselling_invoices_period_month", table_name="reselling_invoices")
    op.drop_index("ix_reselling_invoices_project_month", table_name="reselling_invoices")
    op.drop_table("reselling_invoices")

    op.drop_index("ix_expenses_expense_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_bill_line_items_bill_id", table_name="bill_line_items")
    op.drop_table("bill_line_items")
    op.drop_index("ix_bills_bill_date", table_name="bills")
    op.drop_index("ix_bills_billed_for_month", table_name="bills")
    op.drop_table("bills")

    op.drop_index("ix_person_salaries_month", table_name="person_salaries")
    op.drop_table("person_salaries")
    op.drop_index("ix_monthly_utilization_month", table_name="monthly_utilization")
    op.drop_table("monthly_utilization")
    op.drop_table("holidays")
    op.drop_index("ix_leaves_person_dates", table_name="leaves")
    op.drop_table("leaves")

    op.drop_index("ix_timesheet_entries_person_date", table_name="timesheet_entries")
    op.drop_index("ix_timesheet_entries_work_date", table_name="timesheet_entries")
    op.drop_table("timesheet_entries")
    op.drop_table("timesheet_import_batches")

    op.drop_index("ix_allocations_project_month", table_name="allocations")
    op.drop_index("ix_allocations_person_month", table_name="allocations")
    op.drop_table("allocations")
    op.drop_table("products")
    op.drop_index("ix_manager_history_person_id", table_name="manager_history")
    op.drop_table("manager_history")
    op.drop_index("ix_people_manager_id", table_name="people")
    op.drop_table("people")
    op.drop_index("ix_projects_name", table_name="projects")
    op.drop_index("ix_projects_client_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("clients")
    op.drop_table("users")

    for enum_type in reversed(ENUMS):
        enum_type.drop(op.get_bind(), checkfirst=True)
