"""Initial commission engine schema

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "000_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum types shared by several tables are created once up front
ENUMS = {
    "userrole": (
        "super_admin", "admin", "office", "sales_manager", "sales", "production", "marketing",
    ),
    "leadstage": ("new", "quote", "production", "invoiced", "closed", "lost", "archived"),
    "commissiontype": ("percentage", "flat_amount", "custom"),
    "paidwhen": ("when_deposit_paid", "when_final_payment", "when_job_completed", "custom"),
    "calculateon": ("revenue", "collected"),
    "commissionstatus": ("pending", "eligible", "approved", "paid", "cancelled"),
    "commissionconfigsource": ("manual_override", "location_override", "user_plan", "role_default"),
    "participantrole": (
        "sales_rep", "marketing_rep", "sales_manager", "production_manager", "office_manager",
    ),
    "auditaction": (
        "create_plan", "update_plan", "archive_plan", "set_role_default",
        "update_location_commission", "approve_commission", "mark_commission_eligible",
        "record_commission_payout", "override_commission", "recalculate_commission",
        "cancel_commission", "delete_commission", "delete_lead", "delete_invoice",
        "run_team_lead_commission",
    ),
}


def enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def ledger_columns() -> list:
    """Columns shared by lead_commissions and team_lead_commissions."""
    return [
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("commission_plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=True),
        sa.Column("commission_type", enum("commissiontype"), nullable=False),
        sa.Column("commission_rate", sa.Numeric(7, 4), nullable=True),
        sa.Column("flat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("paid_when", enum("paidwhen"), nullable=False),
        sa.Column("calculate_on", enum("calculateon"), nullable=False, server_default="revenue"),
        sa.Column("config_source", enum("commissionconfigsource"), nullable=False),
        sa.Column("base_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("calculated_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", enum("commissionstatus"), nullable=False, server_default="pending"),
        sa.Column("eligible_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discrepancy_base_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("discrepancy_flagged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    ]


def upgrade() -> None:
    """Create all commission engine tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Commission plans
    op.create_table(
        "commission_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("commission_type", enum("commissiontype"), nullable=False),
        sa.Column("commission_rate", sa.Numeric(7, 4), nullable=True),
        sa.Column("flat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("paid_when", enum("paidwhen"), nullable=False, server_default="when_final_payment"),
        sa.Column("calculate_on", enum("calculateon"), nullable=False, server_default="revenue"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
    )
    op.create_index("ix_commission_plans_company_id", "commission_plans", ["company_id"])
    op.create_index("ix_commission_plans_is_active", "commission_plans", ["is_active"])

    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(150), nullable=False),
        sa.Column("role", enum("userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("commission_plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_users_company_id", "users", ["company_id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_commission_plan_id", "users", ["commission_plan_id"])

    # Role defaults
    op.create_table(
        "role_commission_defaults",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("role", enum("userrole"), nullable=False),
        sa.Column("commission_plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=False),
        *timestamps(),
        sa.UniqueConstraint("company_id", "role", name="uq_role_commission_defaults_role"),
    )
    op.create_index("ix_role_commission_defaults_company_id", "role_commission_defaults", ["company_id"])

    # Locations and membership
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_locations_company_id", "locations", ["company_id"])

    op.create_table(
        "location_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *timestamps(),
        sa.UniqueConstraint("location_id", "user_id", name="uq_location_users_member"),
    )
    op.create_index("ix_location_users_location_id", "location_users", ["location_id"])
    op.create_index("ix_location_users_user_id", "location_users", ["user_id"])

    op.create_table(
        "location_commission_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("commission_type", enum("commissiontype"), nullable=True),
        sa.Column("commission_rate", sa.Numeric(7, 4), nullable=True),
        sa.Column("flat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("paid_when", enum("paidwhen"), nullable=True),
        sa.Column("calculate_on", enum("calculateon"), nullable=True),
        sa.Column("commission_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("team_lead_for_location", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("include_own_sales", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("office_manager_for_location", sa.Boolean(), nullable=False, server_default=sa.false()),
        *timestamps(),
        sa.UniqueConstraint("location_id", "user_id", name="uq_location_commission_settings_user"),
    )
    op.create_index("ix_location_commission_settings_company_id", "location_commission_settings", ["company_id"])
    op.create_index("ix_location_commission_settings_location_id", "location_commission_settings", ["location_id"])
    op.create_index("ix_location_commission_settings_user_id", "location_commission_settings", ["user_id"])

    # Leads, invoices, payments
    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("status", enum("leadstage"), nullable=False, server_default="new"),
        sa.Column("sub_status", sa.String(50), nullable=True),
        sa.Column("sales_rep_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("marketing_rep_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("sales_manager_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("production_manager_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_leads_company_id", "leads", ["company_id"])
    op.create_index("ix_leads_location_id", "leads", ["location_id"])
    op.create_index("ix_leads_status", "leads", ["status"])
    op.create_index("ix_leads_sales_rep_id", "leads", ["sales_rep_id"])
    op.create_index("ix_leads_deleted_at", "leads", ["deleted_at"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lead_id", sa.Integer(), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("invoice_number", sa.String(50), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_invoices_lead_id", "invoices", ["lead_id"])
    op.create_index("ix_invoices_deleted_at", "invoices", ["deleted_at"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lead_id", sa.Integer(), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("cleared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_payments_lead_id", "payments", ["lead_id"])
    op.create_index("ix_payments_deleted_at", "payments", ["deleted_at"])

    # Commission ledger
    op.create_table(
        "lead_commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lead_id", sa.Integer(), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("participant_role", enum("participantrole"), nullable=False),
        sa.Column("is_manual_override", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("triggered_by_payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=True),
        *ledger_columns(),
    )
    op.create_index("ix_lead_commissions_lead_id", "lead_commissions", ["lead_id"])
    op.create_index("ix_lead_commissions_user_id", "lead_commissions", ["user_id"])
    op.create_index("ix_lead_commissions_company_id", "lead_commissions", ["company_id"])
    op.create_index("ix_lead_commissions_status", "lead_commissions", ["status"])
    op.create_index("ix_lead_commissions_deleted_at", "lead_commissions", ["deleted_at"])
    op.create_index(
        "uq_lead_commissions_active_participant",
        "lead_commissions",
        ["lead_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "team_lead_commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("deal_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("include_own_sales", sa.Boolean(), nullable=False, server_default=sa.false()),
        *ledger_columns(),
    )
    op.create_index("ix_team_lead_commissions_location_id", "team_lead_commissions", ["location_id"])
    op.create_index("ix_team_lead_commissions_user_id", "team_lead_commissions", ["user_id"])
    op.create_index("ix_team_lead_commissions_company_id", "team_lead_commissions", ["company_id"])
    op.create_index("ix_team_lead_commissions_status", "team_lead_commissions", ["status"])
    op.create_index("ix_team_lead_commissions_deleted_at", "team_lead_commissions", ["deleted_at"])
    op.create_index(
        "uq_team_lead_commissions_active_period",
        "team_lead_commissions",
        ["location_id", "user_id", "period_start", "period_end"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    # Audit logs
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", enum("auditaction"), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("action_metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    """Drop all commission engine tables."""
    op.drop_table("audit_logs")
    op.drop_table("team_lead_commissions")
    op.drop_table("lead_commissions")
    op.drop_table("payments")
    op.drop_table("invoices")
    op.drop_table("leads")
    op.drop_table("location_commission_settings")
    op.drop_table("location_users")
    op.drop_table("locations")
    op.drop_table("role_commission_defaults")
    op.drop_table("users")
    op.drop_table("commission_plans")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
