"""
Commission ledger models.

LeadCommission is one row per (lead, participant). TeamLeadCommission is the
derived aggregate row a team lead earns on a location's production over a
period. Both share the money columns and the status state machine.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import MONEY, RATE, Base, SoftDeleteMixin, TimestampMixin
from roofcrm.models.commission_plan import (
    CalculateOn,
    CommissionType,
    PaidWhen,
    calculate_on_enum,
    commission_type_enum,
    paid_when_enum,
)

if TYPE_CHECKING:
    from roofcrm.models.lead import Lead
    from roofcrm.models.user import User


class CommissionStatus(str, Enum):
    """Ledger row status."""
    PENDING = "pending"        # Waiting for the trigger condition
    ELIGIBLE = "eligible"      # Trigger met, waiting for admin approval
    APPROVED = "approved"      # Approved for payout
    PAID = "paid"              # Fully paid out
    CANCELLED = "cancelled"    # Deal voided before approval


# Rows whose amount may still be recalculated or cancelled
OPEN_STATUSES = (CommissionStatus.PENDING, CommissionStatus.ELIGIBLE)

# Rows where real money is committed
LOCKED_STATUSES = (CommissionStatus.APPROVED, CommissionStatus.PAID)


class ParticipantRole(str, Enum):
    """Capacity in which a user earns commission on a lead."""
    SALES_REP = "sales_rep"
    MARKETING_REP = "marketing_rep"
    SALES_MANAGER = "sales_manager"
    PRODUCTION_MANAGER = "production_manager"
    OFFICE_MANAGER = "office_manager"


class ConfigSource(str, Enum):
    """Where the snapshotted commission terms came from."""
    MANUAL_OVERRIDE = "manual_override"
    LOCATION_OVERRIDE = "location_override"
    USER_PLAN = "user_plan"
    ROLE_DEFAULT = "role_default"


commission_status_enum = SQLAlchemyEnum(
    CommissionStatus,
    values_callable=lambda x: [e.value for e in x],
    name="commissionstatus",
)


class CommissionLedgerMixin(TimestampMixin, SoftDeleteMixin):
    """Columns shared by every commission ledger row."""

    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    commission_plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("commission_plans.id"),
        nullable=True,
        comment="Plan the terms were resolved from (provenance only)",
    )

    # Snapshotted terms
    commission_type: Mapped[CommissionType] = mapped_column(
        commission_type_enum,
        nullable=False,
    )
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        RATE,
        nullable=True,
    )
    flat_amount: Mapped[Optional[Decimal]] = mapped_column(
        MONEY,
        nullable=True,
    )
    paid_when: Mapped[PaidWhen] = mapped_column(
        paid_when_enum,
        nullable=False,
    )
    calculate_on: Mapped[CalculateOn] = mapped_column(
        calculate_on_enum,
        default=CalculateOn.REVENUE,
        nullable=False,
    )
    config_source: Mapped[ConfigSource] = mapped_column(
        SQLAlchemyEnum(
            ConfigSource,
            values_callable=lambda x: [e.value for e in x],
            name="commissionconfigsource",
        ),
        nullable=False,
    )

    # Money
    base_amount: Mapped[Decimal] = mapped_column(
        MONEY,
        default=Decimal("0.00"),
        nullable=False,
    )
    calculated_amount: Mapped[Decimal] = mapped_column(
        MONEY,
        default=Decimal("0.00"),
        nullable=False,
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        MONEY,
        default=Decimal("0.00"),
        nullable=False,
    )

    # Status
    status: Mapped[CommissionStatus] = mapped_column(
        commission_status_enum,
        default=CommissionStatus.PENDING,
        nullable=False,
        index=True,
    )
    eligible_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    approved_by_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    paid_by_user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Set when revenue changed after the amount was locked by approval
    discrepancy_base_amount: Mapped[Optional[Decimal]] = mapped_column(
        MONEY,
        nullable=True,
    )
    discrepancy_flagged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    @property
    def balance_owed(self) -> Decimal:
        return (self.calculated_amount or Decimal("0.00")) - (self.paid_amount or Decimal("0.00"))

    @property
    def has_discrepancy(self) -> bool:
        return self.discrepancy_flagged_at is not None


class LeadCommission(Base, CommissionLedgerMixin):
    """
    Commission owed to one participant on one lead.

    At most one non-deleted row exists per (lead_id, user_id); the partial
    unique index below is the storage-level guard for concurrent inserts.
    """

    __tablename__ = "lead_commissions"
    __table_args__ = (
        Index(
            "uq_lead_commissions_active_participant",
            "lead_id",
            "user_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("leads.id"),
        nullable=False,
        index=True,
    )
    participant_role: Mapped[ParticipantRole] = mapped_column(
        SQLAlchemyEnum(
            ParticipantRole,
            values_callable=lambda x: [e.value for e in x],
            name="participantrole",
        ),
        nullable=False,
    )
    is_manual_override: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Terms were edited by an admin and survive re-resolution",
    )
    triggered_by_payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payments.id"),
        nullable=True,
    )

    # Relationships
    lead: Mapped["Lead"] = relationship("Lead")
    user: Mapped["User"] = relationship("User", foreign_keys="LeadCommission.user_id")

    def __repr__(self) -> str:
        return (
            f"<LeadCommission(id={self.id}, lead_id={self.lead_id}, "
            f"user_id={self.user_id}, status={self.status}, amount={self.calculated_amount})>"
        )


class TeamLeadCommission(Base, CommissionLedgerMixin):
    """
    Override commission a team lead earns on a location's production.

    Keyed by (location_id, user_id, period_start, period_end) among
    non-deleted rows; separate from the lead's individual deal commissions.
    """

    __tablename__ = "team_lead_commissions"
    __table_args__ = (
        Index(
            "uq_team_lead_commissions_active_period",
            "location_id",
            "user_id",
            "period_start",
            "period_end",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Exclusive",
    )
    deal_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    include_own_sales: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", foreign_keys="TeamLeadCommission.user_id")

    def __repr__(self) -> str:
        return (
            f"<TeamLeadCommission(id={self.id}, location_id={self.location_id}, "
            f"user_id={self.user_id}, period={self.period_start}..{self.period_end})>"
        )
