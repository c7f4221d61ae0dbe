"""
Commission plan templates and per-role defaults.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import MONEY, RATE, Base, TimestampMixin
from roofcrm.models.user import UserRole


class CommissionType(str, Enum):
    """How a commission amount is derived."""
    PERCENTAGE = "percentage"      # % of the base amount
    FLAT_AMOUNT = "flat_amount"    # Fixed amount per job
    CUSTOM = "custom"              # Amount entered by an admin


class PaidWhen(str, Enum):
    """Trigger condition that makes a commission payable."""
    WHEN_DEPOSIT_PAID = "when_deposit_paid"
    WHEN_FINAL_PAYMENT = "when_final_payment"
    WHEN_JOB_COMPLETED = "when_job_completed"
    CUSTOM = "custom"


class CalculateOn(str, Enum):
    """Which revenue figure a commission is computed against."""
    REVENUE = "revenue"        # Current invoice total
    COLLECTED = "collected"    # Sum of cleared payments


commission_type_enum = SQLAlchemyEnum(
    CommissionType,
    values_callable=lambda x: [e.value for e in x],
    name="commissiontype",
)

paid_when_enum = SQLAlchemyEnum(
    PaidWhen,
    values_callable=lambda x: [e.value for e in x],
    name="paidwhen",
)

calculate_on_enum = SQLAlchemyEnum(
    CalculateOn,
    values_callable=lambda x: [e.value for e in x],
    name="calculateon",
)


class CommissionPlan(Base, TimestampMixin):
    """
    Reusable named commission template.

    Plans are never physically deleted; archiving sets is_active=False.
    Ledger rows snapshot the plan terms, so editing a plan does not
    change commissions that already exist.
    """

    __tablename__ = "commission_plans"

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(150),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    commission_type: Mapped[CommissionType] = mapped_column(
        commission_type_enum,
        nullable=False,
    )
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        RATE,
        nullable=True,
        comment="Percent of base amount, required for percentage plans",
    )
    flat_amount: Mapped[Optional[Decimal]] = mapped_column(
        MONEY,
        nullable=True,
        comment="Fixed amount, required for flat_amount plans",
    )
    paid_when: Mapped[PaidWhen] = mapped_column(
        paid_when_enum,
        default=PaidWhen.WHEN_FINAL_PAYMENT,
        nullable=False,
    )
    calculate_on: Mapped[CalculateOn] = mapped_column(
        calculate_on_enum,
        default=CalculateOn.REVENUE,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionPlan(id={self.id}, name='{self.name}', "
            f"type={self.commission_type})>"
        )


class RoleCommissionDefault(Base, TimestampMixin):
    """Fallback plan for users of a role who have no plan assigned."""

    __tablename__ = "role_commission_defaults"
    __table_args__ = (
        UniqueConstraint("company_id", "role", name="uq_role_commission_defaults_role"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    role: Mapped[UserRole] = mapped_column(
        SQLAlchemyEnum(
            UserRole,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    commission_plan_id: Mapped[int] = mapped_column(
        ForeignKey("commission_plans.id"),
        nullable=False,
    )

    commission_plan: Mapped["CommissionPlan"] = relationship("CommissionPlan")

    def __repr__(self) -> str:
        return f"<RoleCommissionDefault(role={self.role}, plan_id={self.commission_plan_id})>"
