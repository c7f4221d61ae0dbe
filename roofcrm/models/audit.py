"""
AuditLog model for tracking administrative commission actions.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, func
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import Base

if TYPE_CHECKING:
    from roofcrm.models.user import User


class AuditAction(str, Enum):
    """Types of auditable actions."""
    CREATE_PLAN = "create_plan"
    UPDATE_PLAN = "update_plan"
    ARCHIVE_PLAN = "archive_plan"
    SET_ROLE_DEFAULT = "set_role_default"
    UPDATE_LOCATION_COMMISSION = "update_location_commission"
    APPROVE_COMMISSION = "approve_commission"
    MARK_COMMISSION_ELIGIBLE = "mark_commission_eligible"
    RECORD_COMMISSION_PAYOUT = "record_commission_payout"
    OVERRIDE_COMMISSION = "override_commission"
    RECALCULATE_COMMISSION = "recalculate_commission"
    CANCEL_COMMISSION = "cancel_commission"
    DELETE_COMMISSION = "delete_commission"
    DELETE_LEAD = "delete_lead"
    DELETE_INVOICE = "delete_invoice"
    RUN_TEAM_LEAD_COMMISSION = "run_team_lead_commission"


class AuditLog(Base):
    """
    Audit log for administrative actions.

    Every change to money owed to a person is recorded here.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    action: Mapped[AuditAction] = mapped_column(
        SQLAlchemyEnum(
            AuditAction,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    target_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Type of entity affected (commission, plan, lead, etc)",
    )
    target_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="ID of the affected entity",
    )
    action_metadata: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Additional context about the action",
    )
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),
        nullable=True,
        comment="IPv4 or IPv6 address",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action})>"
