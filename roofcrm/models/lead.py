"""
Lead model as seen by the commission engine.

Leads are owned by the CRM pipeline; the engine reads the location,
pipeline stage, production sub-status and the assigned participants.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import Base, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from roofcrm.models.billing import Invoice, Payment


class LeadStage(str, Enum):
    """Pipeline stage of a lead."""
    NEW = "new"
    QUOTE = "quote"
    PRODUCTION = "production"
    INVOICED = "invoiced"
    CLOSED = "closed"
    LOST = "lost"
    ARCHIVED = "archived"


# Stages in which the job has been sold
CLOSED_DEAL_STAGES = (LeadStage.PRODUCTION, LeadStage.INVOICED, LeadStage.CLOSED)


class Lead(Base, TimestampMixin, SoftDeleteMixin):
    """A roofing job moving through the sales pipeline."""

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(primary_key=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id"),
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
        comment="Customer name",
    )
    status: Mapped[LeadStage] = mapped_column(
        SQLAlchemyEnum(
            LeadStage,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=LeadStage.NEW,
        nullable=False,
        index=True,
    )
    sub_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Checklist step within the current stage",
    )

    # Participants
    sales_rep_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )
    marketing_rep_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    sales_manager_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    production_manager_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    # Relationships
    invoices: Mapped[List["Invoice"]] = relationship(
        "Invoice",
        back_populates="lead",
    )
    payments: Mapped[List["Payment"]] = relationship(
        "Payment",
        back_populates="lead",
    )

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, status={self.status}, location_id={self.location_id})>"
