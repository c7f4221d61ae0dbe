"""
Invoices and payments: the revenue facts the commission engine observes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Date, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roofcrm.models.base import MONEY, Base, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from roofcrm.models.lead import Lead


class Invoice(Base, TimestampMixin, SoftDeleteMixin):
    """Customer invoice for a lead."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("leads.id"),
        nullable=False,
        index=True,
    )
    invoice_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    invoice_date: Mapped[date] = mapped_column(
        Date,
        default=date.today,
        nullable=False,
    )
    total: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )
    balance_due: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )

    lead: Mapped["Lead"] = relationship("Lead", back_populates="invoices")

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, lead_id={self.lead_id}, total={self.total})>"


class Payment(Base, TimestampMixin, SoftDeleteMixin):
    """Customer payment against a lead."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("leads.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )
    cleared_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set when the payment has cleared the bank",
    )

    lead: Mapped["Lead"] = relationship("Lead", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, lead_id={self.lead_id}, amount={self.amount})>"
