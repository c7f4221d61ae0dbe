"""
Commission eligibility evaluation.

evaluate() is a pure function of a trigger condition and a snapshot of the
lead's revenue facts. load_revenue_facts() builds that snapshot from the
invoices, payments and production status of the lead.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.config import settings
from roofcrm.models import CalculateOn, Invoice, Lead, PaidWhen, Payment


@dataclass(frozen=True)
class LeadRevenueFacts:
    """Revenue facts of one lead at one point in time."""

    lead_id: int
    invoice_id: Optional[int] = None
    invoice_total: Optional[Decimal] = None
    invoice_date: Optional[date] = None
    balance_due: Optional[Decimal] = None
    cleared_payment_ids: Tuple[int, ...] = ()
    collected_total: Decimal = Decimal("0.00")
    sub_status: Optional[str] = None
    completed_sub_status: str = "completed"

    @property
    def has_invoice(self) -> bool:
        return self.invoice_id is not None

    @property
    def has_cleared_payment(self) -> bool:
        return len(self.cleared_payment_ids) > 0

    @property
    def first_cleared_payment_id(self) -> Optional[int]:
        return self.cleared_payment_ids[0] if self.cleared_payment_ids else None

    def base_amount_for(self, calculate_on: CalculateOn) -> Decimal:
        """Revenue figure a commission computed on `calculate_on` is based on."""
        if calculate_on == CalculateOn.COLLECTED:
            return self.collected_total
        return self.invoice_total if self.invoice_total is not None else Decimal("0.00")


def evaluate(trigger: PaidWhen, facts: LeadRevenueFacts) -> bool:
    """
    Decide whether a trigger condition holds for a lead.

    - when_deposit_paid: at least one non-deleted payment has cleared
    - when_final_payment: the current invoice has exactly zero balance due
    - when_job_completed: the production sub-status is the completed value
    - custom: never; an admin must mark the commission eligible
    """
    if trigger == PaidWhen.WHEN_DEPOSIT_PAID:
        return facts.has_cleared_payment

    if trigger == PaidWhen.WHEN_FINAL_PAYMENT:
        return facts.has_invoice and facts.balance_due is not None and facts.balance_due == 0

    if trigger == PaidWhen.WHEN_JOB_COMPLETED:
        return facts.sub_status is not None and facts.sub_status == facts.completed_sub_status

    return False


def evaluate_all(trigger: PaidWhen, facts: Iterable[LeadRevenueFacts]) -> bool:
    """True when the trigger holds for every lead (and there is at least one)."""
    facts = list(facts)
    return bool(facts) and all(evaluate(trigger, f) for f in facts)


async def get_current_invoice(db: AsyncSession, lead_id: int) -> Optional[Invoice]:
    """Most recent non-deleted invoice of a lead."""
    result = await db.execute(
        select(Invoice)
        .where(
            Invoice.lead_id == lead_id,
            Invoice.deleted_at.is_(None),
        )
        .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def load_revenue_facts(
    db: AsyncSession,
    lead: Lead,
    completed_sub_status: Optional[str] = None,
) -> LeadRevenueFacts:
    """Read the revenue facts the evaluator needs for a lead."""
    invoice = await get_current_invoice(db, lead.id)

    result = await db.execute(
        select(Payment.id, Payment.amount)
        .where(
            Payment.lead_id == lead.id,
            Payment.deleted_at.is_(None),
            Payment.cleared_at.is_not(None),
        )
        .order_by(Payment.cleared_at, Payment.id)
    )
    cleared = result.all()
    cleared_ids = tuple(payment_id for payment_id, _ in cleared)
    collected = sum((amount for _, amount in cleared), Decimal("0.00"))

    return LeadRevenueFacts(
        lead_id=lead.id,
        invoice_id=invoice.id if invoice else None,
        invoice_total=invoice.total if invoice else None,
        invoice_date=invoice.invoice_date if invoice else None,
        balance_due=invoice.balance_due if invoice else None,
        cleared_payment_ids=cleared_ids,
        collected_total=collected,
        sub_status=lead.sub_status,
        completed_sub_status=completed_sub_status or settings.completed_sub_status,
    )
