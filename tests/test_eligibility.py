"""
Tests for eligibility evaluation.

Covers:
- evaluate() for every trigger condition
- evaluate_all() over several leads
- Current invoice selection and revenue facts loading
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from roofcrm.models import CalculateOn, PaidWhen
from roofcrm.services.eligibility import (
    LeadRevenueFacts,
    evaluate,
    evaluate_all,
    get_current_invoice,
    load_revenue_facts,
)


def _facts(**kwargs):
    defaults = {"lead_id": 1}
    defaults.update(kwargs)
    return LeadRevenueFacts(**defaults)


# ── evaluate ─────────────────────────────────────────────


class TestEvaluate:
    def test_final_payment_zero_balance(self):
        facts = _facts(invoice_id=1, invoice_total=Decimal("10000.00"), balance_due=Decimal("0.00"))
        assert evaluate(PaidWhen.WHEN_FINAL_PAYMENT, facts) is True

    def test_final_payment_one_cent_due(self):
        facts = _facts(invoice_id=1, invoice_total=Decimal("10000.00"), balance_due=Decimal("0.01"))
        assert evaluate(PaidWhen.WHEN_FINAL_PAYMENT, facts) is False

    def test_final_payment_without_invoice(self):
        assert evaluate(PaidWhen.WHEN_FINAL_PAYMENT, _facts()) is False

    def test_deposit_paid(self):
        assert evaluate(PaidWhen.WHEN_DEPOSIT_PAID, _facts(cleared_payment_ids=(7,))) is True
        assert evaluate(PaidWhen.WHEN_DEPOSIT_PAID, _facts()) is False

    def test_job_completed(self):
        assert evaluate(PaidWhen.WHEN_JOB_COMPLETED, _facts(sub_status="completed")) is True
        assert evaluate(PaidWhen.WHEN_JOB_COMPLETED, _facts(sub_status="scheduled")) is False
        assert evaluate(PaidWhen.WHEN_JOB_COMPLETED, _facts()) is False

    def test_job_completed_uses_configured_value(self):
        facts = _facts(sub_status="done", completed_sub_status="done")
        assert evaluate(PaidWhen.WHEN_JOB_COMPLETED, facts) is True

    def test_custom_never_automatic(self):
        facts = _facts(
            invoice_id=1,
            balance_due=Decimal("0.00"),
            cleared_payment_ids=(1,),
            sub_status="completed",
        )
        assert evaluate(PaidWhen.CUSTOM, facts) is False


class TestEvaluateAll:
    def test_all_must_hold(self):
        paid = _facts(invoice_id=1, balance_due=Decimal("0.00"))
        unpaid = _facts(lead_id=2, invoice_id=2, balance_due=Decimal("50.00"))
        assert evaluate_all(PaidWhen.WHEN_FINAL_PAYMENT, [paid]) is True
        assert evaluate_all(PaidWhen.WHEN_FINAL_PAYMENT, [paid, unpaid]) is False

    def test_empty_is_false(self):
        assert evaluate_all(PaidWhen.WHEN_FINAL_PAYMENT, []) is False


# ── Revenue facts from the database ──────────────────────


class TestRevenueFacts:
    @pytest.mark.asyncio
    async def test_current_invoice_is_latest_non_deleted(self, seed, db_session):
        location = await seed.location()
        lead = await seed.lead(location)
        await seed.invoice(lead, "8000.00", invoice_date=date(2026, 1, 10))
        latest = await seed.invoice(lead, "9000.00", invoice_date=date(2026, 2, 1))
        deleted = await seed.invoice(lead, "9500.00", invoice_date=date(2026, 3, 1))
        deleted.deleted_at = datetime.now(timezone.utc)
        await db_session.flush()

        invoice = await get_current_invoice(db_session, lead.id)

        assert invoice.id == latest.id

    @pytest.mark.asyncio
    async def test_load_facts_counts_only_cleared_payments(self, seed, db_session):
        location = await seed.location()
        lead = await seed.lead(location, sub_status="completed")
        invoice = await seed.invoice(lead, "10000.00", balance_due="4000.00")
        cleared = await seed.payment(lead, "6000.00")
        await seed.payment(lead, "1000.00", cleared=False)
        removed = await seed.payment(lead, "500.00")
        removed.deleted_at = datetime.now(timezone.utc)
        await db_session.flush()

        facts = await load_revenue_facts(db_session, lead)

        assert facts.invoice_id == invoice.id
        assert facts.invoice_total == Decimal("10000.00")
        assert facts.balance_due == Decimal("4000.00")
        assert facts.cleared_payment_ids == (cleared.id,)
        assert facts.first_cleared_payment_id == cleared.id
        assert facts.collected_total == Decimal("6000.00")
        assert evaluate(PaidWhen.WHEN_JOB_COMPLETED, facts) is True

    @pytest.mark.asyncio
    async def test_load_facts_without_invoice(self, seed, db_session):
        location = await seed.location()
        lead = await seed.lead(location)

        facts = await load_revenue_facts(db_session, lead)

        assert not facts.has_invoice
        assert not facts.has_cleared_payment
        assert facts.collected_total == Decimal("0.00")


# ── Base amount ──────────────────────────────────────────


class TestBaseAmount:
    def test_revenue_is_invoice_total(self):
        facts = _facts(invoice_id=1, invoice_total=Decimal("10000.00"), collected_total=Decimal("2500.00"))
        assert facts.base_amount_for(CalculateOn.REVENUE) == Decimal("10000.00")

    def test_collected_is_cleared_payments(self):
        facts = _facts(invoice_id=1, invoice_total=Decimal("10000.00"), collected_total=Decimal("2500.00"))
        assert facts.base_amount_for(CalculateOn.COLLECTED) == Decimal("2500.00")

    def test_revenue_without_invoice_is_zero(self):
        assert _facts().base_amount_for(CalculateOn.REVENUE) == Decimal("0.00")
