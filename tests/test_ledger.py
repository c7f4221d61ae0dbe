"""
Tests for the commission ledger.

Covers:
- Idempotent ensure (including a lost insert race)
- Recalculation and the approval lock
- The status state machine, approvals and payouts
- Manual overrides, cancellation, soft delete
- Listing filters and lead summaries
"""

from decimal import Decimal

import pytest

from roofcrm.models import (
    CalculateOn,
    CommissionStatus,
    CommissionType,
    ConfigSource,
    Lead,
    LeadCommission,
    PaidWhen,
    ParticipantRole,
)
from roofcrm.services import commission_ledger as ledger
from roofcrm.services.commission import ResolvedCommissionConfig
from roofcrm.services.results import (
    CommissionNotFound,
    InvalidTransition,
    LockedAfterApproval,
    PayoutRejected,
)


def _config(**kwargs):
    defaults = {
        "commission_type": CommissionType.PERCENTAGE,
        "paid_when": PaidWhen.WHEN_FINAL_PAYMENT,
        "source": ConfigSource.USER_PLAN,
        "commission_rate": Decimal("10"),
    }
    defaults.update(kwargs)
    return ResolvedCommissionConfig(**defaults)


async def _lead_with_rep(seed):
    rep = await seed.user()
    location = await seed.location()
    lead = await seed.lead(location, rep)
    return lead, rep


async def _row(seed, db_session, status=CommissionStatus.PENDING, base="2000.00", config=None):
    lead, rep = await _lead_with_rep(seed)
    row = await ledger.ensure(db_session, lead, rep.id, config or _config(), Decimal(base))
    row.status = status
    await db_session.flush()
    return row


# ── ensure ───────────────────────────────────────────────


class TestEnsure:
    @pytest.mark.asyncio
    async def test_creates_pending_row(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)

        row = await ledger.ensure(
            db_session, lead, rep.id, _config(), Decimal("2000.00"), ParticipantRole.SALES_REP
        )

        assert row.id is not None
        assert row.status == CommissionStatus.PENDING
        assert row.base_amount == Decimal("2000.00")
        assert row.calculated_amount == Decimal("200.00")
        assert row.paid_amount == Decimal("0.00")
        assert row.config_source == ConfigSource.USER_PLAN
        assert row.balance_owed == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_snapshots_calculation_basis(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)

        row = await ledger.ensure(
            db_session, lead, rep.id, _config(calculate_on=CalculateOn.COLLECTED), Decimal("500.00")
        )

        assert row.calculate_on == CalculateOn.COLLECTED
        assert row.calculated_amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_twice_yields_one_row(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)

        first = await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("2000.00"))
        second = await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("2000.00"))
        await db_session.commit()

        assert first.id == second.id
        assert len(await seed.commissions(lead.id)) == 1

    @pytest.mark.asyncio
    async def test_pending_row_follows_new_terms(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)
        await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("2000.00"))

        row = await ledger.ensure(
            db_session, lead, rep.id, _config(commission_rate=Decimal("15")), Decimal("3000.00")
        )

        assert row.commission_rate == Decimal("15")
        assert row.calculated_amount == Decimal("450.00")

    @pytest.mark.asyncio
    async def test_eligible_row_is_returned_untouched(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.ELIGIBLE)
        lead = await db_session.get(Lead, row.lead_id)

        again = await ledger.ensure(
            db_session, lead, row.user_id, _config(commission_rate=Decimal("50")), Decimal("9999.00")
        )

        assert again.id == row.id
        assert again.calculated_amount == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_manual_override_survives_ensure(self, seed, db_session):
        row = await _row(seed, db_session)
        await ledger.apply_manual_override(
            db_session,
            row.id,
            _config(commission_type=CommissionType.FLAT_AMOUNT, commission_rate=None, flat_amount=Decimal("800")),
        )
        lead = await db_session.get(Lead, row.lead_id)

        again = await ledger.ensure(db_session, lead, row.user_id, _config(), Decimal("5000.00"))

        assert again.is_manual_override
        assert again.commission_type == CommissionType.FLAT_AMOUNT
        assert again.calculated_amount == Decimal("800.00")
        assert again.base_amount == Decimal("5000.00")

    @pytest.mark.asyncio
    async def test_lost_insert_race_returns_winner(self, seed, db_session, monkeypatch):
        lead, rep = await _lead_with_rep(seed)
        winner = LeadCommission(
            company_id=lead.company_id,
            lead_id=lead.id,
            user_id=rep.id,
            participant_role=ParticipantRole.SALES_REP,
            commission_type=CommissionType.PERCENTAGE,
            commission_rate=Decimal("10"),
            paid_when=PaidWhen.WHEN_FINAL_PAYMENT,
            config_source=ConfigSource.USER_PLAN,
            base_amount=Decimal("1000.00"),
            calculated_amount=Decimal("100.00"),
        )
        db_session.add(winner)
        await db_session.flush()

        # The first lookup misses the concurrent insert
        real_lookup = ledger.get_active_commission
        calls = []

        async def racing_lookup(db, lead_id, user_id):
            calls.append(lead_id)
            if len(calls) == 1:
                return None
            return await real_lookup(db, lead_id, user_id)

        monkeypatch.setattr(ledger, "get_active_commission", racing_lookup)

        row = await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("2000.00"))

        assert row.id == winner.id
        assert row.base_amount == Decimal("2000.00")
        assert len(calls) == 2


# ── recalculate ──────────────────────────────────────────


class TestRecalculate:
    @pytest.mark.asyncio
    async def test_pending_row_recalculated(self, seed, db_session):
        row = await _row(seed, db_session)

        result = await ledger.recalculate(db_session, row.id, Decimal("3000.00"))

        assert result.base_amount == Decimal("3000.00")
        assert result.calculated_amount == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_approved_row_is_locked(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED)

        result = await ledger.recalculate(db_session, row.id, Decimal("9000.00"))

        assert isinstance(result, LockedAfterApproval)
        assert result.status == CommissionStatus.APPROVED
        assert result.attempted_base_amount == Decimal("9000.00")
        assert row.calculated_amount == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_cancelled_row_rejected(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.CANCELLED)

        result = await ledger.recalculate(db_session, row.id, Decimal("9000.00"))

        assert isinstance(result, InvalidTransition)

    @pytest.mark.asyncio
    async def test_flat_amount_ignores_base(self, seed, db_session):
        row = await _row(
            seed,
            db_session,
            config=_config(commission_type=CommissionType.FLAT_AMOUNT, commission_rate=None, flat_amount=Decimal("500")),
        )

        result = await ledger.recalculate(db_session, row.id, Decimal("123456.78"))

        assert result.calculated_amount == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_not_found(self, db_session):
        result = await ledger.recalculate(db_session, 999, Decimal("1.00"))
        assert isinstance(result, CommissionNotFound)


# ── State machine ────────────────────────────────────────


class TestTransition:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "current,requested",
        [
            (CommissionStatus.PENDING, CommissionStatus.ELIGIBLE),
            (CommissionStatus.PENDING, CommissionStatus.CANCELLED),
            (CommissionStatus.ELIGIBLE, CommissionStatus.APPROVED),
            (CommissionStatus.ELIGIBLE, CommissionStatus.CANCELLED),
        ],
    )
    async def test_allowed(self, seed, db_session, current, requested):
        row = await _row(seed, db_session, status=current)

        result = await ledger.transition(db_session, row.id, requested, actor_user_id=row.user_id)

        assert result.status == requested

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "current,requested",
        [
            (CommissionStatus.PENDING, CommissionStatus.APPROVED),
            (CommissionStatus.PENDING, CommissionStatus.PAID),
            (CommissionStatus.ELIGIBLE, CommissionStatus.PENDING),
            (CommissionStatus.APPROVED, CommissionStatus.CANCELLED),
            (CommissionStatus.PAID, CommissionStatus.APPROVED),
            (CommissionStatus.CANCELLED, CommissionStatus.PENDING),
            (CommissionStatus.PENDING, CommissionStatus.PENDING),
        ],
    )
    async def test_rejected_leaves_row_untouched(self, seed, db_session, current, requested):
        row = await _row(seed, db_session, status=current)

        result = await ledger.transition(db_session, row.id, requested)

        assert isinstance(result, InvalidTransition)
        assert result.current == current
        assert result.requested == requested
        assert row.status == current

    @pytest.mark.asyncio
    async def test_new_status_is_visible_to_queries(self, seed, db_session):
        row = await _row(seed, db_session)

        await ledger.transition(db_session, row.id, CommissionStatus.ELIGIBLE)

        eligible = await ledger.get_lead_commissions(
            db_session, row.lead_id, statuses=[CommissionStatus.ELIGIBLE]
        )
        assert [r.id for r in eligible] == [row.id]

    @pytest.mark.asyncio
    async def test_paid_requires_full_payment(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED)

        result = await ledger.transition(db_session, row.id, CommissionStatus.PAID)

        assert isinstance(result, InvalidTransition)
        assert row.status == CommissionStatus.APPROVED

    @pytest.mark.asyncio
    async def test_approve_records_approver(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.ELIGIBLE)
        admin = await seed.user()

        result = await ledger.approve(db_session, row.id, admin.id)

        assert result.status == CommissionStatus.APPROVED
        assert result.approved_by_user_id == admin.id
        assert result.approved_at is not None


class TestBulkApprove:
    @pytest.mark.asyncio
    async def test_only_eligible_rows_approved(self, seed, db_session):
        eligible = await _row(seed, db_session, status=CommissionStatus.ELIGIBLE)
        pending = await _row(seed, db_session, status=CommissionStatus.PENDING)
        admin = await seed.user()

        approved, rejected = await ledger.bulk_approve(
            db_session, [eligible.id, pending.id, 999], admin.id, company_id=eligible.company_id
        )

        assert [row.id for row in approved] == [eligible.id]
        assert {error.commission_id for error in rejected} == {pending.id, 999}
        assert pending.status == CommissionStatus.PENDING

    @pytest.mark.asyncio
    async def test_other_company_rows_not_found(self, seed, db_session):
        eligible = await _row(seed, db_session, status=CommissionStatus.ELIGIBLE)
        admin = await seed.user()

        approved, rejected = await ledger.bulk_approve(db_session, [eligible.id], admin.id, company_id=2)

        assert approved == []
        assert isinstance(rejected[0], CommissionNotFound)


class TestRecordPayout:
    @pytest.mark.asyncio
    async def test_partial_payout_stays_approved(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED)
        admin = await seed.user()

        result = await ledger.record_payout(db_session, row.id, admin.id, amount=Decimal("50.00"))

        assert result.status == CommissionStatus.APPROVED
        assert result.paid_amount == Decimal("50.00")
        assert result.balance_owed == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_full_payout_marks_paid(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED)
        admin = await seed.user()

        await ledger.record_payout(db_session, row.id, admin.id, amount=Decimal("50.00"))
        result = await ledger.record_payout(db_session, row.id, admin.id, reference="CHK-1001")

        assert result.status == CommissionStatus.PAID
        assert result.paid_amount == Decimal("200.00")
        assert result.balance_owed == Decimal("0.00")
        assert result.payment_reference == "CHK-1001"
        assert result.paid_at is not None
        assert result.paid_by_user_id == admin.id

    @pytest.mark.asyncio
    async def test_overpayment_rejected(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED)

        result = await ledger.record_payout(db_session, row.id, row.user_id, amount=Decimal("200.01"))

        assert isinstance(result, PayoutRejected)
        assert row.paid_amount == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_only_approved_rows_paid(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.ELIGIBLE)

        result = await ledger.record_payout(db_session, row.id, row.user_id)

        assert isinstance(result, InvalidTransition)
        assert result.requested == CommissionStatus.PAID

    @pytest.mark.asyncio
    async def test_zero_amount_commission_is_closed_out(self, seed, db_session):
        config = _config(commission_type=CommissionType.CUSTOM, commission_rate=None)
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED, config=config)
        admin = await seed.user()
        assert row.calculated_amount == Decimal("0.00")

        result = await ledger.record_payout(db_session, row.id, admin.id, reference="NO-PAY")

        assert result.status == CommissionStatus.PAID
        assert result.paid_amount == Decimal("0.00")
        assert result.paid_by_user_id == admin.id
        assert result.payment_reference == "NO-PAY"
        assert result.paid_at is not None

    @pytest.mark.asyncio
    async def test_zero_amount_commission_rejects_money(self, seed, db_session):
        config = _config(commission_type=CommissionType.CUSTOM, commission_rate=None)
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED, config=config)

        result = await ledger.record_payout(db_session, row.id, row.user_id, amount=Decimal("1.00"))

        assert isinstance(result, PayoutRejected)
        assert row.status == CommissionStatus.APPROVED


class TestManualOverride:
    @pytest.mark.asyncio
    async def test_sets_terms_and_flag(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.ELIGIBLE)

        result = await ledger.apply_manual_override(
            db_session,
            row.id,
            _config(commission_type=CommissionType.CUSTOM, commission_rate=None, flat_amount=Decimal("321.00")),
            notes="Split with office",
        )

        assert result.is_manual_override
        assert result.config_source == ConfigSource.MANUAL_OVERRIDE
        assert result.calculated_amount == Decimal("321.00")
        assert result.notes == "Split with office"
        assert result.status == CommissionStatus.ELIGIBLE

    @pytest.mark.asyncio
    async def test_locked_after_approval(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.PAID)

        result = await ledger.apply_manual_override(db_session, row.id, _config(commission_rate=Decimal("50")))

        assert isinstance(result, LockedAfterApproval)
        assert row.commission_rate == Decimal("10")


class TestCancelAndDelete:
    @pytest.mark.asyncio
    async def test_cancel_records_reason(self, seed, db_session):
        row = await _row(seed, db_session)

        result = await ledger.cancel(db_session, row.id, reason="Customer backed out")

        assert result.status == CommissionStatus.CANCELLED
        assert result.cancelled_at is not None
        assert result.notes == "Customer backed out"

    @pytest.mark.asyncio
    async def test_soft_delete_frees_key(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.CANCELLED)
        lead = await db_session.get(Lead, row.lead_id)

        await ledger.soft_delete(db_session, row.id)
        fresh = await ledger.ensure(db_session, lead, row.user_id, _config(), Decimal("2000.00"))
        await db_session.commit()

        assert fresh.id != row.id
        assert fresh.status == CommissionStatus.PENDING
        assert len(await seed.commissions(lead.id)) == 1
        assert len(await seed.commissions(lead.id, include_deleted=True)) == 2

    @pytest.mark.asyncio
    async def test_soft_deleted_row_is_no_longer_active(self, seed, db_session):
        row = await _row(seed, db_session)

        await ledger.soft_delete(db_session, row.id)

        assert await ledger.get_active_commission(db_session, row.lead_id, row.user_id) is None
        assert await ledger.get_lead_commissions(db_session, row.lead_id) == []

    @pytest.mark.asyncio
    async def test_approved_row_cannot_be_deleted(self, seed, db_session):
        row = await _row(seed, db_session, status=CommissionStatus.APPROVED)

        result = await ledger.soft_delete(db_session, row.id)

        assert isinstance(result, InvalidTransition)
        assert row.deleted_at is None

    @pytest.mark.asyncio
    async def test_cancel_open_for_lead(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)
        manager = await seed.user()
        pending = await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("1000.00"))
        approved = await ledger.ensure(db_session, lead, manager.id, _config(), Decimal("1000.00"))
        approved.status = CommissionStatus.APPROVED
        await db_session.flush()

        cancelled = await ledger.cancel_open_for_lead(db_session, lead.id, reason="Lead deleted")

        assert [row.id for row in cancelled] == [pending.id]
        assert pending.status == CommissionStatus.CANCELLED
        assert approved.status == CommissionStatus.APPROVED


# ── Views ────────────────────────────────────────────────


class TestListAndSummary:
    @pytest.mark.asyncio
    async def test_filters(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)
        manager = await seed.user()
        await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("1000.00"))
        other = await ledger.ensure(
            db_session, lead, manager.id, _config(paid_when=PaidWhen.WHEN_DEPOSIT_PAID), Decimal("1000.00")
        )
        other.status = CommissionStatus.ELIGIBLE
        await db_session.flush()

        by_user = await ledger.list_commissions(
            db_session, ledger.CommissionFilters(company_id=lead.company_id, user_id=rep.id)
        )
        by_status = await ledger.list_commissions(
            db_session,
            ledger.CommissionFilters(company_id=lead.company_id, statuses=[CommissionStatus.ELIGIBLE]),
        )
        by_trigger = await ledger.list_commissions(
            db_session,
            ledger.CommissionFilters(company_id=lead.company_id, paid_when=PaidWhen.WHEN_DEPOSIT_PAID),
        )
        other_company = await ledger.list_commissions(db_session, ledger.CommissionFilters(company_id=2))

        assert [row.user_id for row in by_user] == [rep.id]
        assert [row.id for row in by_status] == [other.id]
        assert [row.id for row in by_trigger] == [other.id]
        assert other_company == []

    @pytest.mark.asyncio
    async def test_lead_summary(self, seed, db_session):
        lead, rep = await _lead_with_rep(seed)
        manager = await seed.user()
        office = await seed.user()
        owed = await ledger.ensure(db_session, lead, rep.id, _config(), Decimal("2000.00"))
        paid = await ledger.ensure(db_session, lead, manager.id, _config(), Decimal("2000.00"))
        cancelled = await ledger.ensure(db_session, lead, office.id, _config(), Decimal("2000.00"))
        paid.status = CommissionStatus.PAID
        paid.paid_amount = Decimal("200.00")
        cancelled.status = CommissionStatus.CANCELLED
        await db_session.flush()

        summary = await ledger.summarize_lead(db_session, lead.id)

        assert summary.total_owed == Decimal("400.00")
        assert summary.total_paid == Decimal("200.00")
        assert summary.total_pending == Decimal("200.00")
        assert summary.total_cancelled == Decimal("200.00")
        assert summary.count_pending == 1
        assert summary.count_paid == 1
        assert summary.count_cancelled == 1
        assert owed.balance_owed == Decimal("200.00")
