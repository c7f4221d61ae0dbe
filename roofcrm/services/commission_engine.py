"""
Commission engine: reacts to revenue events on a lead.

Every handler runs in its own transaction with the lead row locked, so
two events for the same lead are applied one after the other. Push
notifications are dispatched only after the transaction has committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roofcrm.models import (
    LOCKED_STATUSES,
    OPEN_STATUSES,
    CommissionStatus,
    Invoice,
    Lead,
    LeadCommission,
    LocationCommissionSetting,
    PaidWhen,
    ParticipantRole,
    Payment,
    TeamLeadCommission,
)
from roofcrm.services import commission_ledger as ledger
from roofcrm.services.commission import to_money
from roofcrm.services.commission_resolver import resolve
from roofcrm.services.eligibility import LeadRevenueFacts, evaluate, load_revenue_facts
from roofcrm.services.notifications import CommissionNotice, NoticeKind, PushNotifier
from roofcrm.services.results import ConfigurationMissing, InvalidTransition
from roofcrm.services.team_lead import (
    Period,
    TeamLeadComputation,
    compute_team_lead_commission,
    ensure_team_lead_commission,
)

logger = logging.getLogger(__name__)


@dataclass
class LeadSyncResult:
    """What one revenue event did to a lead's commissions (ids of ledger rows)."""

    lead_id: Optional[int]
    lead_found: bool = True
    created: List[int] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)
    became_eligible: List[int] = field(default_factory=list)
    discrepancies: List[int] = field(default_factory=list)
    cancelled: List[int] = field(default_factory=list)
    skipped: List[ConfigurationMissing] = field(default_factory=list)
    notices: List[CommissionNotice] = field(default_factory=list)


@dataclass
class TeamLeadRunResult:
    commission: Optional[TeamLeadCommission] = None
    computation: Optional[TeamLeadComputation] = None
    became_eligible: bool = False
    skipped: Optional[ConfigurationMissing] = None


def collect_participants(
    lead: Lead,
    office_manager_ids: Optional[List[int]] = None,
) -> List[Tuple[int, ParticipantRole]]:
    """
    Users who earn commission on a lead, with the role they earn it in.

    A user assigned in several roles earns once, in the first role listed.
    """
    candidates = [
        (lead.sales_rep_id, ParticipantRole.SALES_REP),
        (lead.marketing_rep_id, ParticipantRole.MARKETING_REP),
        (lead.sales_manager_id, ParticipantRole.SALES_MANAGER),
        (lead.production_manager_id, ParticipantRole.PRODUCTION_MANAGER),
    ]
    candidates.extend((user_id, ParticipantRole.OFFICE_MANAGER) for user_id in office_manager_ids or [])

    participants = []
    seen = set()
    for user_id, role in candidates:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        participants.append((user_id, role))
    return participants


async def get_office_manager_ids(db: AsyncSession, location_id: int) -> List[int]:
    result = await db.execute(
        select(LocationCommissionSetting.user_id)
        .where(
            LocationCommissionSetting.location_id == location_id,
            LocationCommissionSetting.office_manager_for_location.is_(True),
            LocationCommissionSetting.commission_enabled.is_(True),
        )
        .order_by(LocationCommissionSetting.user_id)
    )
    return list(result.scalars().all())


def _notice_for(
    row: Union[LeadCommission, TeamLeadCommission],
    kind: NoticeKind,
    lead: Optional[Lead] = None,
) -> CommissionNotice:
    return CommissionNotice(
        kind=kind,
        user_id=row.user_id,
        commission_id=row.id,
        amount=row.calculated_amount,
        lead_id=lead.id if lead else None,
        customer_name=lead.full_name if lead else None,
    )


async def sync_lead_commissions(
    db: AsyncSession,
    lead: Lead,
    result: LeadSyncResult,
    facts: Optional[LeadRevenueFacts] = None,
) -> LeadSyncResult:
    """
    Bring every participant's ledger row in line with the lead's revenue.

    - rows are created only once the lead has an invoice
    - pending and eligible rows follow their base: the current invoice
      total, or the cleared payments for terms calculated on collections
    - approved and paid rows keep their amount; a changed base is flagged
    - pending rows whose trigger holds become eligible
    - open rows of users no longer on the lead are cancelled

    The caller must hold the lead lock and own the transaction.
    """
    if lead.is_deleted:
        logger.debug(f"Lead {lead.id} is deleted, nothing to sync")
        return result

    facts = facts or await load_revenue_facts(db, lead)
    if not facts.has_invoice:
        logger.debug(f"Lead {lead.id} has no invoice yet, no commissions to sync")
        return result

    office_manager_ids = await get_office_manager_ids(db, lead.location_id)
    participants = collect_participants(lead, office_manager_ids)

    for user_id, role in participants:
        row = await ledger.get_active_commission(db, lead.id, user_id)

        if row is not None and row.status in LOCKED_STATUSES:
            observed = to_money(facts.base_amount_for(row.calculate_on))
            if row.base_amount != observed:
                ledger.flag_discrepancy(row, observed)
                result.discrepancies.append(row.id)
            continue

        if row is not None and row.status == CommissionStatus.CANCELLED:
            continue

        if row is not None and row.status == CommissionStatus.ELIGIBLE:
            base_amount = to_money(facts.base_amount_for(row.calculate_on))
            if row.base_amount != base_amount:
                ledger.apply_recalculation(row, base_amount)
                result.updated.append(row.id)
            continue

        config = await resolve(db, lead, user_id, existing=row)
        if isinstance(config, ConfigurationMissing):
            logger.info(f"Lead {lead.id}: {config.message}")
            result.skipped.append(config)
            if row is None:
                continue
            base_amount = to_money(facts.base_amount_for(row.calculate_on))
            if row.base_amount != base_amount:
                ledger.apply_recalculation(row, base_amount)
                result.updated.append(row.id)
        else:
            base_amount = to_money(facts.base_amount_for(config.calculate_on))
            previous_amount = row.calculated_amount if row is not None else None
            previous_base = row.base_amount if row is not None else None
            row = await ledger.ensure(db, lead, user_id, config, base_amount, participant_role=role)
            if previous_amount is None:
                result.created.append(row.id)
            elif previous_amount != row.calculated_amount or previous_base != row.base_amount:
                result.updated.append(row.id)

        if row.status == CommissionStatus.PENDING and evaluate(row.paid_when, facts):
            payment_id = facts.first_cleared_payment_id if row.paid_when == PaidWhen.WHEN_DEPOSIT_PAID else None
            outcome = ledger.apply_transition(row, CommissionStatus.ELIGIBLE, triggered_by_payment_id=payment_id)
            if not isinstance(outcome, InvalidTransition):
                result.became_eligible.append(row.id)
                result.notices.append(_notice_for(row, NoticeKind.ELIGIBLE, lead))

    # Reassigned away: the user no longer earns on this lead
    participant_ids = {user_id for user_id, _ in participants}
    for row in await ledger.get_lead_commissions(db, lead.id, statuses=OPEN_STATUSES):
        if row.user_id in participant_ids:
            continue
        ledger.apply_transition(row, CommissionStatus.CANCELLED)
        ledger.append_note(row, "User is no longer assigned to the lead")
        result.cancelled.append(row.id)
        logger.info(f"Cancelled commission {row.id} of user {row.user_id}: removed from lead {lead.id}")

    await db.flush()
    return result


class CommissionEngine:
    """
    Entry point for revenue events.

    Usage:
        engine = CommissionEngine(AsyncSessionLocal, get_notifier())
        result = await engine.handle_payment_cleared(payment_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[PushNotifier] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier

    # ── Event handlers ───────────────────────────────────────────────

    async def handle_payment_cleared(self, payment_id: int) -> LeadSyncResult:
        """A payment on a lead cleared (or its clearance changed)."""
        return await self._run(self._lead_id_of(Payment, payment_id), self._sync)

    async def handle_invoice_changed(self, invoice_id: int) -> LeadSyncResult:
        """An invoice was created or its total / balance due changed."""
        return await self._run(self._lead_id_of(Invoice, invoice_id), self._sync)

    async def handle_lead_status_changed(self, lead_id: int) -> LeadSyncResult:
        """The lead's pipeline stage or production sub-status changed."""
        return await self._run(self._given(lead_id), self._sync)

    async def sync_lead(self, lead_id: int) -> LeadSyncResult:
        """Full resync of one lead, e.g. after participants were reassigned."""
        return await self._run(self._given(lead_id), self._sync)

    async def soft_delete_lead(self, lead_id: int) -> LeadSyncResult:
        """Soft-delete a lead and cancel its open commissions."""

        async def work(db: AsyncSession, lead: Lead, result: LeadSyncResult) -> None:
            if lead.deleted_at is None:
                lead.deleted_at = datetime.now(timezone.utc)
            rows = await ledger.cancel_open_for_lead(db, lead.id, reason="Lead deleted")
            result.cancelled.extend(row.id for row in rows)

        return await self._run(self._given(lead_id), work)

    async def soft_delete_invoice(self, invoice_id: int) -> LeadSyncResult:
        """Soft-delete an invoice and cancel the open commissions of its lead."""

        async def work(db: AsyncSession, lead: Lead, result: LeadSyncResult) -> None:
            invoice = await db.get(Invoice, invoice_id)
            if invoice.deleted_at is None:
                invoice.deleted_at = datetime.now(timezone.utc)
            rows = await ledger.cancel_open_for_lead(
                db, lead.id, reason=f"Invoice {invoice.invoice_number or invoice.id} deleted"
            )
            result.cancelled.extend(row.id for row in rows)

        return await self._run(self._lead_id_of(Invoice, invoice_id), work)

    async def run_team_lead_commission(
        self,
        location_id: int,
        user_id: int,
        period: Period,
        today: Optional[date] = None,
    ) -> TeamLeadRunResult:
        """Compute and persist a team lead's override commission for a period."""
        run = TeamLeadRunResult()

        async with self.session_factory() as db:
            async with db.begin():
                computation = await compute_team_lead_commission(db, location_id, user_id, period)
                if isinstance(computation, ConfigurationMissing):
                    logger.info(computation.message)
                    run.skipped = computation
                    return run

                row, became_eligible = await ensure_team_lead_commission(db, computation, today=today)
                await db.flush()
                run.commission = row
                run.computation = computation
                run.became_eligible = became_eligible

        if run.became_eligible:
            self.dispatch([_notice_for(run.commission, NoticeKind.ELIGIBLE)])
        return run

    # ── Plumbing ─────────────────────────────────────────────────────

    def dispatch(self, notices: List[CommissionNotice]) -> None:
        """Hand committed notices to the notifier without waiting."""
        if not notices or self.notifier is None:
            return
        self.notifier.notify(notices)

    @staticmethod
    def _given(lead_id: int) -> Callable[[AsyncSession], Awaitable[Optional[int]]]:
        async def lookup(db: AsyncSession) -> Optional[int]:
            return lead_id

        return lookup

    @staticmethod
    def _lead_id_of(model, obj_id: int) -> Callable[[AsyncSession], Awaitable[Optional[int]]]:
        async def lookup(db: AsyncSession) -> Optional[int]:
            result = await db.execute(select(model.lead_id).where(model.id == obj_id))
            return result.scalar_one_or_none()

        return lookup

    @staticmethod
    async def _sync(db: AsyncSession, lead: Lead, result: LeadSyncResult) -> None:
        await sync_lead_commissions(db, lead, result)

    async def _run(
        self,
        lookup: Callable[[AsyncSession], Awaitable[Optional[int]]],
        work: Callable[[AsyncSession, Lead, LeadSyncResult], Awaitable[None]],
    ) -> LeadSyncResult:
        async with self.session_factory() as db:
            async with db.begin():
                lead_id = await lookup(db)
                lead = None
                if lead_id is not None:
                    lead = (
                        await db.execute(select(Lead).where(Lead.id == lead_id).with_for_update())
                    ).scalar_one_or_none()

                if lead is None:
                    logger.warning(f"Revenue event for unknown lead (lead_id={lead_id})")
                    return LeadSyncResult(lead_id=lead_id, lead_found=False)

                result = LeadSyncResult(lead_id=lead.id)
                await work(db, lead, result)

        logger.info(
            f"Lead {result.lead_id}: {len(result.created)} created, {len(result.updated)} updated, "
            f"{len(result.became_eligible)} eligible, {len(result.discrepancies)} discrepancies, "
            f"{len(result.cancelled)} cancelled"
        )
        self.dispatch(result.notices)
        return result
