"""
Commission ledger: idempotent row creation, recalculation and the status
state machine.

    pending  -> eligible | cancelled
    eligible -> approved | cancelled
    approved -> paid      (only once paid_amount >= calculated_amount)
    paid, cancelled: terminal

Functions here only flush; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set, Tuple, Type, TypeVar, Union

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.models import (
    LOCKED_STATUSES,
    OPEN_STATUSES,
    CommissionStatus,
    ConfigSource,
    Lead,
    LeadCommission,
    PaidWhen,
    ParticipantRole,
    TeamLeadCommission,
)
from roofcrm.models.commission import CommissionLedgerMixin
from roofcrm.services.commission import (
    ZERO,
    ResolvedCommissionConfig,
    calculate_commission_amount,
    to_money,
)
from roofcrm.services.results import (
    CommissionNotFound,
    DuplicateLedgerRow,
    InvalidTransition,
    LockedAfterApproval,
    PayoutRejected,
)

logger = logging.getLogger(__name__)

Row = TypeVar("Row", LeadCommission, TeamLeadCommission)

ALLOWED_TRANSITIONS: Dict[CommissionStatus, Set[CommissionStatus]] = {
    CommissionStatus.PENDING: {CommissionStatus.ELIGIBLE, CommissionStatus.CANCELLED},
    CommissionStatus.ELIGIBLE: {CommissionStatus.APPROVED, CommissionStatus.CANCELLED},
    CommissionStatus.APPROVED: {CommissionStatus.PAID},
    CommissionStatus.PAID: set(),
    CommissionStatus.CANCELLED: set(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Row-level operations (shared by lead and team-lead rows) ─────────


def apply_snapshot(row: CommissionLedgerMixin, config: ResolvedCommissionConfig) -> None:
    """Copy resolved terms onto a row."""
    row.commission_type = config.commission_type
    row.commission_rate = config.commission_rate
    row.flat_amount = config.flat_amount
    row.paid_when = config.paid_when
    row.calculate_on = config.calculate_on
    row.config_source = config.source
    row.commission_plan_id = config.commission_plan_id


def apply_recalculation(
    row: Row,
    new_base_amount: Decimal,
) -> Union[Row, LockedAfterApproval, InvalidTransition]:
    """Recompute the amount from the row's snapshotted terms against a new base."""
    if row.status in LOCKED_STATUSES:
        return LockedAfterApproval(
            commission_id=row.id,
            status=row.status,
            attempted_base_amount=to_money(new_base_amount),
        )

    if row.status == CommissionStatus.CANCELLED:
        return InvalidTransition(
            commission_id=row.id,
            current=row.status,
            requested=row.status,
            reason="cancelled commissions are not recalculated",
        )

    row.base_amount = to_money(new_base_amount)
    row.calculated_amount = calculate_commission_amount(
        row.commission_type,
        row.base_amount,
        commission_rate=row.commission_rate,
        flat_amount=row.flat_amount,
    )
    return row


def apply_transition(
    row: Row,
    new_status: CommissionStatus,
    actor_user_id: Optional[int] = None,
    triggered_by_payment_id: Optional[int] = None,
) -> Union[Row, InvalidTransition]:
    """Move a row to a new status if the state machine allows it."""
    current = row.status

    if new_status not in ALLOWED_TRANSITIONS[current]:
        logger.warning(
            f"Rejected commission transition {current.value} -> {new_status.value} "
            f"(row id={row.id})"
        )
        return InvalidTransition(commission_id=row.id, current=current, requested=new_status)

    if new_status == CommissionStatus.PAID and row.paid_amount < row.calculated_amount:
        logger.warning(f"Commission {row.id} is not fully paid ({row.paid_amount}/{row.calculated_amount})")
        return InvalidTransition(
            commission_id=row.id,
            current=current,
            requested=new_status,
            reason="paid amount is below the calculated amount",
        )

    now = utcnow()
    row.status = new_status

    if new_status == CommissionStatus.ELIGIBLE:
        row.eligible_at = now
        if triggered_by_payment_id is not None and isinstance(row, LeadCommission):
            row.triggered_by_payment_id = triggered_by_payment_id
    elif new_status == CommissionStatus.APPROVED:
        row.approved_at = now
        row.approved_by_user_id = actor_user_id
    elif new_status == CommissionStatus.PAID:
        row.paid_at = row.paid_at or now
    elif new_status == CommissionStatus.CANCELLED:
        row.cancelled_at = now

    logger.info(f"Commission {row.id} moved {current.value} -> {new_status.value}")
    return row


def flag_discrepancy(row: CommissionLedgerMixin, observed_base_amount: Decimal) -> None:
    """Record that revenue changed after the row's amount was locked."""
    row.discrepancy_base_amount = to_money(observed_base_amount)
    row.discrepancy_flagged_at = utcnow()
    logger.warning(
        f"Commission discrepancy on row id={row.id}: locked base {row.base_amount}, "
        f"observed {row.discrepancy_base_amount}"
    )


def append_note(row: CommissionLedgerMixin, note: Optional[str]) -> None:
    if not note:
        return
    row.notes = f"{row.notes}\n{note}" if row.notes else note


# ── Lookups ──────────────────────────────────────────────────────────


async def get_commission(
    db: AsyncSession,
    commission_id: int,
    model: Type[Row] = LeadCommission,
    lock: bool = False,
) -> Optional[Row]:
    """Fetch a non-deleted ledger row, optionally locking it for update."""
    query = select(model).where(
        model.id == commission_id,
        model.deleted_at.is_(None),
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_active_commission(
    db: AsyncSession,
    lead_id: int,
    user_id: int,
) -> Optional[LeadCommission]:
    result = await db.execute(
        select(LeadCommission).where(
            LeadCommission.lead_id == lead_id,
            LeadCommission.user_id == user_id,
            LeadCommission.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_lead_commissions(
    db: AsyncSession,
    lead_id: int,
    statuses: Optional[Sequence[CommissionStatus]] = None,
) -> List[LeadCommission]:
    query = select(LeadCommission).where(
        LeadCommission.lead_id == lead_id,
        LeadCommission.deleted_at.is_(None),
    )
    if statuses:
        query = query.where(LeadCommission.status.in_(statuses))
    result = await db.execute(query.order_by(LeadCommission.id))
    return list(result.scalars().all())


# ── Ledger contract ──────────────────────────────────────────────────


def _refresh_existing(
    row: LeadCommission,
    config: ResolvedCommissionConfig,
    base_amount: Decimal,
) -> LeadCommission:
    # Only pending rows follow the latest terms; manual overrides keep theirs
    if row.status == CommissionStatus.PENDING:
        if not row.is_manual_override:
            apply_snapshot(row, config)
        apply_recalculation(row, base_amount)
    return row


async def ensure(
    db: AsyncSession,
    lead: Lead,
    user_id: int,
    config: ResolvedCommissionConfig,
    base_amount: Decimal,
    participant_role: ParticipantRole = ParticipantRole.SALES_REP,
) -> LeadCommission:
    """
    Upsert the ledger row for (lead, user).

    An existing non-deleted row is refreshed (pending rows only) and
    returned. Otherwise a pending row is inserted inside a savepoint; if a
    concurrent insert won the race the unique index rejects ours and the
    winner is returned instead. Calling this twice never yields two rows.
    """
    existing = await get_active_commission(db, lead.id, user_id)
    if existing is not None:
        _refresh_existing(existing, config, base_amount)
        await db.flush()
        return existing

    base = to_money(base_amount)
    row = LeadCommission(
        company_id=lead.company_id,
        lead_id=lead.id,
        user_id=user_id,
        participant_role=participant_role,
        base_amount=base,
        calculated_amount=config.amount_for(base),
        paid_amount=ZERO,
        status=CommissionStatus.PENDING,
        is_manual_override=False,
    )
    apply_snapshot(row, config)

    try:
        async with db.begin_nested():
            db.add(row)
    except IntegrityError:
        duplicate = DuplicateLedgerRow(lead_id=lead.id, user_id=user_id)
        logger.info(
            f"{duplicate.message}: lead {duplicate.lead_id} user {duplicate.user_id} "
            f"already has a commission, using it"
        )
        existing = await get_active_commission(db, lead.id, user_id)
        if existing is None:
            raise
        _refresh_existing(existing, config, base_amount)
        await db.flush()
        return existing

    logger.info(
        f"Created commission for user {user_id} on lead {lead.id}: "
        f"{row.commission_type.value} {row.calculated_amount} ({config.source.value})"
    )
    return row


async def recalculate(
    db: AsyncSession,
    commission_id: int,
    new_base_amount: Decimal,
    model: Type[Row] = LeadCommission,
) -> Union[Row, LockedAfterApproval, InvalidTransition, CommissionNotFound]:
    """
    Recompute a row's amount against a new base amount.

    Snapshotted terms are authoritative; only the base changes. Approved
    and paid rows are locked and come back as LockedAfterApproval.
    """
    row = await get_commission(db, commission_id, model=model, lock=True)
    if row is None:
        return CommissionNotFound(commission_id=commission_id)

    result = apply_recalculation(row, new_base_amount)
    if isinstance(result, LockedAfterApproval):
        logger.warning(result.message)
    else:
        await db.flush()
    return result


async def transition(
    db: AsyncSession,
    commission_id: int,
    new_status: CommissionStatus,
    actor_user_id: Optional[int] = None,
    triggered_by_payment_id: Optional[int] = None,
    model: Type[Row] = LeadCommission,
) -> Union[Row, InvalidTransition, CommissionNotFound]:
    """Apply a status change through the state machine."""
    row = await get_commission(db, commission_id, model=model, lock=True)
    if row is None:
        return CommissionNotFound(commission_id=commission_id)

    result = apply_transition(
        row,
        new_status,
        actor_user_id=actor_user_id,
        triggered_by_payment_id=triggered_by_payment_id,
    )
    await db.flush()
    return result


async def approve(
    db: AsyncSession,
    commission_id: int,
    approver_user_id: int,
    model: Type[Row] = LeadCommission,
) -> Union[Row, InvalidTransition, CommissionNotFound]:
    """Approve an eligible commission for payout."""
    return await transition(
        db,
        commission_id,
        CommissionStatus.APPROVED,
        actor_user_id=approver_user_id,
        model=model,
    )


async def bulk_approve(
    db: AsyncSession,
    commission_ids: Sequence[int],
    approver_user_id: int,
    company_id: Optional[int] = None,
) -> Tuple[List[LeadCommission], List[Union[InvalidTransition, CommissionNotFound]]]:
    """
    Approve several commissions; only currently eligible rows are approved.

    Returns:
        (approved rows, rejections for every other id)
    """
    approved: List[LeadCommission] = []
    rejected: List[Union[InvalidTransition, CommissionNotFound]] = []

    for commission_id in dict.fromkeys(commission_ids):
        row = await get_commission(db, commission_id, lock=True)
        if row is None or (company_id is not None and row.company_id != company_id):
            rejected.append(CommissionNotFound(commission_id=commission_id))
            continue

        result = apply_transition(row, CommissionStatus.APPROVED, actor_user_id=approver_user_id)
        if isinstance(result, InvalidTransition):
            rejected.append(result)
        else:
            approved.append(result)

    await db.flush()
    logger.info(f"Bulk approval: {len(approved)} approved, {len(rejected)} rejected")
    return approved, rejected


async def mark_eligible(
    db: AsyncSession,
    commission_id: int,
    model: Type[Row] = LeadCommission,
) -> Union[Row, InvalidTransition, CommissionNotFound]:
    """Explicit admin transition, required for custom triggers."""
    return await transition(db, commission_id, CommissionStatus.ELIGIBLE, model=model)


async def record_payout(
    db: AsyncSession,
    commission_id: int,
    paid_by_user_id: int,
    amount: Optional[Decimal] = None,
    paid_at: Optional[datetime] = None,
    reference: Optional[str] = None,
    model: Type[Row] = LeadCommission,
) -> Union[Row, InvalidTransition, PayoutRejected, CommissionNotFound]:
    """
    Record money paid out against an approved commission.

    Args:
        amount: Amount paid; None pays the full balance owed
        paid_at: When the payout happened (defaults to now)
        reference: Check number, transfer id, etc.

    The row moves to paid once paid_amount reaches calculated_amount;
    a partial payout leaves it approved.
    """
    row = await get_commission(db, commission_id, model=model, lock=True)
    if row is None:
        return CommissionNotFound(commission_id=commission_id)

    if row.status != CommissionStatus.APPROVED:
        return InvalidTransition(
            commission_id=row.id,
            current=row.status,
            requested=CommissionStatus.PAID,
            reason="only approved commissions can be paid out",
        )

    if amount is None and row.balance_owed <= ZERO:
        # Nothing owed (zero amount commission): close it out without money moving
        row.paid_by_user_id = paid_by_user_id
        if reference:
            row.payment_reference = reference
        if paid_at is not None:
            row.paid_at = paid_at
        result = apply_transition(row, CommissionStatus.PAID, actor_user_id=paid_by_user_id)
        await db.flush()
        return result

    payout = to_money(amount) if amount is not None else row.balance_owed
    if payout <= ZERO:
        return PayoutRejected(commission_id=row.id, reason="amount must be positive")
    if payout > row.balance_owed:
        return PayoutRejected(
            commission_id=row.id,
            reason=f"amount {payout} exceeds balance owed {row.balance_owed}",
        )

    row.paid_amount = to_money(row.paid_amount + payout)
    row.paid_by_user_id = paid_by_user_id
    if reference:
        row.payment_reference = reference
    if paid_at is not None:
        row.paid_at = paid_at

    logger.info(f"Recorded payout of {payout} on commission {row.id} (balance {row.balance_owed})")

    result = row
    if row.paid_amount >= row.calculated_amount:
        result = apply_transition(row, CommissionStatus.PAID, actor_user_id=paid_by_user_id)
    await db.flush()
    return result


async def apply_manual_override(
    db: AsyncSession,
    commission_id: int,
    terms: ResolvedCommissionConfig,
    notes: Optional[str] = None,
) -> Union[LeadCommission, LockedAfterApproval, InvalidTransition, CommissionNotFound]:
    """
    Replace a row's terms with admin-entered ones.

    The row is marked as a manual override so later resolutions keep
    these terms. Only pending and eligible rows can be changed.
    """
    row = await get_commission(db, commission_id, lock=True)
    if row is None:
        return CommissionNotFound(commission_id=commission_id)

    if row.status in LOCKED_STATUSES:
        return LockedAfterApproval(
            commission_id=row.id,
            status=row.status,
            attempted_base_amount=row.base_amount,
        )
    if row.status not in OPEN_STATUSES:
        return InvalidTransition(
            commission_id=row.id,
            current=row.status,
            requested=row.status,
            reason="cancelled commissions cannot be edited",
        )

    apply_snapshot(row, ResolvedCommissionConfig(
        commission_type=terms.commission_type,
        paid_when=terms.paid_when,
        source=ConfigSource.MANUAL_OVERRIDE,
        commission_rate=terms.commission_rate,
        flat_amount=terms.flat_amount,
        commission_plan_id=row.commission_plan_id,
        calculate_on=terms.calculate_on,
    ))
    row.is_manual_override = True
    append_note(row, notes)
    apply_recalculation(row, row.base_amount)

    logger.info(f"Manual override on commission {row.id}: {row.commission_type.value} {row.calculated_amount}")
    await db.flush()
    return row


async def cancel(
    db: AsyncSession,
    commission_id: int,
    reason: Optional[str] = None,
    model: Type[Row] = LeadCommission,
) -> Union[Row, InvalidTransition, CommissionNotFound]:
    row = await get_commission(db, commission_id, model=model, lock=True)
    if row is None:
        return CommissionNotFound(commission_id=commission_id)

    result = apply_transition(row, CommissionStatus.CANCELLED)
    if not isinstance(result, InvalidTransition):
        append_note(row, reason)
        await db.flush()
    return result


async def soft_delete(
    db: AsyncSession,
    commission_id: int,
    model: Type[Row] = LeadCommission,
) -> Union[Row, InvalidTransition, CommissionNotFound]:
    """
    Soft-delete a row, freeing its (lead, user) key for a fresh row.

    Approved and paid rows cannot be deleted: money is committed.
    """
    row = await get_commission(db, commission_id, model=model, lock=True)
    if row is None:
        return CommissionNotFound(commission_id=commission_id)

    if row.status in LOCKED_STATUSES:
        return InvalidTransition(
            commission_id=row.id,
            current=row.status,
            requested=CommissionStatus.CANCELLED,
            reason="approved or paid commissions cannot be deleted",
        )

    row.deleted_at = utcnow()
    await db.flush()
    logger.info(f"Soft-deleted commission {row.id}")
    return row


async def cancel_open_for_lead(
    db: AsyncSession,
    lead_id: int,
    reason: Optional[str] = None,
) -> List[LeadCommission]:
    """Cancel every pending/eligible row of a lead; locked rows are left alone."""
    cancelled = []
    for row in await get_lead_commissions(db, lead_id, statuses=OPEN_STATUSES):
        apply_transition(row, CommissionStatus.CANCELLED)
        append_note(row, reason)
        cancelled.append(row)

    if cancelled:
        await db.flush()
        logger.info(f"Cancelled {len(cancelled)} open commissions on lead {lead_id}")
    return cancelled


# ── Read-only views ──────────────────────────────────────────────────


@dataclass
class CommissionFilters:
    """Filters for commission listings."""

    company_id: int
    user_id: Optional[int] = None
    lead_id: Optional[int] = None
    statuses: List[CommissionStatus] = field(default_factory=list)
    paid_when: Optional[PaidWhen] = None
    discrepancies_only: bool = False


def commission_query(filters: CommissionFilters) -> Select:
    """Build the listing query for non-deleted lead commissions."""
    query = select(LeadCommission).where(
        LeadCommission.company_id == filters.company_id,
        LeadCommission.deleted_at.is_(None),
    )

    if filters.user_id is not None:
        query = query.where(LeadCommission.user_id == filters.user_id)

    if filters.lead_id is not None:
        query = query.where(LeadCommission.lead_id == filters.lead_id)

    if filters.statuses:
        query = query.where(LeadCommission.status.in_(filters.statuses))

    if filters.paid_when is not None:
        query = query.where(LeadCommission.paid_when == filters.paid_when)

    if filters.discrepancies_only:
        query = query.where(LeadCommission.discrepancy_flagged_at.is_not(None))

    return query


async def list_commissions(db: AsyncSession, filters: CommissionFilters) -> List[LeadCommission]:
    result = await db.execute(
        commission_query(filters).order_by(LeadCommission.created_at.desc(), LeadCommission.id.desc())
    )
    return list(result.scalars().all())


@dataclass
class CommissionSummary:
    """Money owed on a lead, by status."""

    total_owed: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_pending: Decimal = ZERO
    total_eligible: Decimal = ZERO
    total_approved: Decimal = ZERO
    total_cancelled: Decimal = ZERO
    count_pending: int = 0
    count_eligible: int = 0
    count_approved: int = 0
    count_paid: int = 0
    count_cancelled: int = 0


def summarize(rows: Sequence[CommissionLedgerMixin]) -> CommissionSummary:
    summary = CommissionSummary()

    for row in rows:
        amount = row.calculated_amount
        if row.status == CommissionStatus.CANCELLED:
            summary.total_cancelled += amount
            summary.count_cancelled += 1
            continue

        summary.total_owed += amount
        summary.total_paid += row.paid_amount

        if row.status == CommissionStatus.PENDING:
            summary.total_pending += amount
            summary.count_pending += 1
        elif row.status == CommissionStatus.ELIGIBLE:
            summary.total_eligible += amount
            summary.count_eligible += 1
        elif row.status == CommissionStatus.APPROVED:
            summary.total_approved += amount
            summary.count_approved += 1
        elif row.status == CommissionStatus.PAID:
            summary.count_paid += 1

    return summary


async def summarize_lead(db: AsyncSession, lead_id: int) -> CommissionSummary:
    return summarize(await get_lead_commissions(db, lead_id))
