"""
Team-lead override commissions.

A team lead at a location earns one aggregate commission per period on the
closed deals sold by the other members of that location (plus their own
deals when include_own_sales is set).
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.models import (
    CLOSED_DEAL_STAGES,
    LOCKED_STATUSES,
    CommissionStatus,
    Lead,
    Location,
    LocationUser,
    TeamLeadCommission,
)
from roofcrm.services.commission import ZERO, ResolvedCommissionConfig, to_money
from roofcrm.services.commission_ledger import (
    apply_recalculation,
    apply_snapshot,
    apply_transition,
    flag_discrepancy,
)
from roofcrm.services.commission_resolver import get_location_setting, resolve_for_location
from roofcrm.services.eligibility import LeadRevenueFacts, evaluate_all, load_revenue_facts
from roofcrm.services.results import ConfigurationMissing, InvalidTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Period:
    """Half-open date range [start, end)."""

    start: date
    end: date

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("period end must be after period start")

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def has_ended(self, today: date) -> bool:
        return today >= self.end


@dataclass(frozen=True)
class TeamLeadComputation:
    """Result of aggregating a location's production for one team lead."""

    company_id: int
    location_id: int
    user_id: int
    period: Period
    config: ResolvedCommissionConfig
    include_own_sales: bool
    base_amount: Decimal
    calculated_amount: Decimal
    deals: Tuple[LeadRevenueFacts, ...] = ()

    @property
    def deal_count(self) -> int:
        return len(self.deals)

    @property
    def lead_ids(self) -> List[int]:
        return [deal.lead_id for deal in self.deals]


async def get_location_seller_ids(
    db: AsyncSession,
    location_id: int,
    team_lead_user_id: int,
    include_own_sales: bool,
) -> List[int]:
    """Members of a location whose sales count towards the team lead."""
    result = await db.execute(
        select(LocationUser.user_id).where(LocationUser.location_id == location_id)
    )
    seller_ids = {user_id for user_id in result.scalars().all() if user_id != team_lead_user_id}
    if include_own_sales:
        seller_ids.add(team_lead_user_id)
    return sorted(seller_ids)


async def get_closed_deals(
    db: AsyncSession,
    location_id: int,
    seller_ids: List[int],
    period: Period,
) -> List[LeadRevenueFacts]:
    """Closed deals of the sellers whose current invoice falls in the period."""
    if not seller_ids:
        return []

    result = await db.execute(
        select(Lead)
        .where(
            Lead.location_id == location_id,
            Lead.sales_rep_id.in_(seller_ids),
            Lead.status.in_(CLOSED_DEAL_STAGES),
            Lead.deleted_at.is_(None),
        )
        .order_by(Lead.id)
    )

    deals = []
    for lead in result.scalars().all():
        facts = await load_revenue_facts(db, lead)
        if not facts.has_invoice:
            continue
        invoice_date = facts.invoice_date
        if invoice_date is None or not period.contains(invoice_date):
            continue
        deals.append(facts)
    return deals


async def compute_team_lead_commission(
    db: AsyncSession,
    location_id: int,
    team_lead_user_id: int,
    period: Period,
) -> Union[TeamLeadComputation, ConfigurationMissing]:
    """
    Aggregate a team lead's override commission for a period.

    Returns ConfigurationMissing when the user is not an enabled team lead
    at the location or has no resolvable terms.
    """
    location = await db.get(Location, location_id)
    if location is None:
        return ConfigurationMissing(user_id=team_lead_user_id, reason=f"unknown location {location_id}")

    setting = await get_location_setting(db, location_id, team_lead_user_id)
    if setting is None or not setting.commission_enabled or not setting.team_lead_for_location:
        return ConfigurationMissing(
            user_id=team_lead_user_id,
            reason=f"not an enabled team lead at location {location_id}",
        )

    config = await resolve_for_location(db, location_id, team_lead_user_id)
    if isinstance(config, ConfigurationMissing):
        return config

    seller_ids = await get_location_seller_ids(
        db, location_id, team_lead_user_id, setting.include_own_sales
    )
    deals = await get_closed_deals(db, location_id, seller_ids, period)

    base_amount = to_money(sum((deal.base_amount_for(config.calculate_on) for deal in deals), ZERO))

    logger.info(
        f"Team lead {team_lead_user_id} at location {location_id}: "
        f"{len(deals)} deals, base {base_amount} for {period.start}..{period.end}"
    )

    return TeamLeadComputation(
        company_id=location.company_id,
        location_id=location_id,
        user_id=team_lead_user_id,
        period=period,
        config=config,
        include_own_sales=setting.include_own_sales,
        base_amount=base_amount,
        calculated_amount=config.amount_for(base_amount),
        deals=tuple(deals),
    )


async def get_active_team_lead_commission(
    db: AsyncSession,
    location_id: int,
    user_id: int,
    period: Period,
) -> Optional[TeamLeadCommission]:
    result = await db.execute(
        select(TeamLeadCommission).where(
            TeamLeadCommission.location_id == location_id,
            TeamLeadCommission.user_id == user_id,
            TeamLeadCommission.period_start == period.start,
            TeamLeadCommission.period_end == period.end,
            TeamLeadCommission.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


def _refresh_existing(row: TeamLeadCommission, computation: TeamLeadComputation) -> bool:
    """Bring an existing row up to date. Returns True when a discrepancy was flagged."""
    if row.status in LOCKED_STATUSES:
        if row.base_amount != computation.base_amount:
            flag_discrepancy(row, computation.base_amount)
            return True
        return False

    if row.status == CommissionStatus.CANCELLED:
        return False

    if row.status == CommissionStatus.PENDING:
        apply_snapshot(row, computation.config)
        row.include_own_sales = computation.include_own_sales
    row.deal_count = computation.deal_count
    apply_recalculation(row, computation.base_amount)
    return False


async def ensure_team_lead_commission(
    db: AsyncSession,
    computation: TeamLeadComputation,
    today: Optional[date] = None,
) -> Tuple[TeamLeadCommission, bool]:
    """
    Persist the aggregate row for (location, team lead, period).

    Returns:
        (row, became_eligible)
    """
    today = today or date.today()
    period = computation.period

    row = await get_active_team_lead_commission(db, computation.location_id, computation.user_id, period)
    if row is not None:
        _refresh_existing(row, computation)
    else:
        row = TeamLeadCommission(
            company_id=computation.company_id,
            location_id=computation.location_id,
            user_id=computation.user_id,
            period_start=period.start,
            period_end=period.end,
            deal_count=computation.deal_count,
            include_own_sales=computation.include_own_sales,
            base_amount=computation.base_amount,
            calculated_amount=computation.calculated_amount,
            paid_amount=ZERO,
            status=CommissionStatus.PENDING,
        )
        apply_snapshot(row, computation.config)
        try:
            async with db.begin_nested():
                db.add(row)
        except IntegrityError:
            logger.info(
                f"Team lead commission for user {computation.user_id} at location "
                f"{computation.location_id} already exists, using it"
            )
            row = await get_active_team_lead_commission(
                db, computation.location_id, computation.user_id, period
            )
            if row is None:
                raise
            _refresh_existing(row, computation)
        else:
            logger.info(
                f"Created team lead commission for user {computation.user_id} "
                f"at location {computation.location_id}: {row.calculated_amount}"
            )

    became_eligible = False
    if (
        row.status == CommissionStatus.PENDING
        and period.has_ended(today)
        and evaluate_all(row.paid_when, computation.deals)
    ):
        result = apply_transition(row, CommissionStatus.ELIGIBLE)
        became_eligible = not isinstance(result, InvalidTransition)

    return row, became_eligible
