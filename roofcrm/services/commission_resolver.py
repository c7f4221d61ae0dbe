"""
Commission terms resolution.

Precedence, first match wins:
1. Manual override already on the ledger row (recalculation only)
2. Location override for (location, user) when commission_enabled
3. The user's assigned active commission plan
4. The company's default plan for the user's role

Resolution is a pure read: plans and overrides are never modified here.
"""

import logging
from typing import Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roofcrm.models import (
    CalculateOn,
    CommissionPlan,
    ConfigSource,
    Lead,
    LeadCommission,
    LocationCommissionSetting,
    PaidWhen,
    RoleCommissionDefault,
    User,
)
from roofcrm.services.commission import ResolvedCommissionConfig
from roofcrm.services.results import ConfigurationMissing

logger = logging.getLogger(__name__)

# Trigger used when a location override names no trigger and no plan supplies one
DEFAULT_PAID_WHEN = PaidWhen.WHEN_FINAL_PAYMENT

ResolveResult = Union[ResolvedCommissionConfig, ConfigurationMissing]


def config_from_plan(plan: CommissionPlan, source: ConfigSource) -> ResolvedCommissionConfig:
    return ResolvedCommissionConfig(
        commission_type=plan.commission_type,
        paid_when=plan.paid_when,
        source=source,
        commission_rate=plan.commission_rate,
        flat_amount=plan.flat_amount,
        commission_plan_id=plan.id,
        calculate_on=plan.calculate_on,
    )


def config_from_ledger_row(row: LeadCommission) -> ResolvedCommissionConfig:
    """Terms snapshotted on an existing ledger row."""
    return ResolvedCommissionConfig(
        commission_type=row.commission_type,
        paid_when=row.paid_when,
        source=ConfigSource.MANUAL_OVERRIDE,
        commission_rate=row.commission_rate,
        flat_amount=row.flat_amount,
        commission_plan_id=row.commission_plan_id,
        calculate_on=row.calculate_on,
    )


def layer_location_setting(
    setting: LocationCommissionSetting,
    plan: Optional[CommissionPlan],
) -> Optional[ResolvedCommissionConfig]:
    """
    Apply a location override on top of a plan.

    Null override fields fall through to the plan. Returns None when
    neither supplies a commission type.
    """
    commission_type = setting.commission_type or (plan.commission_type if plan else None)
    if commission_type is None:
        return None

    def pick(field: str):
        value = getattr(setting, field)
        if value is None and plan is not None:
            value = getattr(plan, field)
        return value

    return ResolvedCommissionConfig(
        commission_type=commission_type,
        paid_when=pick("paid_when") or DEFAULT_PAID_WHEN,
        source=ConfigSource.LOCATION_OVERRIDE,
        commission_rate=pick("commission_rate"),
        flat_amount=pick("flat_amount"),
        commission_plan_id=plan.id if plan else None,
        calculate_on=pick("calculate_on") or CalculateOn.REVENUE,
    )


async def get_location_setting(
    db: AsyncSession,
    location_id: int,
    user_id: int,
) -> Optional[LocationCommissionSetting]:
    result = await db.execute(
        select(LocationCommissionSetting).where(
            LocationCommissionSetting.location_id == location_id,
            LocationCommissionSetting.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_fallback_plan(
    db: AsyncSession,
    user: User,
) -> Tuple[Optional[CommissionPlan], Optional[ConfigSource]]:
    """
    Find the plan a user falls back to.

    The assigned plan wins when active; the role default applies only when
    no active plan is assigned.
    """
    if user.commission_plan_id is not None:
        plan = await db.get(CommissionPlan, user.commission_plan_id)
        if plan and plan.is_active:
            return plan, ConfigSource.USER_PLAN
        logger.debug(f"User {user.id} plan {user.commission_plan_id} is archived or missing")

    result = await db.execute(
        select(CommissionPlan)
        .join(RoleCommissionDefault, RoleCommissionDefault.commission_plan_id == CommissionPlan.id)
        .where(
            RoleCommissionDefault.company_id == user.company_id,
            RoleCommissionDefault.role == user.role,
            CommissionPlan.is_active.is_(True),
        )
    )
    plan = result.scalar_one_or_none()
    if plan:
        return plan, ConfigSource.ROLE_DEFAULT

    return None, None


async def resolve_for_location(
    db: AsyncSession,
    location_id: int,
    user_id: int,
) -> ResolveResult:
    """Resolve a user's effective terms at a location (steps 2-4)."""
    user = await db.get(User, user_id)
    if user is None:
        return ConfigurationMissing(user_id=user_id, reason="unknown user")

    plan, plan_source = await get_fallback_plan(db, user)

    setting = await get_location_setting(db, location_id, user_id)
    if setting is not None and setting.commission_enabled:
        config = layer_location_setting(setting, plan)
        if config is None or not config.is_complete:
            return ConfigurationMissing(
                user_id=user_id,
                reason=f"incomplete commission override at location {location_id}",
            )
        return config

    if plan is None:
        return ConfigurationMissing(user_id=user_id)

    config = config_from_plan(plan, plan_source)
    if not config.is_complete:
        return ConfigurationMissing(
            user_id=user_id,
            reason=f"plan {plan.id} is missing its rate or amount",
        )
    return config


async def resolve(
    db: AsyncSession,
    lead: Lead,
    user_id: int,
    existing: Optional[LeadCommission] = None,
) -> ResolveResult:
    """
    Resolve the effective commission terms for a participant on a lead.

    Args:
        db: Database session
        lead: Lead the participant is associated with
        user_id: Participant
        existing: Current ledger row, passed on recalculation

    Returns:
        ResolvedCommissionConfig, or ConfigurationMissing when the user
        earns no commission on this lead
    """
    if existing is not None and existing.is_manual_override:
        return config_from_ledger_row(existing)

    return await resolve_for_location(db, lead.location_id, user_id)
