"""
Tests for commission terms resolution.

Covers:
- Precedence: manual override > location override > user plan > role default
- Layering of partial location overrides over the plan
- Archived plans and missing configuration
"""

from decimal import Decimal

import pytest

from roofcrm.models import (
    CalculateOn,
    CommissionStatus,
    CommissionType,
    ConfigSource,
    LeadCommission,
    PaidWhen,
    ParticipantRole,
    UserRole,
)
from roofcrm.services.commission_resolver import resolve, resolve_for_location
from roofcrm.services.results import ConfigurationMissing


class TestResolvePrecedence:
    @pytest.mark.asyncio
    async def test_user_plan(self, seed, db_session):
        plan = await seed.plan(rate="5")
        rep = await seed.user(plan=plan)
        location = await seed.location()
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.source == ConfigSource.USER_PLAN
        assert config.commission_type == CommissionType.PERCENTAGE
        assert config.commission_rate == Decimal("5")
        assert config.commission_plan_id == plan.id

    @pytest.mark.asyncio
    async def test_location_override_beats_plan(self, seed, db_session):
        plan = await seed.plan(rate="5")
        rep = await seed.user(plan=plan)
        location = await seed.location()
        await seed.location_setting(
            location,
            rep,
            commission_type=CommissionType.FLAT_AMOUNT,
            flat_amount="750",
        )
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.source == ConfigSource.LOCATION_OVERRIDE
        assert config.commission_type == CommissionType.FLAT_AMOUNT
        assert config.flat_amount == Decimal("750")
        # Trigger falls through to the plan
        assert config.paid_when == PaidWhen.WHEN_FINAL_PAYMENT

    @pytest.mark.asyncio
    async def test_partial_override_layers_over_plan(self, seed, db_session):
        plan = await seed.plan(rate="5", paid_when=PaidWhen.WHEN_DEPOSIT_PAID)
        rep = await seed.user(plan=plan)
        location = await seed.location()
        await seed.location_setting(location, rep, commission_rate="7.5")
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.source == ConfigSource.LOCATION_OVERRIDE
        assert config.commission_type == CommissionType.PERCENTAGE
        assert config.commission_rate == Decimal("7.5")
        assert config.paid_when == PaidWhen.WHEN_DEPOSIT_PAID

    @pytest.mark.asyncio
    async def test_calculation_basis_comes_from_plan(self, seed, db_session):
        plan = await seed.plan(rate="5", calculate_on=CalculateOn.COLLECTED)
        rep = await seed.user(plan=plan)
        location = await seed.location()
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.calculate_on == CalculateOn.COLLECTED

    @pytest.mark.asyncio
    async def test_location_override_switches_calculation_basis(self, seed, db_session):
        plan = await seed.plan(rate="5")
        rep = await seed.user(plan=plan)
        location = await seed.location()
        await seed.location_setting(location, rep, calculate_on=CalculateOn.COLLECTED)
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.source == ConfigSource.LOCATION_OVERRIDE
        assert config.commission_rate == Decimal("5")
        assert config.calculate_on == CalculateOn.COLLECTED

    @pytest.mark.asyncio
    async def test_disabled_override_falls_through(self, seed, db_session):
        plan = await seed.plan(rate="5")
        rep = await seed.user(plan=plan)
        location = await seed.location()
        await seed.location_setting(location, rep, commission_rate="20", commission_enabled=False)
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.source == ConfigSource.USER_PLAN
        assert config.commission_rate == Decimal("5")

    @pytest.mark.asyncio
    async def test_override_without_plan_defaults_trigger(self, seed, db_session):
        rep = await seed.user()
        location = await seed.location()
        await seed.location_setting(
            location, rep, commission_type=CommissionType.PERCENTAGE, commission_rate="4"
        )
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.commission_rate == Decimal("4")
        assert config.paid_when == PaidWhen.WHEN_FINAL_PAYMENT
        assert config.commission_plan_id is None

    @pytest.mark.asyncio
    async def test_incomplete_override_is_missing(self, seed, db_session):
        rep = await seed.user()
        location = await seed.location()
        await seed.location_setting(location, rep, commission_type=CommissionType.PERCENTAGE)
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert isinstance(config, ConfigurationMissing)
        assert config.user_id == rep.id

    @pytest.mark.asyncio
    async def test_role_default_when_no_plan(self, seed, db_session):
        default_plan = await seed.plan(commission_type=CommissionType.FLAT_AMOUNT, rate=None, flat="300")
        await seed.role_default(UserRole.MARKETING, default_plan)
        marketer = await seed.user(role=UserRole.MARKETING)
        location = await seed.location()
        lead = await seed.lead(location, marketing_rep=marketer)

        config = await resolve(db_session, lead, marketer.id)

        assert config.source == ConfigSource.ROLE_DEFAULT
        assert config.flat_amount == Decimal("300")

    @pytest.mark.asyncio
    async def test_archived_plan_falls_through_to_role_default(self, seed, db_session):
        archived = await seed.plan(rate="12", is_active=False)
        default_plan = await seed.plan(rate="3")
        await seed.role_default(UserRole.SALES, default_plan)
        rep = await seed.user(plan=archived)
        location = await seed.location()
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert config.source == ConfigSource.ROLE_DEFAULT
        assert config.commission_rate == Decimal("3")

    @pytest.mark.asyncio
    async def test_archived_role_default_is_ignored(self, seed, db_session):
        archived = await seed.plan(rate="3", is_active=False)
        await seed.role_default(UserRole.SALES, archived)
        rep = await seed.user()
        location = await seed.location()
        lead = await seed.lead(location, rep)

        assert isinstance(await resolve(db_session, lead, rep.id), ConfigurationMissing)

    @pytest.mark.asyncio
    async def test_nothing_configured(self, seed, db_session):
        rep = await seed.user()
        location = await seed.location()
        lead = await seed.lead(location, rep)

        config = await resolve(db_session, lead, rep.id)

        assert isinstance(config, ConfigurationMissing)

    @pytest.mark.asyncio
    async def test_manual_override_row_wins(self, seed, db_session):
        plan = await seed.plan(rate="5")
        rep = await seed.user(plan=plan)
        location = await seed.location()
        lead = await seed.lead(location, rep)
        row = LeadCommission(
            company_id=lead.company_id,
            lead_id=lead.id,
            user_id=rep.id,
            participant_role=ParticipantRole.SALES_REP,
            commission_type=CommissionType.CUSTOM,
            flat_amount=Decimal("999.00"),
            paid_when=PaidWhen.CUSTOM,
            config_source=ConfigSource.MANUAL_OVERRIDE,
            is_manual_override=True,
            status=CommissionStatus.PENDING,
        )
        db_session.add(row)
        await db_session.flush()

        config = await resolve(db_session, lead, rep.id, existing=row)

        assert config.source == ConfigSource.MANUAL_OVERRIDE
        assert config.commission_type == CommissionType.CUSTOM
        assert config.flat_amount == Decimal("999.00")

    @pytest.mark.asyncio
    async def test_resolution_does_not_modify_plans(self, seed, db_session):
        plan = await seed.plan(rate="5")
        rep = await seed.user(plan=plan)
        location = await seed.location()
        await seed.location_setting(location, rep, commission_rate="9")
        lead = await seed.lead(location, rep)

        await resolve(db_session, lead, rep.id)

        assert plan.commission_rate == Decimal("5")
        assert not db_session.dirty


class TestResolveForLocation:
    @pytest.mark.asyncio
    async def test_unknown_user(self, seed, db_session):
        location = await seed.location()

        config = await resolve_for_location(db_session, location.id, 424242)

        assert isinstance(config, ConfigurationMissing)
        assert config.reason == "unknown user"
