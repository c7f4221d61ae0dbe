"""
Pytest configuration and fixtures.
"""

import itertools
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from roofcrm.models import (
    Base,
    CalculateOn,
    CommissionPlan,
    CommissionType,
    Invoice,
    Lead,
    LeadCommission,
    LeadStage,
    Location,
    LocationCommissionSetting,
    LocationUser,
    PaidWhen,
    Payment,
    RoleCommissionDefault,
    TeamLeadCommission,
    User,
    UserRole,
)


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COMPANY_ID = 1


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine; one shared in-memory connection."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    """Session factory handed to the commission engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session, session_factory):
    return Seeder(db_session, session_factory)


class Seeder:
    """Creates CRM rows for tests and reads ledger rows back with fresh sessions."""

    def __init__(self, db: AsyncSession, session_factory: async_sessionmaker):
        self.db = db
        self.session_factory = session_factory
        self._counter = itertools.count(1)

    async def _add(self, obj):
        self.db.add(obj)
        await self.db.flush()
        return obj

    async def commit(self):
        await self.db.commit()

    async def plan(
        self,
        commission_type: CommissionType = CommissionType.PERCENTAGE,
        rate: Optional[str] = "10",
        flat: Optional[str] = None,
        paid_when: PaidWhen = PaidWhen.WHEN_FINAL_PAYMENT,
        is_active: bool = True,
        calculate_on: CalculateOn = CalculateOn.REVENUE,
        company_id: int = COMPANY_ID,
    ) -> CommissionPlan:
        return await self._add(CommissionPlan(
            company_id=company_id,
            name=f"Plan {next(self._counter)}",
            commission_type=commission_type,
            commission_rate=Decimal(rate) if rate is not None else None,
            flat_amount=Decimal(flat) if flat is not None else None,
            paid_when=paid_when,
            calculate_on=calculate_on,
            is_active=is_active,
        ))

    async def user(
        self,
        role: UserRole = UserRole.SALES,
        plan: Optional[CommissionPlan] = None,
        company_id: int = COMPANY_ID,
    ) -> User:
        n = next(self._counter)
        return await self._add(User(
            company_id=company_id,
            email=f"user{n}@example.com",
            full_name=f"User {n}",
            role=role,
            is_active=True,
            commission_plan_id=plan.id if plan else None,
        ))

    async def location(self, company_id: int = COMPANY_ID) -> Location:
        return await self._add(Location(company_id=company_id, name=f"Office {next(self._counter)}"))

    async def member(self, location: Location, user: User) -> LocationUser:
        return await self._add(LocationUser(location_id=location.id, user_id=user.id))

    async def location_setting(self, location: Location, user: User, **fields) -> LocationCommissionSetting:
        for key in ("commission_rate", "flat_amount"):
            if isinstance(fields.get(key), str):
                fields[key] = Decimal(fields[key])
        return await self._add(LocationCommissionSetting(
            company_id=location.company_id,
            location_id=location.id,
            user_id=user.id,
            **fields,
        ))

    async def role_default(self, role: UserRole, plan: CommissionPlan) -> RoleCommissionDefault:
        return await self._add(RoleCommissionDefault(
            company_id=plan.company_id,
            role=role,
            commission_plan_id=plan.id,
        ))

    async def lead(
        self,
        location: Location,
        sales_rep: Optional[User] = None,
        status: LeadStage = LeadStage.PRODUCTION,
        sub_status: Optional[str] = None,
        **participants,
    ) -> Lead:
        return await self._add(Lead(
            company_id=location.company_id,
            location_id=location.id,
            full_name=f"Customer {next(self._counter)}",
            status=status,
            sub_status=sub_status,
            sales_rep_id=sales_rep.id if sales_rep else None,
            **{f"{key}_id": user.id for key, user in participants.items()},
        ))

    async def invoice(
        self,
        lead: Lead,
        total: str,
        balance_due: Optional[str] = None,
        invoice_date: Optional[date] = None,
    ) -> Invoice:
        return await self._add(Invoice(
            lead_id=lead.id,
            invoice_number=f"INV-{next(self._counter)}",
            invoice_date=invoice_date or date.today(),
            total=Decimal(total),
            balance_due=Decimal(balance_due if balance_due is not None else total),
        ))

    async def payment(self, lead: Lead, amount: str, cleared: bool = True) -> Payment:
        return await self._add(Payment(
            lead_id=lead.id,
            amount=Decimal(amount),
            cleared_at=datetime.now(timezone.utc) if cleared else None,
        ))

    async def commissions(self, lead_id: int, include_deleted: bool = False) -> List[LeadCommission]:
        async with self.session_factory() as session:
            query = select(LeadCommission).where(LeadCommission.lead_id == lead_id)
            if not include_deleted:
                query = query.where(LeadCommission.deleted_at.is_(None))
            result = await session.execute(query.order_by(LeadCommission.id))
            return list(result.scalars().all())

    async def commission_for(self, lead_id: int, user_id: int) -> Optional[LeadCommission]:
        for row in await self.commissions(lead_id):
            if row.user_id == user_id:
                return row
        return None

    async def team_lead_commissions(self, location_id: int) -> List[TeamLeadCommission]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TeamLeadCommission)
                .where(
                    TeamLeadCommission.location_id == location_id,
                    TeamLeadCommission.deleted_at.is_(None),
                )
                .order_by(TeamLeadCommission.id)
            )
            return list(result.scalars().all())

    async def get(self, model, obj_id: int):
        async with self.session_factory() as session:
            return await session.get(model, obj_id)


class RecordingNotifier:
    """Stands in for the push notifier; keeps every notice it was asked to send."""

    def __init__(self):
        self.notices = []

    def notify(self, notices):
        self.notices.extend(notices)
        return []


@pytest_asyncio.fixture
async def notifier():
    return RecordingNotifier()
