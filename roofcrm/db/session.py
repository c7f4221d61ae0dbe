"""
Database engine and sessions for the commissions service.

Admin routes get one session per request through `get_db`. The commission
engine never borrows the request session: it opens its own transaction per
lead event from the factory returned by `get_session_factory`, so the lead
row lock is held only for that unit of work.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from roofcrm.config import settings

logger = logging.getLogger(__name__)

# Connections are pooled by PgBouncer in transaction mode, which also rules
# out asyncpg's prepared statement cache.
engine = create_async_engine(
    settings.database_url,
    poolclass=NullPool,
    echo=settings.sql_echo and not settings.is_production,
    connect_args={"statement_cache_size": 0},
)

# Ledger code flushes explicitly; rows stay readable after commit so
# notices can be built from them.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for admin routes.

    Routes commit themselves once the audit entry is staged. Whatever is
    still pending when the route returns is committed here, and any error
    rolls the request's work back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("Rolling back request session")
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory handed to `CommissionEngine`."""
    return AsyncSessionLocal
