"""
Shared FastAPI dependencies for commission routes.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roofcrm.db import get_session_factory
from roofcrm.services.commission_engine import CommissionEngine
from roofcrm.services.notifications import PushNotifier, get_notifier


def get_commission_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: PushNotifier = Depends(get_notifier),
) -> CommissionEngine:
    """Engine bound to the application's session factory and push notifier."""
    return CommissionEngine(session_factory, notifier)
