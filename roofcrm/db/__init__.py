"""Database session management."""

from roofcrm.db.session import (
    AsyncSessionLocal,
    engine,
    get_db,
    get_session_factory,
)

__all__ = [
    "AsyncSessionLocal",
    "engine",
    "get_db",
    "get_session_factory",
]
