"""
Database layer for the deal notification engine.

Provides the SQLAlchemy ORM models and synchronous session management.
"""

from .models import (
    Base,
    UserDB,
    NotificationPreferenceDB,
    DealDB,
    MilestoneDB,
    DisputeDB,
    MessageDB,
    DealTimelineDB,
    NotificationDB,
    ReminderLogDB,
)

from .connection import (
    get_sync_engine,
    get_sync_session_factory,
    get_db_session,
    configure_engine,
    init_database,
    close_sync_engine,
)

__all__ = [
    "Base",
    "UserDB",
    "NotificationPreferenceDB",
    "DealDB",
    "MilestoneDB",
    "DisputeDB",
    "MessageDB",
    "DealTimelineDB",
    "NotificationDB",
    "ReminderLogDB",
    "get_sync_engine",
    "get_sync_session_factory",
    "get_db_session",
    "configure_engine",
    "init_database",
    "close_sync_engine",
]
