"""Database package for the notification engine."""

from src.db.base import Base
from src.db.engine import create_db_engine, get_engine, get_session_factory, init_db
from src.db.models import (
    EscalationHistoryRecord,
    NotificationPreferencesRecord,
    NotificationRecord,
    NotificationRuleRecord,
)
from src.db.repositories import (
    SqlHistoryStore,
    SqlNotificationStore,
    SqlPreferenceStore,
    SqlRuleStore,
)

__all__ = [
    "Base",
    "create_db_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
    "EscalationHistoryRecord",
    "NotificationPreferencesRecord",
    "NotificationRecord",
    "NotificationRuleRecord",
    "SqlHistoryStore",
    "SqlNotificationStore",
    "SqlPreferenceStore",
    "SqlRuleStore",
]
