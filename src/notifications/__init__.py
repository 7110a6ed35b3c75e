"""Notification Routing.

Decides how notifications reach their recipients:
- Per-user preferences with vacation delegation
- Channel policy (priority, quiet hours, weekend mode)
- Priority scoring
- Digest batching
"""

from src.notifications.config import (
    ActionKind,
    ActionStyle,
    ChannelDefaults,
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    PRIORITY_ORDER,
    RoutingConfig,
)
from src.notifications.exceptions import (
    ConfigurationError,
    ErrorCode,
    NotFoundError,
    NotificationEngineError,
    StoreError,
    StoreTimeoutError,
)
from src.notifications.models import (
    CreateNotificationParams,
    DigestItem,
    EscalationContext,
    Notification,
    NotificationAction,
    NotificationPreferences,
)
from src.notifications.guard import StoreGuard
from src.notifications.stores import (
    InMemoryNotificationStore,
    InMemoryPreferenceStore,
    NotificationStore,
    PreferenceStore,
)
from src.notifications.preferences import PreferenceManager, is_quiet_hours, is_weekend
from src.notifications.routing import channels_for
from src.notifications.scoring import PriorityScore, PriorityScorer, sort_by_priority
from src.notifications.digest import (
    NotificationGroup,
    build_digest,
    group_notifications,
    scheduled_send,
    should_batch,
)
from src.notifications.router import NotificationRouter

__all__ = [
    # Config
    "ActionKind",
    "ActionStyle",
    "ChannelDefaults",
    "DigestFrequency",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationType",
    "PRIORITY_ORDER",
    "RoutingConfig",
    # Errors
    "ConfigurationError",
    "ErrorCode",
    "NotFoundError",
    "NotificationEngineError",
    "StoreError",
    "StoreTimeoutError",
    # Models
    "CreateNotificationParams",
    "DigestItem",
    "EscalationContext",
    "Notification",
    "NotificationAction",
    "NotificationPreferences",
    # Stores
    "StoreGuard",
    "InMemoryNotificationStore",
    "InMemoryPreferenceStore",
    "NotificationStore",
    "PreferenceStore",
    # Policy
    "PreferenceManager",
    "is_quiet_hours",
    "is_weekend",
    "channels_for",
    "PriorityScore",
    "PriorityScorer",
    "sort_by_priority",
    "NotificationGroup",
    "build_digest",
    "group_notifications",
    "scheduled_send",
    "should_batch",
    # Router
    "NotificationRouter",
]
