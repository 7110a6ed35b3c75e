"""Notification Routing - Channel Policy.

Pure decision function shared by the router and by transport adapters, so
the adapters can be told which channels to use without re-deriving the rule.
"""

import logging
from datetime import datetime
from typing import List, Optional

from src.notifications.config import NotificationChannel, NotificationPriority, NotificationType
from src.notifications.models import NotificationPreferences
from src.notifications.preferences import is_quiet_hours, is_weekend

logger = logging.getLogger(__name__)

# Notification types with a dedicated channel list in the preferences
_TYPE_CHANNEL_KEYS = {
    NotificationType.DEADLINE: "deadline",
    NotificationType.APPROVAL: "approval",
    NotificationType.UPDATE: "update",
    NotificationType.REMINDER: "reminder",
    NotificationType.ESCALATION: "escalation",
}

_URGENT_TIERS = (NotificationPriority.URGENT, NotificationPriority.CRITICAL)


def channels_for(
    notification_type: NotificationType,
    priority: NotificationPriority,
    preferences: NotificationPreferences,
    now: Optional[datetime] = None,
) -> List[NotificationChannel]:
    """Determine which channels a notification should be delivered on.

    Checks are evaluated in order and the first match wins:

    1. urgent or critical priority -> the user's urgent channels
    2. high priority -> the user's high channels
    3. quiet hours -> in-app only (in-app + push when critical)
    4. weekend with weekend mode on -> in-app only (urgent channels when
       urgent or critical)
    5. the channel list for the notification type; types without one use
       the normal tier when priority is normal, else the low tier

    Args:
        notification_type: Category of the notification.
        priority: Priority of the notification.
        preferences: Recipient preferences (channel lists already normalized).
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        Non-empty, ordered list of channels.
    """
    if priority in _URGENT_TIERS:
        channels = preferences.channels("urgent")
    elif priority == NotificationPriority.HIGH:
        channels = preferences.channels("high")
    elif is_quiet_hours(preferences, now):
        if priority == NotificationPriority.CRITICAL:
            channels = [NotificationChannel.IN_APP, NotificationChannel.PUSH]
        else:
            channels = [NotificationChannel.IN_APP]
    elif is_weekend(preferences, now) and preferences.weekend_mode:
        if priority in _URGENT_TIERS:
            channels = preferences.channels("urgent")
        else:
            channels = [NotificationChannel.IN_APP]
    else:
        key = _TYPE_CHANNEL_KEYS.get(notification_type)
        if key is None:
            key = "normal" if priority == NotificationPriority.NORMAL else "low"
        channels = preferences.channels(key)

    if not channels:
        channels = [NotificationChannel.IN_APP]

    logger.debug(
        "Channels for %s/%s -> %s",
        notification_type.value,
        priority.value,
        [c.value for c in channels],
    )
    return channels
