"""Notification Routing - Configuration."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Delivery channels a transport adapter can be told to use."""

    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationPriority(str, Enum):
    """Notification priority levels."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class NotificationType(str, Enum):
    """Notification categories."""

    DEADLINE = "deadline"
    APPROVAL = "approval"
    UPDATE = "update"
    REMINDER = "reminder"
    ESCALATION = "escalation"
    DIGEST = "digest"


class DigestFrequency(str, Enum):
    """How often batched notifications are sent."""

    INSTANT = "instant"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class ActionKind(str, Enum):
    """Kind of action button attached to a notification."""

    VIEW = "view"
    REASSIGN = "reassign"
    APPROVE = "approve"
    REJECT = "reject"
    EXTEND = "extend"
    COMPLETE = "complete"
    SNOOZE = "snooze"


class ActionStyle(str, Enum):
    """Display style of an action button."""

    PRIMARY = "primary"
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


# Ordering for comparison, lowest first
PRIORITY_ORDER = {
    NotificationPriority.LOW: 0,
    NotificationPriority.NORMAL: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.URGENT: 3,
    NotificationPriority.CRITICAL: 4,
}

_IN_APP = NotificationChannel.IN_APP
_EMAIL = NotificationChannel.EMAIL
_SMS = NotificationChannel.SMS
_PUSH = NotificationChannel.PUSH


@dataclass(frozen=True)
class ChannelDefaults:
    """Default channel lists used when a user has no (or an empty) setting."""

    deadline: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL)
    approval: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL, _PUSH)
    update: Tuple[NotificationChannel, ...] = (_IN_APP,)
    reminder: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL)
    escalation: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL, _SMS, _PUSH)
    urgent: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL, _SMS, _PUSH)
    high: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL, _PUSH)
    normal: Tuple[NotificationChannel, ...] = (_IN_APP, _EMAIL)
    low: Tuple[NotificationChannel, ...] = (_IN_APP,)

    def for_key(self, key: str) -> Tuple[NotificationChannel, ...]:
        """Look up defaults by preference key prefix (e.g. ``"deadline"``)."""
        return getattr(self, key)


def _default_type_labels() -> Dict[NotificationType, str]:
    return {
        NotificationType.DEADLINE: "deadlines",
        NotificationType.APPROVAL: "goedkeuringsverzoeken",
        NotificationType.UPDATE: "updates",
        NotificationType.REMINDER: "herinneringen",
        NotificationType.ESCALATION: "escalaties",
        NotificationType.DIGEST: "samenvattingen",
    }


@dataclass(frozen=True)
class RoutingConfig:
    """Routing configuration.

    Built once per process and handed to the preference manager and the
    router. Holds the defaults new users start from.
    """

    channel_defaults: ChannelDefaults = field(default_factory=ChannelDefaults)
    quiet_hours_start: str = "20:00"
    quiet_hours_end: str = "08:00"
    default_timezone: str = "UTC"
    digest_frequency: DigestFrequency = DigestFrequency.INSTANT
    digest_send_hour: int = 9
    type_labels: Dict[NotificationType, str] = field(default_factory=_default_type_labels)

    def type_label(self, notification_type: NotificationType) -> str:
        return self.type_labels.get(notification_type, notification_type.value)
