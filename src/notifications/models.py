"""Data models for notification routing."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import uuid

from src.notifications.config import (
    ActionKind,
    ActionStyle,
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    RoutingConfig,
)

# Preference keys holding a channel list, category lists first
CATEGORY_CHANNEL_KEYS = ("deadline", "approval", "update", "reminder", "escalation")
TIER_CHANNEL_KEYS = ("urgent", "high", "normal", "low")
CHANNEL_KEYS = CATEGORY_CHANNEL_KEYS + TIER_CHANNEL_KEYS


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def normalize_channels(
    channels: Optional[Iterable[Any]],
    fallback: Iterable[NotificationChannel],
) -> List[NotificationChannel]:
    """Coerce to channel enums, drop duplicates (order kept), never empty."""
    result: List[NotificationChannel] = []
    for channel in channels or ():
        value = channel if isinstance(channel, NotificationChannel) else NotificationChannel(channel)
        if value not in result:
            result.append(value)
    return result or list(fallback)


@dataclass
class NotificationAction:
    """An action button attached to a notification."""

    label: str
    kind: ActionKind
    style: ActionStyle = ActionStyle.DEFAULT
    url: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"label": self.label, "action": self.kind.value, "style": self.style.value}
        if self.url:
            data["url"] = self.url
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationAction":
        return cls(
            label=data["label"],
            kind=ActionKind(data["action"]),
            style=ActionStyle(data.get("style", ActionStyle.DEFAULT.value)),
            url=data.get("url"),
        )


@dataclass
class DigestItem:
    """One original notification summarized inside a digest."""

    type: NotificationType
    title: str
    deep_link: Optional[str] = None

    def to_dict(self) -> dict:
        return {"type": self.type.value, "title": self.title, "deep_link": self.deep_link}

    @classmethod
    def from_dict(cls, data: dict) -> "DigestItem":
        return cls(
            type=NotificationType(data["type"]),
            title=data["title"],
            deep_link=data.get("deep_link"),
        )


@dataclass
class EscalationContext:
    """Typed escalation facts carried by an escalation notification."""

    rule_id: str
    entity_type: str
    entity_id: str
    escalation_level: int
    is_critical: bool = False
    legal_compliance: bool = False

    def to_metadata(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "escalation_level": self.escalation_level,
            "is_critical": self.is_critical,
            "legal_compliance": self.legal_compliance,
        }

    @classmethod
    def from_metadata(cls, metadata: dict) -> Optional["EscalationContext"]:
        if "escalation_level" not in metadata or "entity_id" not in metadata:
            return None
        return cls(
            rule_id=str(metadata.get("rule_id", "")),
            entity_type=str(metadata.get("entity_type", "")),
            entity_id=str(metadata["entity_id"]),
            escalation_level=int(metadata["escalation_level"]),
            is_critical=bool(metadata.get("is_critical", False)),
            legal_compliance=bool(metadata.get("legal_compliance", False)),
        )


@dataclass
class CreateNotificationParams:
    """Input to NotificationRouter.create_notification."""

    user_id: str
    title: str
    message: str
    type: NotificationType
    priority: Optional[NotificationPriority] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    escalation: Optional[EscalationContext] = None
    deadline: Optional[datetime] = None
    actions: List[NotificationAction] = field(default_factory=list)
    deep_link: Optional[str] = None

    def flag(self, name: str) -> bool:
        """Read a boolean hint from the escalation context or metadata."""
        if self.escalation is not None and hasattr(self.escalation, name):
            if getattr(self.escalation, name):
                return True
        return self.metadata.get(name) is True


@dataclass
class Notification:
    """A persisted notification record."""

    user_id: str
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.NORMAL
    id: str = field(default_factory=_new_id)
    priority_score: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    escalation: Optional[EscalationContext] = None
    deadline: Optional[datetime] = None
    actions: List[NotificationAction] = field(default_factory=list)
    deep_link: Optional[str] = None
    read_at: Optional[datetime] = None
    acted_at: Optional[datetime] = None
    is_digest: bool = False
    digest_items: List[DigestItem] = field(default_factory=list)
    scheduled_for: Optional[datetime] = None
    delegated_from: Optional[str] = None
    created_at: datetime = field(default_factory=_now)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @property
    def is_acted(self) -> bool:
        return self.acted_at is not None

    def stored_metadata(self) -> dict:
        """Metadata as persisted: free-form hints plus flattened escalation facts."""
        data = dict(self.metadata)
        if self.escalation is not None:
            data.update(self.escalation.to_metadata())
        return data

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "priority": self.priority.value,
            "priority_score": self.priority_score,
            "metadata": self.stored_metadata(),
            "deadline": _iso(self.deadline),
            "actions": [a.to_dict() for a in self.actions],
            "deep_link": self.deep_link,
            "read_at": _iso(self.read_at),
            "acted_at": _iso(self.acted_at),
            "is_digest": self.is_digest,
            "digest_items": [i.to_dict() for i in self.digest_items],
            "scheduled_for": _iso(self.scheduled_for),
            "delegated_from": self.delegated_from,
            "created_at": _iso(self.created_at),
        }


@dataclass
class NotificationPreferences:
    """Per-user routing preferences."""

    user_id: str
    digest_frequency: DigestFrequency = DigestFrequency.INSTANT
    quiet_hours_start: str = "20:00"  # HH:MM
    quiet_hours_end: str = "08:00"
    timezone: str = "UTC"
    weekend_mode: bool = False
    vacation_mode: bool = False
    vacation_delegate: Optional[str] = None

    deadline_channels: List[NotificationChannel] = field(default_factory=list)
    approval_channels: List[NotificationChannel] = field(default_factory=list)
    update_channels: List[NotificationChannel] = field(default_factory=list)
    reminder_channels: List[NotificationChannel] = field(default_factory=list)
    escalation_channels: List[NotificationChannel] = field(default_factory=list)

    urgent_channels: List[NotificationChannel] = field(default_factory=list)
    high_channels: List[NotificationChannel] = field(default_factory=list)
    normal_channels: List[NotificationChannel] = field(default_factory=list)
    low_channels: List[NotificationChannel] = field(default_factory=list)

    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @classmethod
    def defaults(cls, user_id: str, config: RoutingConfig) -> "NotificationPreferences":
        """Fresh preferences for a user who never saved any."""
        prefs = cls(
            user_id=user_id,
            digest_frequency=config.digest_frequency,
            quiet_hours_start=config.quiet_hours_start,
            quiet_hours_end=config.quiet_hours_end,
            timezone=config.default_timezone,
        )
        prefs.fill_channel_defaults(config)
        return prefs

    def fill_channel_defaults(self, config: RoutingConfig) -> None:
        """Normalize every channel list, substituting defaults for empty ones."""
        for key in CHANNEL_KEYS:
            attr = f"{key}_channels"
            setattr(
                self,
                attr,
                normalize_channels(getattr(self, attr), config.channel_defaults.for_key(key)),
            )

    def channels(self, key: str) -> List[NotificationChannel]:
        return list(getattr(self, f"{key}_channels"))

    def to_dict(self) -> dict:
        data = {
            "user_id": self.user_id,
            "digest_frequency": self.digest_frequency.value,
            "quiet_hours_start": self.quiet_hours_start,
            "quiet_hours_end": self.quiet_hours_end,
            "timezone": self.timezone,
            "weekend_mode": self.weekend_mode,
            "vacation_mode": self.vacation_mode,
            "vacation_delegate": self.vacation_delegate,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        for key in CHANNEL_KEYS:
            data[f"{key}_channels"] = [c.value for c in getattr(self, f"{key}_channels")]
        return data
