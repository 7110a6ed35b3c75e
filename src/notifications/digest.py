"""Notification Routing - Digest Building.

Folds similar pending notifications into a single digest notification.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from src.notifications.config import DigestFrequency, NotificationPriority, NotificationType, RoutingConfig
from src.notifications.models import CreateNotificationParams, DigestItem, Notification

logger = logging.getLogger(__name__)


@dataclass
class NotificationGroup:
    """Pending notifications sharing a recipient and a type."""

    user_id: str
    type: NotificationType
    notifications: List[CreateNotificationParams] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.notifications)


def group_notifications(
    notifications: Sequence[CreateNotificationParams],
) -> List[NotificationGroup]:
    """Group by (user, type).

    Groups come out in order of first appearance and members keep their
    input order, so the same batch always yields the same grouping.
    """
    groups: Dict[Tuple[str, NotificationType], NotificationGroup] = {}
    order: List[Tuple[str, NotificationType]] = []

    for params in notifications:
        key = (params.user_id, params.type)
        if key not in groups:
            groups[key] = NotificationGroup(user_id=params.user_id, type=params.type)
            order.append(key)
        groups[key].notifications.append(params)

    return [groups[key] for key in order]


def build_digest(
    group: NotificationGroup,
    recipient_id: str,
    priority: NotificationPriority,
    config: RoutingConfig,
    scheduled_for: Optional[datetime] = None,
) -> Notification:
    """Collapse a group into one digest notification."""
    label = config.type_label(group.type)
    message = "\n".join(f"• {n.title}" for n in group.notifications)
    digest = Notification(
        user_id=recipient_id,
        title=f"{group.count} nieuwe {label}",
        message=message,
        type=NotificationType.DIGEST,
        priority=priority,
        metadata={"digest_of": group.type.value, "item_count": group.count},
        is_digest=True,
        digest_items=[
            DigestItem(type=n.type, title=n.title, deep_link=n.deep_link)
            for n in group.notifications
        ],
        scheduled_for=scheduled_for,
        delegated_from=group.user_id if recipient_id != group.user_id else None,
    )
    logger.info(
        "Built digest for %s: %d %s notifications",
        recipient_id,
        group.count,
        group.type.value,
    )
    return digest


def should_batch(priority: NotificationPriority, frequency: DigestFrequency) -> bool:
    """Critical notifications are never batched; otherwise follow the user's frequency."""
    if priority == NotificationPriority.CRITICAL:
        return False
    return frequency != DigestFrequency.INSTANT


def scheduled_send(
    frequency: DigestFrequency,
    now: datetime,
    max_delay_minutes: Optional[int] = None,
    send_hour: int = 9,
) -> datetime:
    """When a digest with the given frequency should go out.

    hourly: one hour from now. daily: tomorrow at ``send_hour``. weekly: next
    Monday at ``send_hour``. The result never lies beyond
    ``now + max_delay_minutes``.
    """
    if frequency == DigestFrequency.HOURLY:
        send_at = now + timedelta(hours=1)
    elif frequency == DigestFrequency.DAILY:
        send_at = (now + timedelta(days=1)).replace(
            hour=send_hour, minute=0, second=0, microsecond=0
        )
    elif frequency == DigestFrequency.WEEKLY:
        days_ahead = (7 - now.weekday()) % 7 or 7
        send_at = (now + timedelta(days=days_ahead)).replace(
            hour=send_hour, minute=0, second=0, microsecond=0
        )
    else:
        send_at = now

    if max_delay_minutes is not None:
        send_at = min(send_at, now + timedelta(minutes=max_delay_minutes))
    return send_at
