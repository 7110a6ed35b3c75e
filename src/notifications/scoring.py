"""Priority scoring for notifications that arrive without an explicit priority."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.notifications.config import NotificationPriority, NotificationType
from src.notifications.models import CreateNotificationParams, Notification

logger = logging.getLogger(__name__)

BASE_TYPE_SCORES = {
    NotificationType.ESCALATION: 90,
    NotificationType.APPROVAL: 70,
    NotificationType.DEADLINE: 60,
    NotificationType.REMINDER: 40,
    NotificationType.UPDATE: 30,
    NotificationType.DIGEST: 20,
}

# (hours until deadline upper bound, modifier); overdue handled separately
DEADLINE_MODIFIERS = [
    (1, 35),
    (6, 30),
    (24, 25),
    (72, 20),
    (168, 10),
    (336, 5),
]
OVERDUE_MODIFIER = 40

ROLE_MODIFIERS = {
    "super_admin": 10,
    "hr": 8,
    "manager": 5,
}

PRIORITY_THRESHOLDS = [
    (90, NotificationPriority.CRITICAL),
    (75, NotificationPriority.URGENT),
    (60, NotificationPriority.HIGH),
    (40, NotificationPriority.NORMAL),
]


@dataclass
class PriorityScore:
    """Breakdown of a computed priority score."""

    base_type_score: int = 0
    deadline_modifier: int = 0
    role_modifier: int = 0
    critical_flag: int = 0
    legal_compliance: int = 0

    @property
    def total(self) -> int:
        raw = (
            self.base_type_score
            + self.deadline_modifier
            + self.role_modifier
            + self.critical_flag
            + self.legal_compliance
        )
        return max(0, min(100, raw))

    @property
    def priority(self) -> NotificationPriority:
        return score_to_priority(self.total)

    def to_dict(self) -> dict:
        return {
            "base_type_score": self.base_type_score,
            "deadline_modifier": self.deadline_modifier,
            "role_modifier": self.role_modifier,
            "critical_flag": self.critical_flag,
            "legal_compliance": self.legal_compliance,
            "total": self.total,
            "priority": self.priority.value,
        }


def score_to_priority(score: int) -> NotificationPriority:
    for threshold, priority in PRIORITY_THRESHOLDS:
        if score >= threshold:
            return priority
    return NotificationPriority.LOW


def deadline_modifier(deadline: Optional[datetime], now: datetime) -> int:
    if deadline is None:
        return 0
    # naive timestamps are UTC
    if deadline.tzinfo is None and now.tzinfo is not None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    elif deadline.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    hours_until = (deadline - now).total_seconds() / 3600
    if hours_until < 0:
        return OVERDUE_MODIFIER
    for bound, modifier in DEADLINE_MODIFIERS:
        if hours_until < bound:
            return modifier
    return 0


class PriorityScorer:
    """Scores a notification request from its type, deadline, role and flags."""

    def score(
        self,
        params: CreateNotificationParams,
        recipient_role: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PriorityScore:
        now = now or datetime.now(timezone.utc)

        if params.flag("is_critical"):
            critical = 25
        elif params.flag("is_urgent"):
            critical = 15
        elif params.flag("is_important"):
            critical = 10
        else:
            critical = 0

        if params.flag("legal_compliance") or params.flag("wet_poortwachter"):
            legal = 20
        elif params.flag("compliance_required"):
            legal = 15
        else:
            legal = 0

        result = PriorityScore(
            base_type_score=BASE_TYPE_SCORES.get(params.type, 50),
            deadline_modifier=deadline_modifier(params.deadline, now),
            role_modifier=ROLE_MODIFIERS.get(recipient_role or "", 0),
            critical_flag=critical,
            legal_compliance=legal,
        )
        logger.debug("Scored %r: %s", params.title, result.to_dict())
        return result


def sort_by_priority(notifications: Iterable[Notification]) -> List[Notification]:
    """Highest score first; newer first among equal scores."""
    return sorted(
        notifications,
        key=lambda n: (n.priority_score, n.created_at),
        reverse=True,
    )
