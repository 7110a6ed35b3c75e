"""Tests for notification priority scoring."""

from datetime import datetime, timedelta, timezone

from src.notifications.config import NotificationPriority, NotificationType
from src.notifications.models import CreateNotificationParams, EscalationContext, Notification
from src.notifications.scoring import (
    PriorityScore,
    PriorityScorer,
    deadline_modifier,
    score_to_priority,
    sort_by_priority,
)

NOW = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)


def _params(notification_type=NotificationType.UPDATE, **kwargs) -> CreateNotificationParams:
    return CreateNotificationParams(
        user_id="u1", title="t", message="m", type=notification_type, **kwargs
    )


class TestThresholds:
    def test_score_to_priority(self):
        assert score_to_priority(100) == NotificationPriority.CRITICAL
        assert score_to_priority(90) == NotificationPriority.CRITICAL
        assert score_to_priority(89) == NotificationPriority.URGENT
        assert score_to_priority(75) == NotificationPriority.URGENT
        assert score_to_priority(60) == NotificationPriority.HIGH
        assert score_to_priority(40) == NotificationPriority.NORMAL
        assert score_to_priority(39) == NotificationPriority.LOW
        assert score_to_priority(0) == NotificationPriority.LOW

    def test_total_is_clamped(self):
        score = PriorityScore(base_type_score=90, deadline_modifier=40, critical_flag=25)
        assert score.total == 100
        assert score.to_dict()["priority"] == "critical"


class TestDeadlineModifier:
    def test_no_deadline(self):
        assert deadline_modifier(None, NOW) == 0

    def test_overdue(self):
        assert deadline_modifier(NOW - timedelta(minutes=1), NOW) == 40

    def test_windows(self):
        assert deadline_modifier(NOW + timedelta(minutes=30), NOW) == 35
        assert deadline_modifier(NOW + timedelta(hours=5), NOW) == 30
        assert deadline_modifier(NOW + timedelta(hours=20), NOW) == 25
        assert deadline_modifier(NOW + timedelta(hours=48), NOW) == 20
        assert deadline_modifier(NOW + timedelta(days=5), NOW) == 10
        assert deadline_modifier(NOW + timedelta(days=10), NOW) == 5
        assert deadline_modifier(NOW + timedelta(days=30), NOW) == 0

    def test_naive_deadline_against_aware_now(self):
        naive = datetime(2024, 3, 13, 11, 0)
        assert deadline_modifier(naive, NOW) == 40


class TestPriorityScorer:
    def setup_method(self):
        self.scorer = PriorityScorer()

    def test_base_scores(self):
        assert self.scorer.score(_params(NotificationType.UPDATE), now=NOW).total == 30
        assert self.scorer.score(_params(NotificationType.APPROVAL), now=NOW).total == 70
        assert self.scorer.score(_params(NotificationType.ESCALATION), now=NOW).priority == NotificationPriority.CRITICAL

    def test_role_modifier(self):
        result = self.scorer.score(_params(NotificationType.REMINDER), recipient_role="hr", now=NOW)
        assert result.role_modifier == 8
        assert result.total == 48

    def test_metadata_flags(self):
        result = self.scorer.score(
            _params(NotificationType.UPDATE, metadata={"is_urgent": True, "compliance_required": True}),
            now=NOW,
        )
        assert result.critical_flag == 15
        assert result.legal_compliance == 15
        assert result.total == 60
        assert result.priority == NotificationPriority.HIGH

    def test_escalation_context_flags(self):
        context = EscalationContext(
            rule_id="r1",
            entity_type="case",
            entity_id="c1",
            escalation_level=2,
            is_critical=True,
            legal_compliance=True,
        )
        result = self.scorer.score(_params(NotificationType.UPDATE, escalation=context), now=NOW)
        assert result.critical_flag == 25
        assert result.legal_compliance == 20

    def test_deadline_raises_priority(self):
        result = self.scorer.score(
            _params(NotificationType.REMINDER, deadline=NOW + timedelta(minutes=30)),
            now=NOW,
        )
        assert result.total == 75
        assert result.priority == NotificationPriority.URGENT

    def test_non_boolean_flag_ignored(self):
        result = self.scorer.score(_params(metadata={"is_critical": "yes"}), now=NOW)
        assert result.critical_flag == 0


class TestSortByPriority:
    def test_orders_by_score_then_recency(self):
        older = Notification(user_id="u", title="a", message="", type=NotificationType.UPDATE,
                             priority_score=50, created_at=NOW - timedelta(hours=1))
        newer = Notification(user_id="u", title="b", message="", type=NotificationType.UPDATE,
                             priority_score=50, created_at=NOW)
        top = Notification(user_id="u", title="c", message="", type=NotificationType.UPDATE,
                           priority_score=90, created_at=NOW - timedelta(days=1))
        assert [n.title for n in sort_by_priority([older, newer, top])] == ["c", "b", "a"]
