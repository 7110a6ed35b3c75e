"""Tests for the SQLAlchemy-backed stores, on in-memory SQLite."""

from datetime import datetime, timedelta, timezone

import pytest

from src.db.engine import create_db_engine, get_session_factory, init_db
from src.db.repositories import (
    SqlHistoryStore,
    SqlNotificationStore,
    SqlPreferenceStore,
    SqlRuleStore,
    _notification_to_record,
)
from src.escalation.config import EntityType, Role, TriggerEvent
from src.escalation.engine import EscalationEngine
from src.escalation.entities import TaskEntity
from src.escalation.history import EscalationHistory, HistoryLedger
from src.escalation.rules import EscalationStep, NotificationRule, RuleManager
from src.escalation.stores import InMemoryEntityStore
from src.notifications.config import (
    ActionKind,
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    RoutingConfig,
)
from src.notifications.exceptions import StoreError
from src.notifications.models import (
    DigestItem,
    EscalationContext,
    Notification,
    NotificationAction,
)
from src.notifications.preferences import PreferenceManager
from src.notifications.router import NotificationRouter

NOW = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)


def _session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    return get_session_factory(engine)


# ── Notifications ────────────────────────────────────────────────────


class TestSqlNotificationStore:
    def setup_method(self):
        self.store = SqlNotificationStore(_session_factory())

    def _notification(self, user_id="u1", created_at=NOW, **kwargs):
        return Notification(
            user_id=user_id,
            title="Escalatie: Rapport",
            message="Eerste escalatie: r. Actie vereist.",
            type=NotificationType.ESCALATION,
            created_at=created_at,
            **kwargs,
        )

    def test_round_trip(self):
        notification = self._notification(
            priority=NotificationPriority.CRITICAL,
            priority_score=95,
            metadata={"recipient_role": "hr"},
            escalation=EscalationContext(
                rule_id="r1",
                entity_type="case",
                entity_id="c1",
                escalation_level=1,
                legal_compliance=True,
            ),
            actions=[NotificationAction("Open zaak", ActionKind.VIEW, url="/case/c1")],
            deep_link="/case/c1",
            deadline=NOW + timedelta(days=1),
        )
        self.store.insert(notification)

        loaded = self.store.get(notification.id)
        assert loaded.user_id == "u1"
        assert loaded.priority == NotificationPriority.CRITICAL
        assert loaded.priority_score == 95
        assert loaded.metadata == {"recipient_role": "hr"}
        assert loaded.escalation.entity_id == "c1"
        assert loaded.escalation.escalation_level == 1
        assert loaded.escalation.legal_compliance is True
        assert loaded.actions[0].kind == ActionKind.VIEW
        assert loaded.deadline == NOW + timedelta(days=1)
        assert loaded.created_at == NOW
        assert loaded.created_at.tzinfo is not None
        assert loaded.read_at is None

    def test_digest_round_trip(self):
        digest = Notification(
            user_id="u1",
            title="2 nieuwe herinneringen",
            message="• a\n• b",
            type=NotificationType.DIGEST,
            is_digest=True,
            digest_items=[
                DigestItem(title="a", type=NotificationType.REMINDER),
                DigestItem(title="b", type=NotificationType.REMINDER, deep_link="/x"),
            ],
            metadata={"digest_of": "reminder", "item_count": 2},
            scheduled_for=NOW + timedelta(hours=1),
            delegated_from="u0",
            created_at=NOW,
        )
        self.store.insert(digest)
        loaded = self.store.get(digest.id)
        assert loaded.is_digest is True
        assert [i.title for i in loaded.digest_items] == ["a", "b"]
        assert loaded.digest_items[1].deep_link == "/x"
        assert loaded.escalation is None
        assert loaded.metadata["item_count"] == 2
        assert loaded.scheduled_for == NOW + timedelta(hours=1)
        assert loaded.delegated_from == "u0"

    def test_get_unknown(self):
        assert self.store.get("missing") is None

    def test_update(self):
        notification = self._notification()
        self.store.insert(notification)
        assert self.store.update(notification.id, read_at=NOW + timedelta(minutes=5)) is True
        assert self.store.get(notification.id).read_at == NOW + timedelta(minutes=5)
        assert self.store.update("missing", read_at=NOW) is False

    def test_bulk_mark_read_skips_read_rows(self):
        first = self._notification(created_at=NOW)
        second = self._notification(created_at=NOW + timedelta(minutes=1))
        other = self._notification(user_id="u2")
        for n in (first, second, other):
            self.store.insert(n)
        earlier = NOW + timedelta(minutes=2)
        self.store.update(first.id, read_at=earlier)

        assert self.store.bulk_mark_read("u1", NOW + timedelta(hours=1)) == 1
        assert self.store.get(first.id).read_at == earlier
        assert self.store.get(second.id).read_at == NOW + timedelta(hours=1)
        assert self.store.get(other.id).read_at is None

    def test_list_for_user_newest_first(self):
        old = self._notification(created_at=NOW)
        new = self._notification(created_at=NOW + timedelta(hours=1))
        self.store.insert(old)
        self.store.insert(new)
        self.store.update(new.id, read_at=NOW + timedelta(hours=2))

        assert [n.id for n in self.store.list_for_user("u1")] == [new.id, old.id]
        assert [n.id for n in self.store.list_for_user("u1", unread_only=True)] == [old.id]

    def test_delete(self):
        notification = self._notification()
        self.store.insert(notification)
        assert self.store.delete(notification.id) is True
        assert self.store.get(notification.id) is None
        assert self.store.delete(notification.id) is False


# ── Preferences ──────────────────────────────────────────────────────


class TestSqlPreferenceStore:
    def setup_method(self):
        self.store = SqlPreferenceStore(_session_factory())
        self.manager = PreferenceManager(self.store, RoutingConfig())

    def test_defaults_materialized(self):
        prefs = self.manager.get_preferences("u1")
        assert prefs.digest_frequency == DigestFrequency.INSTANT
        assert self.store.get("u1") is not None

    def test_update_persists(self):
        self.manager.update_preferences(
            "u1",
            digest_frequency="daily",
            quiet_hours_start="22:00",
            timezone="Europe/Amsterdam",
            approval_channels=["email", "push"],
            weekend_mode=True,
        )
        reloaded = PreferenceManager(self.store, RoutingConfig()).get_preferences("u1")
        assert reloaded.digest_frequency == DigestFrequency.DAILY
        assert reloaded.quiet_hours_start == "22:00"
        assert reloaded.timezone == "Europe/Amsterdam"
        assert reloaded.weekend_mode is True
        assert reloaded.approval_channels == [NotificationChannel.EMAIL, NotificationChannel.PUSH]

    def test_vacation_round_trip(self):
        self.manager.set_vacation("u1", "u2")
        assert PreferenceManager(self.store).get_effective_recipient("u1") == "u2"
        self.manager.clear_vacation("u1")
        assert PreferenceManager(self.store).get_effective_recipient("u1") == "u1"

    def test_delete(self):
        self.manager.get_preferences("u1")
        assert self.store.delete("u1") is True
        assert self.store.delete("u1") is False


# ── Rules ────────────────────────────────────────────────────────────


class TestSqlRuleStore:
    def setup_method(self):
        self.store = SqlRuleStore(_session_factory())
        self.manager = RuleManager(self.store)

    def test_round_trip(self):
        rule = self.manager.create_rule(
            name="Overdue tasks",
            entity_type="task",
            trigger_event="overdue",
            escalation_chain=[{"role": "manager"}, {"user_id": "u9", "after_hours": 12}],
            delay_hours=6,
            description="Taak over deadline",
        )
        loaded = self.store.get(rule.id)
        assert loaded.entity_type == EntityType.TASK
        assert loaded.trigger_event == TriggerEvent.OVERDUE
        assert loaded.delay_hours == 6
        assert loaded.escalation_chain[0].role == Role.MANAGER
        assert loaded.escalation_chain[1].user_id == "u9"
        assert loaded.escalation_chain[1].after_hours == 12
        assert loaded.description == "Taak over deadline"

    def test_active_filter(self):
        first = self.manager.create_rule("a", "task", "overdue", [{"role": "hr"}])
        self.manager.create_rule("b", "approval", "pending", [{"role": "hr"}])
        self.manager.deactivate(first.id)
        assert [r.name for r in self.manager.list_rules(active_only=True)] == ["b"]
        assert len(self.manager.list_rules()) == 2

    def test_update_and_delete(self):
        rule = self.manager.create_rule("a", "task", "overdue", [{"role": "hr"}])
        assert self.manager.update_rule(rule.id, name="renamed") is True
        assert self.store.get(rule.id).name == "renamed"
        assert self.manager.delete_rule(rule.id) is True
        assert self.store.get(rule.id) is None

    def test_update_unknown(self):
        rule = NotificationRule(
            name="ghost",
            entity_type=EntityType.TASK,
            trigger_event=TriggerEvent.OVERDUE,
            escalation_chain=[EscalationStep(role=Role.HR)],
        )
        assert self.store.update(rule) is False


# ── Escalation History ───────────────────────────────────────────────


class TestSqlHistoryStore:
    def setup_method(self):
        self.store = SqlHistoryStore(_session_factory())
        self.ledger = HistoryLedger(self.store)

    def _record(self, level, created_at, entity_id="t1", rule_id="r1"):
        return self.ledger.record(
            rule_id=rule_id,
            entity_type=EntityType.TASK,
            entity_id=entity_id,
            notification_id=f"n{level}",
            to_user_id="m1",
            escalation_level=level,
            from_user_id="u1",
            reason="Auto-escalated: r",
            now=created_at,
        )

    def test_next_level(self):
        assert self.ledger.next_level("r1", EntityType.TASK, "t1") == 0
        self._record(0, NOW)
        self._record(1, NOW + timedelta(hours=25))
        assert self.ledger.next_level("r1", EntityType.TASK, "t1") == 2
        assert self.ledger.next_level("r1", EntityType.TASK, "t2") == 0
        assert self.ledger.next_level("r2", EntityType.TASK, "t1") == 0

    def test_escalated_since_window(self):
        self._record(0, NOW)
        assert self.ledger.escalated_since("r1", EntityType.TASK, "t1", NOW - timedelta(hours=24)) is True
        assert self.ledger.escalated_since("r1", EntityType.TASK, "t1", NOW) is True
        assert self.ledger.escalated_since("r1", EntityType.TASK, "t1", NOW + timedelta(seconds=1)) is False
        assert self.ledger.escalated_since("r1", EntityType.CASE, "t1", NOW - timedelta(hours=1)) is False

    def test_latest_since_returns_newest(self):
        self._record(0, NOW)
        self._record(1, NOW + timedelta(hours=2))
        latest = self.store.latest_since("r1", EntityType.TASK, "t1", NOW - timedelta(hours=1))
        assert latest.escalation_level == 1
        assert latest.created_at == NOW + timedelta(hours=2)

    def test_entries_for(self):
        self._record(0, NOW)
        self._record(0, NOW, entity_id="t2")
        entries = self.ledger.entries_for("r1", EntityType.TASK, "t1")
        assert len(entries) == 1
        entry = entries[0]
        assert isinstance(entry, EscalationHistory)
        assert entry.from_user_id == "u1"
        assert entry.reason == "Auto-escalated: r"
        assert len(self.ledger.entries_for("r1")) == 2

    def test_duplicate_step_rejected(self):
        self._record(0, NOW)
        with pytest.raises(StoreError):
            self._record(0, NOW + timedelta(hours=1))
        assert len(self.ledger.entries_for("r1")) == 1


class TestPairedHistoryWrite:
    def setup_method(self):
        session_factory = _session_factory()
        self.notifications = SqlNotificationStore(session_factory)
        self.ledger = HistoryLedger(SqlHistoryStore(session_factory))

    def _step(self, notification, to_user_id="m1"):
        return self.ledger.record_with_notification(
            notification,
            rule_id="r1",
            entity_type=EntityType.TASK,
            entity_id="t1",
            to_user_id=to_user_id,
            escalation_level=0,
            from_user_id="u1",
            reason="Auto-escalated: r",
            now=NOW,
        )

    def _notification(self, user_id="m1"):
        return Notification(
            user_id=user_id,
            title="Escalatie: Rapport",
            message="Eerste escalatie: r. Actie vereist.",
            type=NotificationType.ESCALATION,
            created_at=NOW,
        )

    def test_sql_store_pairs_writes(self):
        assert self.ledger.pairs_writes is True

    def test_writes_both_rows(self):
        notification = self._notification()
        entry = self._step(notification)
        assert entry.notification_id == notification.id
        assert self.notifications.get(notification.id) is not None
        [stored] = self.ledger.entries_for("r1", EntityType.TASK, "t1")
        assert stored.notification_id == notification.id

    def test_rejected_history_rolls_back_notification(self):
        self._step(self._notification())
        duplicate = self._notification()
        with pytest.raises(StoreError):
            self._step(duplicate)
        assert self.notifications.get(duplicate.id) is None
        assert len(self.notifications.list_for_user("m1")) == 1
        assert len(self.ledger.entries_for("r1")) == 1

    def test_other_target_at_same_level_allowed(self):
        self._step(self._notification())
        self._step(self._notification("m2"), to_user_id="m2")
        assert len(self.ledger.entries_for("r1")) == 2


# ── Engine over SQL ──────────────────────────────────────────────────


class RejectingHistoryStore(SqlHistoryStore):
    def insert_with_notification(self, notification, entry):
        with self._session_factory() as session:
            session.add(_notification_to_record(notification))
            session.flush()
            raise RuntimeError("history table locked")


class TestSqlEscalation:
    def setup_method(self):
        self.session_factory = _session_factory()
        self.notifications = SqlNotificationStore(self.session_factory)
        self.entities = InMemoryEntityStore(
            tasks=[
                TaskEntity(
                    id="t1",
                    title="Rapport",
                    deadline=NOW - timedelta(hours=3),
                    assigned_to="u1",
                    manager_id="m1",
                )
            ]
        )

    def _engine(self, history_store=None):
        prefs = PreferenceManager(SqlPreferenceStore(self.session_factory), RoutingConfig())
        engine = EscalationEngine(
            rules=RuleManager(SqlRuleStore(self.session_factory)),
            ledger=HistoryLedger(history_store or SqlHistoryStore(self.session_factory)),
            entities=self.entities,
            router=NotificationRouter(self.notifications, prefs, RoutingConfig()),
        )
        engine.create_rule("Overdue tasks", "task", "overdue", [{"role": "manager"}])
        return engine

    def test_notification_and_history_written_together(self):
        engine = self._engine()
        assert engine.process_escalations(now=NOW) == 1
        [notification] = self.notifications.list_for_user("m1")
        [entry] = engine.ledger.entries_for(engine.rules.list_rules()[0].id)
        assert entry.notification_id == notification.id
        assert engine.router.get_stats()["created"] == 1
        assert engine.process_escalations(now=NOW + timedelta(hours=1)) == 0

    def test_failed_history_leaves_no_notification(self):
        engine = self._engine(RejectingHistoryStore(self.session_factory))
        assert engine.process_escalations(now=NOW) == 0
        assert self.notifications.list_for_user("m1") == []
        assert engine.router.get_stats()["failed"] == 1
        assert engine.router.get_stats()["created"] == 0
