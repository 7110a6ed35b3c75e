"""SQL-backed implementations of the engine's store interfaces.

Each method runs in its own session and commits before returning.
Timestamps are written as naive UTC and read back as aware UTC.
"""

import json
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from src.db.engine import get_session_factory
from src.db.models import (
    EscalationHistoryRecord,
    NotificationPreferencesRecord,
    NotificationRecord,
    NotificationRuleRecord,
)
from src.escalation.config import EntityType, TriggerEvent
from src.escalation.history import EscalationHistory
from src.escalation.rules import EscalationStep, NotificationRule
from src.notifications.config import DigestFrequency, NotificationPriority, NotificationType
from src.notifications.models import (
    CHANNEL_KEYS,
    DigestItem,
    EscalationContext,
    Notification,
    NotificationAction,
    NotificationPreferences,
)

_ESCALATION_KEYS = ("rule_id", "entity_type", "entity_id", "escalation_level", "is_critical", "legal_compliance")


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _loads(value: Optional[str], default):
    return json.loads(value) if value else default


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def _notification_to_record(n: Notification) -> NotificationRecord:
    return NotificationRecord(
        id=n.id,
        user_id=n.user_id,
        title=n.title,
        message=n.message,
        type=n.type.value,
        priority=n.priority.value,
        priority_score=n.priority_score,
        metadata_json=json.dumps(n.stored_metadata(), default=str),
        actions=json.dumps([a.to_dict() for a in n.actions]),
        deep_link=n.deep_link,
        deadline=_to_db(n.deadline),
        read_at=_to_db(n.read_at),
        acted_at=_to_db(n.acted_at),
        is_digest=n.is_digest,
        digest_items=json.dumps([i.to_dict() for i in n.digest_items]),
        scheduled_for=_to_db(n.scheduled_for),
        delegated_from=n.delegated_from,
        created_at=_to_db(n.created_at),
    )


def _notification_from_record(r: NotificationRecord) -> Notification:
    metadata = _loads(r.metadata_json, {})
    escalation = EscalationContext.from_metadata(metadata)
    if escalation is not None:
        metadata = {k: v for k, v in metadata.items() if k not in _ESCALATION_KEYS}
    return Notification(
        id=r.id,
        user_id=r.user_id,
        title=r.title,
        message=r.message,
        type=NotificationType(r.type),
        priority=NotificationPriority(r.priority),
        priority_score=r.priority_score or 0,
        metadata=metadata,
        escalation=escalation,
        deadline=_from_db(r.deadline),
        actions=[NotificationAction.from_dict(a) for a in _loads(r.actions, [])],
        deep_link=r.deep_link,
        read_at=_from_db(r.read_at),
        acted_at=_from_db(r.acted_at),
        is_digest=bool(r.is_digest),
        digest_items=[DigestItem.from_dict(i) for i in _loads(r.digest_items, [])],
        scheduled_for=_from_db(r.scheduled_for),
        delegated_from=r.delegated_from,
        created_at=_from_db(r.created_at),
    )


class SqlNotificationStore:
    """NotificationStore over the notifications table."""

    _DATETIME_FIELDS = {"read_at", "acted_at", "scheduled_for", "deadline"}
    _UPDATABLE = _DATETIME_FIELDS | {"priority_score"}

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def insert(self, notification: Notification) -> str:
        with self._session_factory() as session:
            session.add(_notification_to_record(notification))
            session.commit()
        return notification.id

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._session_factory() as session:
            rec = session.get(NotificationRecord, notification_id)
            return _notification_from_record(rec) if rec is not None else None

    def update(self, notification_id: str, **fields) -> bool:
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise AttributeError(f"Cannot update notification fields {sorted(unknown)}")
        with self._session_factory() as session:
            rec = session.get(NotificationRecord, notification_id)
            if rec is None:
                return False
            for name, value in fields.items():
                setattr(rec, name, _to_db(value) if name in self._DATETIME_FIELDS else value)
            session.commit()
            return True

    def bulk_mark_read(self, user_id: str, read_at: datetime) -> int:
        with self._session_factory() as session:
            count = (
                session.query(NotificationRecord)
                .filter(NotificationRecord.user_id == user_id, NotificationRecord.read_at.is_(None))
                .update({NotificationRecord.read_at: _to_db(read_at)}, synchronize_session=False)
            )
            session.commit()
            return count

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        with self._session_factory() as session:
            query = session.query(NotificationRecord).filter(NotificationRecord.user_id == user_id)
            if unread_only:
                query = query.filter(NotificationRecord.read_at.is_(None))
            rows = query.order_by(NotificationRecord.created_at.desc()).all()
            return [_notification_from_record(r) for r in rows]

    def delete(self, notification_id: str) -> bool:
        with self._session_factory() as session:
            rec = session.get(NotificationRecord, notification_id)
            if rec is None:
                return False
            session.delete(rec)
            session.commit()
            return True


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class SqlPreferenceStore:
    """PreferenceStore over the notification_preferences table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def get(self, user_id: str) -> Optional[NotificationPreferences]:
        with self._session_factory() as session:
            rec = session.get(NotificationPreferencesRecord, user_id)
            if rec is None:
                return None
            channels = _loads(rec.channels, {})
            prefs = NotificationPreferences(
                user_id=rec.user_id,
                digest_frequency=DigestFrequency(rec.digest_frequency),
                quiet_hours_start=rec.quiet_hours_start,
                quiet_hours_end=rec.quiet_hours_end,
                timezone=rec.timezone,
                weekend_mode=bool(rec.weekend_mode),
                vacation_mode=bool(rec.vacation_mode),
                vacation_delegate=rec.vacation_delegate,
                created_at=_from_db(rec.created_at),
                updated_at=_from_db(rec.updated_at),
            )
            # left as plain strings; PreferenceManager normalizes them
            for key in CHANNEL_KEYS:
                setattr(prefs, f"{key}_channels", list(channels.get(key, [])))
            return prefs

    def upsert(self, preferences: NotificationPreferences) -> NotificationPreferences:
        channels = {
            key: [getattr(c, "value", c) for c in getattr(preferences, f"{key}_channels")]
            for key in CHANNEL_KEYS
        }
        with self._session_factory() as session:
            rec = session.get(NotificationPreferencesRecord, preferences.user_id)
            if rec is None:
                rec = NotificationPreferencesRecord(
                    user_id=preferences.user_id,
                    created_at=_to_db(preferences.created_at),
                )
                session.add(rec)
            rec.digest_frequency = preferences.digest_frequency.value
            rec.quiet_hours_start = preferences.quiet_hours_start
            rec.quiet_hours_end = preferences.quiet_hours_end
            rec.timezone = preferences.timezone
            rec.weekend_mode = preferences.weekend_mode
            rec.vacation_mode = preferences.vacation_mode
            rec.vacation_delegate = preferences.vacation_delegate
            rec.channels = json.dumps(channels)
            rec.updated_at = _to_db(preferences.updated_at)
            session.commit()
        return preferences

    def delete(self, user_id: str) -> bool:
        with self._session_factory() as session:
            count = (
                session.query(NotificationPreferencesRecord)
                .filter(NotificationPreferencesRecord.user_id == user_id)
                .delete()
            )
            session.commit()
            return count > 0


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _rule_from_record(r: NotificationRuleRecord) -> NotificationRule:
    return NotificationRule(
        id=r.id,
        name=r.name,
        description=r.description,
        entity_type=EntityType(r.entity_type),
        trigger_event=TriggerEvent(r.trigger_event),
        delay_hours=r.delay_hours,
        escalation_chain=[EscalationStep.from_dict(s) for s in _loads(r.escalation_chain, [])],
        active=bool(r.active),
        created_at=_from_db(r.created_at),
        updated_at=_from_db(r.updated_at),
    )


def _apply_rule(rec: NotificationRuleRecord, rule: NotificationRule) -> None:
    rec.name = rule.name
    rec.description = rule.description
    rec.entity_type = EntityType(rule.entity_type).value
    rec.trigger_event = TriggerEvent(rule.trigger_event).value
    rec.delay_hours = rule.delay_hours
    rec.escalation_chain = json.dumps([s.to_dict() for s in rule.escalation_chain])
    rec.active = rule.active
    rec.updated_at = _to_db(rule.updated_at)


class SqlRuleStore:
    """RuleStore over the notification_rules table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def list_active(self) -> List[NotificationRule]:
        with self._session_factory() as session:
            rows = (
                session.query(NotificationRuleRecord)
                .filter(NotificationRuleRecord.active.is_(True))
                .order_by(NotificationRuleRecord.created_at)
                .all()
            )
            return [_rule_from_record(r) for r in rows]

    def list_all(self) -> List[NotificationRule]:
        with self._session_factory() as session:
            rows = session.query(NotificationRuleRecord).order_by(NotificationRuleRecord.created_at).all()
            return [_rule_from_record(r) for r in rows]

    def get(self, rule_id: str) -> Optional[NotificationRule]:
        with self._session_factory() as session:
            rec = session.get(NotificationRuleRecord, rule_id)
            return _rule_from_record(rec) if rec is not None else None

    def insert(self, rule: NotificationRule) -> str:
        with self._session_factory() as session:
            rec = NotificationRuleRecord(id=rule.id, created_at=_to_db(rule.created_at))
            _apply_rule(rec, rule)
            session.add(rec)
            session.commit()
        return rule.id

    def update(self, rule: NotificationRule) -> bool:
        with self._session_factory() as session:
            rec = session.get(NotificationRuleRecord, rule.id)
            if rec is None:
                return False
            _apply_rule(rec, rule)
            session.commit()
            return True

    def delete(self, rule_id: str) -> bool:
        with self._session_factory() as session:
            count = (
                session.query(NotificationRuleRecord)
                .filter(NotificationRuleRecord.id == rule_id)
                .delete()
            )
            session.commit()
            return count > 0


# ---------------------------------------------------------------------------
# Escalation history
# ---------------------------------------------------------------------------


def _history_from_record(r: EscalationHistoryRecord) -> EscalationHistory:
    return EscalationHistory(
        id=r.id,
        notification_id=r.notification_id,
        rule_id=r.rule_id,
        entity_type=EntityType(r.entity_type),
        entity_id=r.entity_id,
        from_user_id=r.from_user_id,
        to_user_id=r.to_user_id,
        escalation_level=r.escalation_level,
        reason=r.reason or "",
        created_at=_from_db(r.created_at),
    )


def _history_to_record(entry: EscalationHistory) -> EscalationHistoryRecord:
    return EscalationHistoryRecord(
        id=entry.id,
        notification_id=entry.notification_id,
        rule_id=entry.rule_id,
        entity_type=EntityType(entry.entity_type).value,
        entity_id=entry.entity_id,
        from_user_id=entry.from_user_id,
        to_user_id=entry.to_user_id,
        escalation_level=entry.escalation_level,
        reason=entry.reason,
        created_at=_to_db(entry.created_at),
    )


class SqlHistoryStore:
    """HistoryStore over the escalation_history table. Time-window checks run in SQL."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    @staticmethod
    def _scoped(query, rule_id, entity_type=None, entity_id=None):
        query = query.filter(EscalationHistoryRecord.rule_id == rule_id)
        if entity_type is not None:
            query = query.filter(EscalationHistoryRecord.entity_type == EntityType(entity_type).value)
        if entity_id is not None:
            query = query.filter(EscalationHistoryRecord.entity_id == entity_id)
        return query

    def insert(self, entry: EscalationHistory) -> str:
        with self._session_factory() as session:
            session.add(_history_to_record(entry))
            session.commit()
        return entry.id

    def insert_with_notification(self, notification: Notification, entry: EscalationHistory) -> str:
        """Write the notification and its history row in one transaction.

        Both tables must live in the database this store's sessions open.
        A rejected history row, e.g. a duplicate step, rolls the notification back.
        """
        with self._session_factory() as session:
            session.add(_notification_to_record(notification))
            session.flush()
            session.add(_history_to_record(entry))
            session.commit()
        return entry.id

    def latest_since(self, rule_id, entity_type, entity_id, since) -> Optional[EscalationHistory]:
        with self._session_factory() as session:
            rec = (
                self._scoped(session.query(EscalationHistoryRecord), rule_id, entity_type, entity_id)
                .filter(EscalationHistoryRecord.created_at >= _to_db(since))
                .order_by(EscalationHistoryRecord.created_at.desc())
                .first()
            )
            return _history_from_record(rec) if rec is not None else None

    def max_level(self, rule_id, entity_type, entity_id) -> Optional[int]:
        with self._session_factory() as session:
            return self._scoped(
                session.query(func.max(EscalationHistoryRecord.escalation_level)),
                rule_id,
                entity_type,
                entity_id,
            ).scalar()

    def list_for(self, rule_id, entity_type=None, entity_id=None) -> List[EscalationHistory]:
        with self._session_factory() as session:
            rows = (
                self._scoped(session.query(EscalationHistoryRecord), rule_id, entity_type, entity_id)
                .order_by(EscalationHistoryRecord.created_at)
                .all()
            )
            return [_history_from_record(r) for r in rows]
