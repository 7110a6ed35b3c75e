"""SQLAlchemy ORM models for the notification engine.

Tables:
- notifications: Notification records, one per recipient
- notification_preferences: Per-user routing preferences
- notification_rules: Escalation rules
- escalation_history: Append-only escalation ledger

Timestamps are stored as naive UTC. JSON lists and maps live in Text columns.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from src.db.base import Base


class NotificationRecord(Base):
    """A notification addressed to one user."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)
    priority = Column(String(20), nullable=False)
    priority_score = Column(Integer, default=0)
    metadata_json = Column("metadata", Text)  # JSON object
    actions = Column(Text)  # JSON array
    deep_link = Column(String(500))
    deadline = Column(DateTime)
    read_at = Column(DateTime)
    acted_at = Column(DateTime)
    is_digest = Column(Boolean, default=False)
    digest_items = Column(Text)  # JSON array
    scheduled_for = Column(DateTime)
    delegated_from = Column(String(64))
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (Index("ix_notifications_user_read", "user_id", "read_at"),)


class NotificationPreferencesRecord(Base):
    """Routing preferences of one user."""

    __tablename__ = "notification_preferences"

    user_id = Column(String(64), primary_key=True)
    digest_frequency = Column(String(20), nullable=False, default="instant")
    quiet_hours_start = Column(String(5), nullable=False, default="20:00")
    quiet_hours_end = Column(String(5), nullable=False, default="08:00")
    timezone = Column(String(64), nullable=False, default="UTC")
    weekend_mode = Column(Boolean, default=False)
    vacation_mode = Column(Boolean, default=False)
    vacation_delegate = Column(String(64))
    channels = Column(Text)  # JSON object: key -> list of channels
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class NotificationRuleRecord(Base):
    """An escalation rule."""

    __tablename__ = "notification_rules"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    entity_type = Column(String(20), nullable=False)
    trigger_event = Column(String(40), nullable=False)
    delay_hours = Column(Integer, nullable=False, default=24)
    escalation_chain = Column(Text, nullable=False)  # JSON array of steps
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class EscalationHistoryRecord(Base):
    """One escalation step taken for one entity."""

    __tablename__ = "escalation_history"

    id = Column(String(36), primary_key=True)
    notification_id = Column(String(36), nullable=False)
    rule_id = Column(String(36), nullable=False)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False)
    from_user_id = Column(String(64))
    to_user_id = Column(String(64), nullable=False)
    escalation_level = Column(Integer, nullable=False)
    reason = Column(String(500))
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_escalation_history_scope", "rule_id", "entity_type", "entity_id"),
        UniqueConstraint(
            "rule_id",
            "entity_type",
            "entity_id",
            "escalation_level",
            "to_user_id",
            name="uq_escalation_history_step",
        ),
    )
