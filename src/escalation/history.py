"""Escalation history ledger."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from src.escalation.config import EntityType
from src.notifications.guard import StoreGuard

logger = logging.getLogger(__name__)


@dataclass
class EscalationHistory:
    """One escalation step taken for one entity. Append-only."""

    rule_id: str
    entity_type: EntityType
    entity_id: str
    notification_id: str
    to_user_id: str
    escalation_level: int
    from_user_id: Optional[str] = None
    reason: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "notification_id": self.notification_id,
            "rule_id": self.rule_id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "escalation_level": self.escalation_level,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }


class HistoryLedger:
    """Reads and appends escalation history, scoped per (rule, entity)."""

    def __init__(self, store, guard: Optional[StoreGuard] = None):
        self.store = store
        self.guard = guard or StoreGuard(timeout_seconds=None)

    @property
    def pairs_writes(self) -> bool:
        """Whether the store can persist a notification and its history row together."""
        return callable(getattr(self.store, "insert_with_notification", None))

    def record(
        self,
        rule_id: str,
        entity_type: EntityType,
        entity_id: str,
        notification_id: str,
        to_user_id: str,
        escalation_level: int,
        from_user_id: Optional[str] = None,
        reason: str = "",
        now: Optional[datetime] = None,
    ) -> EscalationHistory:
        entry = EscalationHistory(
            rule_id=rule_id,
            entity_type=EntityType(entity_type),
            entity_id=entity_id,
            notification_id=notification_id,
            to_user_id=to_user_id,
            escalation_level=escalation_level,
            from_user_id=from_user_id,
            reason=reason,
            created_at=now or datetime.now(timezone.utc),
        )
        self.guard.call("history.insert", self.store.insert, entry)
        self._log(entry)
        return entry

    def record_with_notification(
        self,
        notification,
        rule_id: str,
        entity_type: EntityType,
        entity_id: str,
        to_user_id: str,
        escalation_level: int,
        from_user_id: Optional[str] = None,
        reason: str = "",
        now: Optional[datetime] = None,
    ) -> EscalationHistory:
        """Persist ``notification`` and its history row in one transaction.

        Either both rows are written or neither is.

        Raises:
            StoreError: Nothing was written, or a timeout left the outcome unknown.
        """
        entry = EscalationHistory(
            rule_id=rule_id,
            entity_type=EntityType(entity_type),
            entity_id=entity_id,
            notification_id=notification.id,
            to_user_id=to_user_id,
            escalation_level=escalation_level,
            from_user_id=from_user_id,
            reason=reason,
            created_at=now or datetime.now(timezone.utc),
        )
        self.guard.call(
            "history.insert_with_notification",
            self.store.insert_with_notification,
            notification,
            entry,
        )
        self._log(entry)
        return entry

    @staticmethod
    def _log(entry: EscalationHistory) -> None:
        logger.debug(
            "Recorded escalation %s/%s level %d -> %s",
            entry.entity_type.value,
            entry.entity_id,
            entry.escalation_level,
            entry.to_user_id,
        )

    def escalated_since(
        self,
        rule_id: str,
        entity_type: EntityType,
        entity_id: str,
        since: datetime,
    ) -> bool:
        """Whether any row for this (rule, entity) was created at or after ``since``."""
        latest = self.guard.call(
            "history.latest_since",
            self.store.latest_since,
            rule_id,
            EntityType(entity_type),
            entity_id,
            since,
        )
        return latest is not None

    def next_level(self, rule_id: str, entity_type: EntityType, entity_id: str) -> int:
        """Max recorded level + 1, or 0 when the entity was never escalated."""
        current = self.guard.call(
            "history.max_level",
            self.store.max_level,
            rule_id,
            EntityType(entity_type),
            entity_id,
        )
        return 0 if current is None else current + 1

    def entries_for(
        self,
        rule_id: str,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[str] = None,
    ) -> List[EscalationHistory]:
        return self.guard.call(
            "history.list_for",
            self.store.list_for,
            rule_id,
            EntityType(entity_type) if entity_type else None,
            entity_id,
        )
