"""Escalation rules and their management."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from src.escalation.config import VALID_TRIGGERS, EntityType, Role, TriggerEvent
from src.notifications.exceptions import ConfigurationError
from src.notifications.guard import StoreGuard

logger = logging.getLogger(__name__)


@dataclass
class EscalationStep:
    """One link of an escalation chain: a role or a specific user."""

    role: Optional[Role] = None
    user_id: Optional[str] = None
    after_hours: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "role": self.role.value if self.role else None,
            "user_id": self.user_id,
            "after_hours": self.after_hours,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EscalationStep":
        role = data.get("role")
        return cls(
            role=Role(role) if role else None,
            user_id=data.get("user_id"),
            after_hours=data.get("after_hours"),
        )


@dataclass
class NotificationRule:
    """Escalate entities of one type matching a trigger, after a delay."""

    name: str
    entity_type: EntityType
    trigger_event: TriggerEvent
    escalation_chain: List[EscalationStep]
    delay_hours: int = 24
    description: Optional[str] = None
    active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def chain_length(self) -> int:
        return len(self.escalation_chain)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "entity_type": self.entity_type.value,
            "trigger_event": self.trigger_event.value,
            "delay_hours": self.delay_hours,
            "escalation_chain": [s.to_dict() for s in self.escalation_chain],
            "active": self.active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


StepLike = Union[EscalationStep, Dict[str, Any]]


def _coerce_steps(chain: Sequence[StepLike]) -> List[EscalationStep]:
    steps = []
    for step in chain or ():
        if isinstance(step, EscalationStep):
            steps.append(step)
            continue
        try:
            steps.append(EscalationStep.from_dict(step))
        except (TypeError, ValueError, AttributeError) as exc:
            raise ConfigurationError(f"Invalid escalation step {step!r}", field="escalation_chain") from exc
    return steps


def validate_rule(rule: NotificationRule) -> None:
    """Check a rule is complete and consistent.

    Raises:
        ConfigurationError: Unknown entity type or trigger, a trigger that
            does not apply to the entity type, a negative delay, an empty
            chain or a step with neither a user nor a known role.
    """
    try:
        entity_type = EntityType(rule.entity_type)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown entity type {rule.entity_type!r}", field="entity_type") from exc
    try:
        trigger = TriggerEvent(rule.trigger_event)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown trigger {rule.trigger_event!r}", field="trigger_event") from exc

    if trigger not in VALID_TRIGGERS[entity_type]:
        raise ConfigurationError(
            f"Trigger {trigger.value} does not apply to {entity_type.value}",
            field="trigger_event",
        )
    if rule.delay_hours is None or rule.delay_hours < 0:
        raise ConfigurationError("delay_hours must be >= 0", field="delay_hours")
    if not rule.escalation_chain:
        raise ConfigurationError("Escalation chain must not be empty", field="escalation_chain")
    for index, step in enumerate(rule.escalation_chain):
        if step.user_id:
            continue
        if step.role is None:
            raise ConfigurationError(
                f"Step {index} has neither a user nor a role", field="escalation_chain"
            )
        try:
            Role(step.role)
        except ValueError as exc:
            raise ConfigurationError(f"Step {index} has unknown role {step.role!r}", field="escalation_chain") from exc


class RuleManager:
    """Creates, updates and lists escalation rules."""

    _UPDATABLE = {"name", "description", "entity_type", "trigger_event", "delay_hours", "escalation_chain", "active"}

    def __init__(self, store, guard: Optional[StoreGuard] = None):
        self.store = store
        self.guard = guard or StoreGuard(timeout_seconds=None)

    def create_rule(
        self,
        name: str,
        entity_type: Union[EntityType, str],
        trigger_event: Union[TriggerEvent, str],
        escalation_chain: Sequence[StepLike],
        delay_hours: int = 24,
        description: Optional[str] = None,
        active: bool = True,
    ) -> NotificationRule:
        """Validate and store a new rule.

        Raises:
            ConfigurationError: The rule is invalid.
        """
        try:
            entity_type = EntityType(entity_type)
            trigger_event = TriggerEvent(trigger_event)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        rule = NotificationRule(
            name=name,
            description=description,
            entity_type=entity_type,
            trigger_event=trigger_event,
            delay_hours=delay_hours,
            escalation_chain=_coerce_steps(escalation_chain),
            active=active,
        )
        validate_rule(rule)
        self.guard.call("rules.insert", self.store.insert, rule)
        logger.info(
            "Created rule %s (%s/%s, %d steps)",
            rule.id,
            rule.entity_type.value,
            rule.trigger_event.value,
            rule.chain_length,
        )
        return rule

    def update_rule(self, rule_id: str, **changes: Any) -> bool:
        """Apply a partial update.

        Returns:
            False when the rule does not exist.

        Raises:
            ConfigurationError: Unknown field or the updated rule is invalid.
        """
        unknown = set(changes) - self._UPDATABLE
        if unknown:
            raise ConfigurationError(f"Unknown rule fields: {sorted(unknown)}")

        rule = self.get_rule(rule_id)
        if rule is None:
            return False

        for name, value in changes.items():
            if name == "escalation_chain":
                value = _coerce_steps(value)
            elif name == "entity_type":
                value = self._enum(EntityType, value, name)
            elif name == "trigger_event":
                value = self._enum(TriggerEvent, value, name)
            setattr(rule, name, value)
        validate_rule(rule)

        rule.updated_at = datetime.now(timezone.utc)
        updated = self.guard.call("rules.update", self.store.update, rule)
        if updated:
            logger.info("Updated rule %s: %s", rule_id, sorted(changes))
        return updated

    def delete_rule(self, rule_id: str) -> bool:
        deleted = self.guard.call("rules.delete", self.store.delete, rule_id)
        if deleted:
            logger.info("Deleted rule %s", rule_id)
        return deleted

    def activate(self, rule_id: str) -> bool:
        return self.update_rule(rule_id, active=True)

    def deactivate(self, rule_id: str) -> bool:
        return self.update_rule(rule_id, active=False)

    def get_rule(self, rule_id: str) -> Optional[NotificationRule]:
        return self.guard.call("rules.get", self.store.get, rule_id)

    def list_rules(self, active_only: bool = False) -> List[NotificationRule]:
        if active_only:
            return self.guard.call("rules.list_active", self.store.list_active)
        return self.guard.call("rules.list_all", self.store.list_all)

    @staticmethod
    def _enum(enum_cls, value, field_name):
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {field_name}: {value!r}", field=field_name) from exc
