"""Escalation - Configuration."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Tuple

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    """Kinds of business entity a rule can watch."""

    TASK = "task"
    APPROVAL = "approval"
    CASE = "case"
    EMPLOYEE = "employee"


class TriggerEvent(str, Enum):
    """Condition that makes an entity a candidate for escalation."""

    OVERDUE = "overdue"
    DEADLINE_APPROACHING = "deadline_approaching"
    PENDING = "pending"
    CONTRACT_EXPIRING = "contract_expiring"


class Role(str, Enum):
    """Roles an escalation step can target."""

    MANAGER = "manager"
    HR = "hr"
    EMPLOYEE = "employee"
    SUPER_ADMIN = "super_admin"


VALID_TRIGGERS: Dict[EntityType, FrozenSet[TriggerEvent]] = {
    EntityType.TASK: frozenset({TriggerEvent.OVERDUE, TriggerEvent.DEADLINE_APPROACHING}),
    EntityType.APPROVAL: frozenset({TriggerEvent.PENDING}),
    EntityType.CASE: frozenset({TriggerEvent.DEADLINE_APPROACHING}),
    EntityType.EMPLOYEE: frozenset({TriggerEvent.CONTRACT_EXPIRING}),
}

# Ordinal used in escalation messages, by escalation level
LEVEL_ORDINALS = ("Eerste", "Tweede", "Derde")


@dataclass
class EscalationConfig:
    """Escalation engine configuration."""

    task_deadline_window_hours: int = 24
    approval_pending_hours: int = 48
    case_checkpoint_weeks: Tuple[int, ...] = (5, 41)
    contract_horizon_days: int = 90
    critical_from_level: int = 2
    max_workers: int = 1
