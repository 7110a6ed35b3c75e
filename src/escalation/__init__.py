"""Escalation.

Periodic escalation of overdue tasks, pending approvals, sick-leave case
checkpoints and expiring contracts through a chain of responsible parties.
"""

from src.escalation.config import (
    VALID_TRIGGERS,
    EntityType,
    EscalationConfig,
    Role,
    TriggerEvent,
)
from src.escalation.entities import (
    ApprovalEntity,
    ApprovalStatus,
    CaseEntity,
    CaseStatus,
    EmployeeEntity,
    EmploymentStatus,
    ENTITY_KINDS,
    EntityKind,
    TaskEntity,
    TaskStatus,
    kind_for,
)
from src.escalation.rules import EscalationStep, NotificationRule, RuleManager, validate_rule
from src.escalation.history import EscalationHistory, HistoryLedger
from src.escalation.stores import (
    EntityStore,
    HistoryStore,
    InMemoryEntityStore,
    InMemoryHistoryStore,
    InMemoryRuleStore,
    RuleStore,
)
from src.escalation.engine import EscalationEngine

__all__ = [
    # Config
    "VALID_TRIGGERS",
    "EntityType",
    "EscalationConfig",
    "Role",
    "TriggerEvent",
    # Entities
    "ApprovalEntity",
    "ApprovalStatus",
    "CaseEntity",
    "CaseStatus",
    "EmployeeEntity",
    "EmploymentStatus",
    "ENTITY_KINDS",
    "EntityKind",
    "TaskEntity",
    "TaskStatus",
    "kind_for",
    # Rules & history
    "EscalationStep",
    "NotificationRule",
    "RuleManager",
    "validate_rule",
    "EscalationHistory",
    "HistoryLedger",
    # Stores
    "EntityStore",
    "HistoryStore",
    "InMemoryEntityStore",
    "InMemoryHistoryStore",
    "InMemoryRuleStore",
    "RuleStore",
    # Engine
    "EscalationEngine",
]
