"""Escalation - Entity Variants.

One dataclass per watched entity type, each with its own presentation, and
one EntityKind handler per type owning the candidate query and the trigger
predicate.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Union

from src.escalation.config import EntityType, EscalationConfig, TriggerEvent
from src.notifications.config import ActionKind, ActionStyle
from src.notifications.exceptions import ConfigurationError
from src.notifications.models import NotificationAction

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CaseStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class EmploymentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def _as_utc(value: datetime) -> datetime:
    # naive timestamps are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass
class TaskEntity:
    """A task with a deadline, assigned to one user."""

    entity_type: ClassVar[EntityType] = EntityType.TASK

    id: str
    title: Optional[str]
    deadline: Optional[datetime]
    status: TaskStatus = TaskStatus.OPEN
    assigned_to: Optional[str] = None
    manager_id: Optional[str] = None

    @property
    def subject_user_id(self) -> Optional[str]:
        return self.assigned_to

    @property
    def label(self) -> str:
        return self.title or "Taak"

    @property
    def deep_link(self) -> str:
        return f"/tasks/{self.id}"

    def actions(self) -> List[NotificationAction]:
        return [
            NotificationAction("Bekijken", ActionKind.VIEW, ActionStyle.PRIMARY),
            NotificationAction("Toewijzen", ActionKind.REASSIGN, ActionStyle.DEFAULT),
        ]


@dataclass
class ApprovalEntity:
    """A leave request waiting for a decision."""

    entity_type: ClassVar[EntityType] = EntityType.APPROVAL

    id: str
    employee_id: str
    created_at: datetime
    status: ApprovalStatus = ApprovalStatus.PENDING
    manager_id: Optional[str] = None

    @property
    def subject_user_id(self) -> Optional[str]:
        return self.employee_id

    @property
    def label(self) -> str:
        return "Goedkeuringsverzoek"

    @property
    def deep_link(self) -> str:
        return "/hr/verlof"

    def actions(self) -> List[NotificationAction]:
        return [
            NotificationAction("Goedkeuren", ActionKind.APPROVE, ActionStyle.PRIMARY),
            NotificationAction("Afwijzen", ActionKind.REJECT, ActionStyle.DESTRUCTIVE),
        ]


@dataclass
class CaseEntity:
    """A sick-leave case, counted from the first day of absence."""

    entity_type: ClassVar[EntityType] = EntityType.CASE

    id: str
    employee_id: str
    employee_first_name: str
    employee_last_name: str
    start_date: date
    status: CaseStatus = CaseStatus.ACTIVE
    manager_id: Optional[str] = None

    @property
    def subject_user_id(self) -> Optional[str]:
        return self.employee_id

    @property
    def label(self) -> str:
        return f"Verzuimzaak {self.employee_first_name} {self.employee_last_name}"

    @property
    def deep_link(self) -> str:
        return f"/case/{self.id}"

    def actions(self) -> List[NotificationAction]:
        return [NotificationAction("Open zaak", ActionKind.VIEW, ActionStyle.PRIMARY)]


@dataclass
class EmployeeEntity:
    """An employee whose contract may be ending."""

    entity_type: ClassVar[EntityType] = EntityType.EMPLOYEE

    id: str
    first_name: str
    last_name: str
    end_date: Optional[date] = None
    employment_status: EmploymentStatus = EmploymentStatus.ACTIVE
    manager_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def subject_user_id(self) -> Optional[str]:
        return self.id

    @property
    def label(self) -> str:
        return f"Contract {self.first_name} {self.last_name}"

    @property
    def deep_link(self) -> str:
        return f"/employees/{self.id}"

    def actions(self) -> List[NotificationAction]:
        return [
            NotificationAction("Contract verlengen", ActionKind.EXTEND, ActionStyle.PRIMARY),
            NotificationAction("Bekijken", ActionKind.VIEW, ActionStyle.DEFAULT),
        ]


Entity = Union[TaskEntity, ApprovalEntity, CaseEntity, EmployeeEntity]


class EntityKind:
    """Handler for one entity type.

    Subclasses fetch the raw candidates from the entity store and decide,
    per trigger, whether a candidate currently matches.
    """

    entity_type: EntityType

    def __init__(self, config: Optional[EscalationConfig] = None):
        self.config = config or EscalationConfig()

    def fetch(self, store) -> List[Entity]:
        raise NotImplementedError

    def matches(self, entity: Entity, trigger: TriggerEvent, now: datetime) -> bool:
        raise NotImplementedError

    def candidates(self, store, trigger: TriggerEvent, now: datetime) -> List[Entity]:
        """Entities of this type for which ``trigger`` currently holds."""
        return [e for e in self.fetch(store) if self.matches(e, trigger, now)]


class TaskKind(EntityKind):
    entity_type = EntityType.TASK

    def fetch(self, store) -> List[Entity]:
        return store.list_tasks()

    def matches(self, entity: TaskEntity, trigger: TriggerEvent, now: datetime) -> bool:
        if entity.status == TaskStatus.COMPLETED or entity.deadline is None:
            return False
        now = _as_utc(now)
        deadline = _as_utc(entity.deadline)
        if trigger == TriggerEvent.OVERDUE:
            return deadline < now
        if trigger == TriggerEvent.DEADLINE_APPROACHING:
            window = timedelta(hours=self.config.task_deadline_window_hours)
            return now <= deadline <= now + window
        return False


class ApprovalKind(EntityKind):
    entity_type = EntityType.APPROVAL

    def fetch(self, store) -> List[Entity]:
        return store.list_approvals()

    def matches(self, entity: ApprovalEntity, trigger: TriggerEvent, now: datetime) -> bool:
        if trigger != TriggerEvent.PENDING or entity.status != ApprovalStatus.PENDING:
            return False
        cutoff = _as_utc(now) - timedelta(hours=self.config.approval_pending_hours)
        return _as_utc(entity.created_at) < cutoff


class CaseKind(EntityKind):
    entity_type = EntityType.CASE

    def fetch(self, store) -> List[Entity]:
        return store.list_cases()

    def matches(self, entity: CaseEntity, trigger: TriggerEvent, now: datetime) -> bool:
        if trigger != TriggerEvent.DEADLINE_APPROACHING or entity.status != CaseStatus.ACTIVE:
            return False
        elapsed_days = (_as_date(now) - _as_date(entity.start_date)).days
        return elapsed_days in {weeks * 7 for weeks in self.config.case_checkpoint_weeks}


class EmployeeKind(EntityKind):
    entity_type = EntityType.EMPLOYEE

    def fetch(self, store) -> List[Entity]:
        return store.list_employees()

    def matches(self, entity: EmployeeEntity, trigger: TriggerEvent, now: datetime) -> bool:
        if trigger != TriggerEvent.CONTRACT_EXPIRING:
            return False
        if entity.employment_status != EmploymentStatus.ACTIVE or entity.end_date is None:
            return False
        horizon = now + timedelta(days=self.config.contract_horizon_days)
        if isinstance(entity.end_date, datetime):
            return _as_utc(entity.end_date) <= _as_utc(horizon)
        return entity.end_date <= horizon.date()


_KIND_CLASSES = (TaskKind, ApprovalKind, CaseKind, EmployeeKind)

_missing = set(EntityType) - {cls.entity_type for cls in _KIND_CLASSES}
if _missing:
    raise RuntimeError(f"No entity handler for: {sorted(t.value for t in _missing)}")


def build_entity_kinds(config: Optional[EscalationConfig] = None) -> Dict[EntityType, EntityKind]:
    """One handler per entity type, sharing the given configuration."""
    config = config or EscalationConfig()
    return {cls.entity_type: cls(config) for cls in _KIND_CLASSES}


ENTITY_KINDS: Dict[EntityType, EntityKind] = build_entity_kinds()


def kind_for(entity_type: EntityType, kinds: Optional[Dict[EntityType, EntityKind]] = None) -> EntityKind:
    """Handler for ``entity_type``.

    Raises:
        ConfigurationError: The type has no handler.
    """
    kinds = kinds if kinds is not None else ENTITY_KINDS
    try:
        return kinds[EntityType(entity_type)]
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(f"No handler for entity type {entity_type!r}", field="entity_type") from exc
