"""Store interfaces consumed by the escalation engine, plus in-memory implementations.

The CRM entity tables are owned by the host application; the engine only
reads them through EntityStore.
"""

import copy
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, runtime_checkable

from src.escalation.config import EntityType, Role
from src.escalation.entities import ApprovalEntity, CaseEntity, EmployeeEntity, TaskEntity
from src.escalation.history import EscalationHistory
from src.escalation.rules import NotificationRule


@runtime_checkable
class RuleStore(Protocol):
    """Persistence for escalation rules."""

    def list_active(self) -> List[NotificationRule]:
        ...

    def list_all(self) -> List[NotificationRule]:
        ...

    def get(self, rule_id: str) -> Optional[NotificationRule]:
        ...

    def insert(self, rule: NotificationRule) -> str:
        ...

    def update(self, rule: NotificationRule) -> bool:
        """Replace the stored rule; False when its id is unknown."""
        ...

    def delete(self, rule_id: str) -> bool:
        ...


@runtime_checkable
class HistoryStore(Protocol):
    """Append-only persistence for escalation history.

    A store sharing a database with the notification store may also offer
    ``insert_with_notification(notification, entry)``, writing both rows in
    one transaction; the engine then uses it instead of two separate inserts.
    """

    def insert(self, entry: EscalationHistory) -> str:
        ...

    def latest_since(
        self,
        rule_id: str,
        entity_type: EntityType,
        entity_id: str,
        since: datetime,
    ) -> Optional[EscalationHistory]:
        """Newest row for (rule, entity) with created_at >= since, if any."""
        ...

    def max_level(self, rule_id: str, entity_type: EntityType, entity_id: str) -> Optional[int]:
        ...

    def list_for(
        self,
        rule_id: str,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[str] = None,
    ) -> List[EscalationHistory]:
        ...


@runtime_checkable
class EntityStore(Protocol):
    """Read access to the business entities rules watch."""

    def list_tasks(self) -> List[TaskEntity]:
        ...

    def list_approvals(self) -> List[ApprovalEntity]:
        ...

    def list_cases(self) -> List[CaseEntity]:
        ...

    def list_employees(self) -> List[EmployeeEntity]:
        ...

    def get_manager_id(self, user_id: str) -> Optional[str]:
        """Manager of a user, if one is recorded."""
        ...

    def list_user_ids_by_role(self, role: Role) -> List[str]:
        ...


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryRuleStore:
    """Dict-backed RuleStore, in insertion order."""

    def __init__(self) -> None:
        self._rules: Dict[str, NotificationRule] = {}
        self._lock = threading.Lock()

    def list_active(self) -> List[NotificationRule]:
        return [copy.deepcopy(r) for r in self._rules.values() if r.active]

    def list_all(self) -> List[NotificationRule]:
        return [copy.deepcopy(r) for r in self._rules.values()]

    def get(self, rule_id: str) -> Optional[NotificationRule]:
        rule = self._rules.get(rule_id)
        return copy.deepcopy(rule) if rule is not None else None

    def insert(self, rule: NotificationRule) -> str:
        with self._lock:
            self._rules[rule.id] = copy.deepcopy(rule)
        return rule.id

    def update(self, rule: NotificationRule) -> bool:
        with self._lock:
            if rule.id not in self._rules:
                return False
            self._rules[rule.id] = copy.deepcopy(rule)
            return True

    def delete(self, rule_id: str) -> bool:
        with self._lock:
            return self._rules.pop(rule_id, None) is not None


class InMemoryHistoryStore:
    """List-backed HistoryStore."""

    def __init__(self) -> None:
        self._rows: List[EscalationHistory] = []
        self._lock = threading.Lock()

    def _matching(self, rule_id, entity_type=None, entity_id=None) -> List[EscalationHistory]:
        return [
            r
            for r in self._rows
            if r.rule_id == rule_id
            and (entity_type is None or r.entity_type == entity_type)
            and (entity_id is None or r.entity_id == entity_id)
        ]

    def insert(self, entry: EscalationHistory) -> str:
        with self._lock:
            self._rows.append(copy.deepcopy(entry))
        return entry.id

    def latest_since(self, rule_id, entity_type, entity_id, since) -> Optional[EscalationHistory]:
        with self._lock:
            rows = [
                r
                for r in self._matching(rule_id, entity_type, entity_id)
                if _utc(r.created_at) >= _utc(since)
            ]
        if not rows:
            return None
        return copy.deepcopy(max(rows, key=lambda r: _utc(r.created_at)))

    def max_level(self, rule_id, entity_type, entity_id) -> Optional[int]:
        with self._lock:
            levels = [r.escalation_level for r in self._matching(rule_id, entity_type, entity_id)]
        return max(levels) if levels else None

    def list_for(self, rule_id, entity_type=None, entity_id=None) -> List[EscalationHistory]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._matching(rule_id, entity_type, entity_id)]

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryEntityStore:
    """EntityStore over plain lists, for tests and for hosts without a CRM backend."""

    def __init__(
        self,
        tasks: Optional[List[TaskEntity]] = None,
        approvals: Optional[List[ApprovalEntity]] = None,
        cases: Optional[List[CaseEntity]] = None,
        employees: Optional[List[EmployeeEntity]] = None,
        managers: Optional[Dict[str, str]] = None,
        roles: Optional[Dict[str, Role]] = None,
    ):
        self.tasks = list(tasks or [])
        self.approvals = list(approvals or [])
        self.cases = list(cases or [])
        self.employees = list(employees or [])
        self.managers = dict(managers or {})
        self.roles = dict(roles or {})

    def list_tasks(self) -> List[TaskEntity]:
        return list(self.tasks)

    def list_approvals(self) -> List[ApprovalEntity]:
        return list(self.approvals)

    def list_cases(self) -> List[CaseEntity]:
        return list(self.cases)

    def list_employees(self) -> List[EmployeeEntity]:
        return list(self.employees)

    def get_manager_id(self, user_id: str) -> Optional[str]:
        return self.managers.get(user_id)

    def list_user_ids_by_role(self, role: Role) -> List[str]:
        return [user_id for user_id, r in self.roles.items() if r == Role(role)]
