"""Escalation engine.

Each run walks the active rules, finds the entities whose trigger holds,
and moves every due entity one step up its rule's escalation chain:
notify the next party, then record the step in the history ledger.
"""

import contextvars
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from src.escalation.config import LEVEL_ORDINALS, EntityType, EscalationConfig, Role
from src.escalation.entities import Entity, EntityKind, build_entity_kinds, kind_for
from src.escalation.history import HistoryLedger
from src.escalation.rules import EscalationStep, NotificationRule, RuleManager, validate_rule
from src.logging_config.context import LogContext
from src.logging_config.performance import PerformanceTimer, log_performance
from src.notifications.config import NotificationType
from src.notifications.exceptions import ConfigurationError, StoreError
from src.notifications.guard import StoreGuard
from src.notifications.models import CreateNotificationParams, EscalationContext
from src.notifications.router import NotificationRouter

logger = logging.getLogger(__name__)


class EscalationEngine:
    """Runs escalation rules against the entity store.

    Invoked periodically by an external scheduler through
    ``process_escalations``. A run never raises: failures are logged and
    confined to the entity, or the rule, they occurred in.
    """

    def __init__(
        self,
        rules: RuleManager,
        ledger: HistoryLedger,
        entities,
        router: NotificationRouter,
        config: Optional[EscalationConfig] = None,
        guard: Optional[StoreGuard] = None,
    ):
        self.rules = rules
        self.ledger = ledger
        self.entities = entities
        self.router = router
        self.config = config or EscalationConfig()
        self.guard = guard or StoreGuard(timeout_seconds=None)
        self.kinds: Dict[EntityType, EntityKind] = build_entity_kinds(self.config)
        self._locks: Dict[Tuple[str, str, str], Tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    # ── Runs ──────────────────────────────────────────────────────────

    @log_performance()
    def process_escalations(self, now: Optional[datetime] = None) -> int:
        """Run every active rule once.

        Args:
            now: Evaluation time; defaults to the current UTC time.

        Returns:
            Number of entities escalated in this run.
        """
        now = now or datetime.now(timezone.utc)
        with LogContext() as ctx:
            try:
                rules = self.rules.list_rules(active_only=True)
            except Exception:
                logger.exception("Could not load active escalation rules")
                return 0
            ctx.bind(rule_count=len(rules))

            if self.config.max_workers > 1 and len(rules) > 1:
                with ThreadPoolExecutor(
                    max_workers=self.config.max_workers,
                    thread_name_prefix="escalation",
                ) as pool:
                    futures = [
                        pool.submit(contextvars.copy_context().run, self._run_rule, rule, now)
                        for rule in rules
                    ]
                    counts = [f.result() for f in futures]
            else:
                counts = [self._run_rule(rule, now) for rule in rules]

            total = sum(counts)
            logger.info(
                "Escalation run %s finished in %.0fms: %d entities escalated across %d rules",
                ctx.run_id,
                ctx.elapsed_ms,
                total,
                len(rules),
            )
            return total

    def _run_rule(self, rule: NotificationRule, now: datetime) -> int:
        extra = {"rule_id": rule.id}
        try:
            return self.process_rule(rule, now)
        except ConfigurationError as exc:
            logger.warning("Skipping misconfigured rule %s: %s", rule.id, exc, extra=extra)
        except StoreError as exc:
            logger.error("Rule %s failed: %s", rule.id, exc, extra=extra)
        except Exception:
            logger.exception("Unexpected error in rule %s", rule.id, extra=extra)
        return 0

    def process_rule(self, rule: NotificationRule, now: datetime) -> int:
        """Escalate every due entity matching one rule.

        Raises:
            ConfigurationError: The rule is invalid or its entity type has no handler.
            StoreError: The candidate query failed.
        """
        validate_rule(rule)
        kind = kind_for(rule.entity_type, self.kinds)

        with PerformanceTimer(f"rule {rule.id}"):
            candidates = self.guard.call(
                f"entities.{kind.entity_type.value}",
                kind.candidates,
                self.entities,
                rule.trigger_event,
                now,
            )
            logger.debug(
                "Rule %s matched %d %s entities",
                rule.id,
                len(candidates),
                kind.entity_type.value,
                extra={"rule_id": rule.id},
            )

            escalated = 0
            for entity in candidates:
                extra = {"rule_id": rule.id, "entity_id": entity.id}
                try:
                    if self._process_entity(rule, entity, now):
                        escalated += 1
                except StoreError as exc:
                    logger.error(
                        "Escalation of %s %s failed: %s",
                        kind.entity_type.value,
                        entity.id,
                        exc,
                        extra=extra,
                    )
                except ConfigurationError:
                    raise
                except Exception:
                    logger.exception(
                        "Unexpected error escalating %s %s",
                        kind.entity_type.value,
                        entity.id,
                        extra=extra,
                    )
        return escalated

    def _process_entity(self, rule: NotificationRule, entity: Entity, now: datetime) -> bool:
        # ledger read-then-write must not interleave for the same (rule, entity)
        with self._lock_for(rule, entity):
            if not self.is_escalation_due(rule, entity, now):
                logger.debug("Entity %s already escalated within %dh", entity.id, rule.delay_hours)
                return False
            return self.escalate(entity, rule, now)

    @contextmanager
    def _lock_for(self, rule: NotificationRule, entity: Entity) -> Iterator[None]:
        # entries live only while some thread holds or waits on them
        key = (rule.id, entity.entity_type.value, entity.id)
        with self._locks_guard:
            lock, users = self._locks.get(key, (None, 0))
            lock = lock or threading.Lock()
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    # ── Single entity ─────────────────────────────────────────────────

    def is_escalation_due(self, rule: NotificationRule, entity: Entity, now: datetime) -> bool:
        """False while the ledger holds a row for (rule, entity) newer than the rule's delay."""
        since = now - timedelta(hours=rule.delay_hours)
        return not self.ledger.escalated_since(rule.id, rule.entity_type, entity.id, since)

    def escalate(self, entity: Entity, rule: NotificationRule, now: Optional[datetime] = None) -> bool:
        """Notify the next step of the chain and record it.

        Returns:
            True when at least one target was notified and recorded. False
            when the chain is exhausted (nothing is written), no target could
            be resolved, or no notification and history row could be written
            as a pair.
        """
        now = now or datetime.now(timezone.utc)
        level = self.ledger.next_level(rule.id, rule.entity_type, entity.id)
        extra = {"rule_id": rule.id, "entity_id": entity.id, "escalation_level": level}

        if level >= rule.chain_length:
            logger.debug("Chain exhausted for %s under rule %s", entity.id, rule.id, extra=extra)
            return False

        targets = self.resolve_targets(entity, rule.escalation_chain[level])
        if not targets:
            logger.warning("No escalation target for %s at level %d", entity.id, level, extra=extra)
            return False

        notified = 0
        for target in targets:
            params = self.build_notification(entity, rule, level, target)
            step = {
                "rule_id": rule.id,
                "entity_type": rule.entity_type,
                "entity_id": entity.id,
                "to_user_id": target,
                "escalation_level": level,
                "from_user_id": entity.subject_user_id,
                "reason": f"Auto-escalated: {rule.name}",
                "now": now,
            }
            if self.ledger.pairs_writes:
                written = self._notify_and_record_together(params, step, extra)
            else:
                written = self._notify_then_record(params, step, extra)
            if written:
                notified += 1

        if notified:
            logger.info(
                "Escalated %s %s to level %d (%d targets)",
                rule.entity_type.value,
                entity.id,
                level,
                notified,
                extra=extra,
            )
        return notified > 0

    def _notify_and_record_together(
        self,
        params: CreateNotificationParams,
        step: Dict[str, Any],
        extra: Dict[str, Any],
    ) -> bool:
        try:
            notification = self.router.prepare_notification(params, step["now"])
            self.ledger.record_with_notification(notification, **step)
        except StoreError as exc:
            self.router.note_failed(params.user_id, exc)
            logger.warning("Escalation step to %s not written", params.user_id, extra=extra)
            return False
        self.router.note_created(notification)
        return True

    def _notify_then_record(
        self,
        params: CreateNotificationParams,
        step: Dict[str, Any],
        extra: Dict[str, Any],
    ) -> bool:
        notification_id = self.router.create_notification(params, step["now"])
        if notification_id is None:
            logger.warning("Notification to %s failed, no history written", params.user_id, extra=extra)
            return False
        try:
            self.ledger.record(notification_id=notification_id, **step)
        except StoreError as exc:
            logger.error(
                "History write for notification %s failed, withdrawing it: %s",
                notification_id,
                exc,
                extra=extra,
            )
            if not self.router.withdraw_notification(notification_id):
                logger.error("Notification %s left without history", notification_id, extra=extra)
            return False
        return True

    def resolve_targets(self, entity: Entity, step: EscalationStep) -> List[str]:
        """User ids to notify for one chain step, duplicates removed, order kept."""
        if step.user_id:
            return [step.user_id]

        role = Role(step.role)
        if role == Role.MANAGER:
            manager_id = entity.manager_id
            if not manager_id and entity.subject_user_id:
                manager_id = self.guard.call(
                    "entities.get_manager_id",
                    self.entities.get_manager_id,
                    entity.subject_user_id,
                )
            if manager_id:
                return [manager_id]

        user_ids = self.guard.call(
            "entities.list_user_ids_by_role",
            self.entities.list_user_ids_by_role,
            role,
        )
        return list(dict.fromkeys(user_ids))

    def build_notification(
        self,
        entity: Entity,
        rule: NotificationRule,
        level: int,
        target: str,
    ) -> CreateNotificationParams:
        ordinal = LEVEL_ORDINALS[min(level, len(LEVEL_ORDINALS) - 1)]
        return CreateNotificationParams(
            user_id=target,
            title=f"Escalatie: {entity.label}",
            message=f"{ordinal} escalatie: {rule.description or rule.name}. Actie vereist.",
            type=NotificationType.ESCALATION,
            escalation=EscalationContext(
                rule_id=rule.id,
                entity_type=rule.entity_type.value,
                entity_id=entity.id,
                escalation_level=level,
                is_critical=level >= self.config.critical_from_level,
                legal_compliance=rule.entity_type == EntityType.CASE,
            ),
            actions=entity.actions(),
            deep_link=entity.deep_link,
        )

    # ── Rule management ───────────────────────────────────────────────

    def create_rule(self, *args: Any, **kwargs: Any) -> NotificationRule:
        return self.rules.create_rule(*args, **kwargs)

    def update_rule(self, rule_id: str, **changes: Any) -> bool:
        return self.rules.update_rule(rule_id, **changes)

    def delete_rule(self, rule_id: str) -> bool:
        return self.rules.delete_rule(rule_id)
