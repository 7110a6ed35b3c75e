"""Notification router.

Creates notification records for the effective recipient, scores them when
no priority is given, folds similar notifications into digests and tracks
read / acted state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from src.notifications.config import (
    PRIORITY_ORDER,
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    RoutingConfig,
)
from src.notifications.digest import (
    NotificationGroup,
    build_digest,
    group_notifications,
    scheduled_send,
    should_batch,
)
from src.notifications.exceptions import StoreError
from src.notifications.guard import StoreGuard
from src.notifications.models import (
    CreateNotificationParams,
    Notification,
    NotificationPreferences,
)
from src.notifications.preferences import PreferenceManager
from src.notifications import routing
from src.notifications.scoring import PriorityScore, PriorityScorer
from src.notifications.stores import NotificationStore

logger = logging.getLogger(__name__)


@dataclass
class RouterStats:
    """Counters kept by a router instance."""

    created: int = 0
    failed: int = 0
    digests: int = 0
    delegated: int = 0
    withdrawn: int = 0

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "failed": self.failed,
            "digests": self.digests,
            "delegated": self.delegated,
            "withdrawn": self.withdrawn,
        }


class NotificationRouter:
    """Creates and tracks notifications.

    Channel selection is not persisted; transport adapters ask
    ``channels_for_notification`` at delivery time.
    """

    def __init__(
        self,
        notification_store: NotificationStore,
        preferences: PreferenceManager,
        config: Optional[RoutingConfig] = None,
        guard: Optional[StoreGuard] = None,
        scorer: Optional[PriorityScorer] = None,
    ):
        self.store = notification_store
        self.preferences = preferences
        self.config = config or preferences.config
        self.guard = guard or StoreGuard(timeout_seconds=None)
        self.scorer = scorer or PriorityScorer()
        self._stats = RouterStats()

    # ── Creation ──────────────────────────────────────────────────────

    def create_notification(
        self,
        params: CreateNotificationParams,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """Persist one notification for the effective recipient.

        Args:
            params: What to send and to whom.
            now: Creation time; defaults to the current UTC time.

        Returns:
            The new notification id, or None when the store failed.
        """
        now = now or datetime.now(timezone.utc)
        try:
            return self._insert(self.prepare_notification(params, now))
        except StoreError as exc:
            self.note_failed(params.user_id, exc)
            return None

    def prepare_notification(
        self,
        params: CreateNotificationParams,
        now: Optional[datetime] = None,
    ) -> Notification:
        """Build the record ``create_notification`` would persist, without persisting it.

        Callers that write the record themselves, together with rows of
        their own, report the outcome through ``note_created`` or
        ``note_failed``.

        Raises:
            StoreError: The recipient's preferences could not be read.
        """
        now = now or datetime.now(timezone.utc)
        recipient = self.preferences.get_effective_recipient(params.user_id)
        score = self._score(params, now)
        return Notification(
            user_id=recipient,
            title=params.title,
            message=params.message,
            type=params.type,
            priority=params.priority or score.priority,
            priority_score=score.total,
            metadata=dict(params.metadata),
            escalation=params.escalation,
            deadline=params.deadline,
            actions=list(params.actions),
            deep_link=params.deep_link,
            delegated_from=params.user_id if recipient != params.user_id else None,
            created_at=now,
        )

    def withdraw_notification(self, notification_id: str) -> bool:
        """Remove a notification that was never delivered.

        Only for rolling back a fresh record whose companion write failed.
        """
        try:
            removed = self.guard.call("notifications.delete", self.store.delete, notification_id)
        except StoreError as exc:
            logger.error("Could not withdraw notification %s: %s", notification_id, exc)
            return False
        if removed:
            self._stats.created -= 1
            self._stats.withdrawn += 1
            logger.warning("Withdrew notification %s", notification_id)
        return removed

    def batch_create_notifications(
        self,
        notifications: Sequence[CreateNotificationParams],
        combine_similar: bool = False,
        max_delay_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Create many notifications, optionally folding similar ones into digests.

        With ``combine_similar``, notifications sharing a recipient and a type
        become one digest when at least two of them may be batched for that
        recipient. Critical notifications, and everything addressed to a
        recipient whose digest frequency is ``instant``, are created on
        their own.

        Returns:
            Ids of the rows created, failed creations omitted.
        """
        now = now or datetime.now(timezone.utc)
        if not combine_similar:
            return self._create_each(notifications, now)

        created: List[str] = []
        for group in group_notifications(notifications):
            frequency = self._digest_frequency(group.user_id)
            batchable = []
            for params in group.notifications:
                if should_batch(self._priority(params, now), frequency):
                    batchable.append(params)
                else:
                    created.extend(self._create_each([params], now))

            if len(batchable) < 2:
                created.extend(self._create_each(batchable, now))
                continue

            digest_id = self._create_digest(
                NotificationGroup(user_id=group.user_id, type=group.type, notifications=batchable),
                max_delay_minutes,
                now,
            )
            if digest_id:
                created.append(digest_id)

        logger.info(
            "Batch of %d notifications produced %d records",
            len(notifications),
            len(created),
        )
        return created

    def _create_each(
        self,
        notifications: Sequence[CreateNotificationParams],
        now: datetime,
    ) -> List[str]:
        ids = [self.create_notification(params, now) for params in notifications]
        return [i for i in ids if i]

    def _create_digest(
        self,
        group: NotificationGroup,
        max_delay_minutes: Optional[int],
        now: datetime,
    ) -> Optional[str]:
        try:
            recipient = self.preferences.get_effective_recipient(group.user_id)
            prefs = self.preferences.get_preferences(recipient)
            scores = [self._score(p, now) for p in group.notifications]
            priority = max(
                (p.priority or s.priority for p, s in zip(group.notifications, scores)),
                key=PRIORITY_ORDER.get,
            )
            digest = build_digest(
                group,
                recipient,
                priority,
                self.config,
                scheduled_for=scheduled_send(
                    prefs.digest_frequency,
                    now,
                    max_delay_minutes,
                    self.config.digest_send_hour,
                ),
            )
            digest.priority_score = max(s.total for s in scores)
            digest.created_at = now
            digest_id = self._insert(digest)
            self._stats.digests += 1
            return digest_id
        except StoreError as exc:
            self._stats.failed += 1
            logger.error("Failed to create digest for %s: %s", group.user_id, exc)
            return None

    def _insert(self, notification: Notification) -> str:
        notification_id = self.guard.call(
            "notifications.insert", self.store.insert, notification
        )
        self.note_created(notification)
        return notification_id

    def note_created(self, notification: Notification) -> None:
        """Count and log a notification persisted by this router or on its behalf."""
        self._stats.created += 1
        if notification.delegated_from:
            self._stats.delegated += 1
        logger.info(
            "Created %s notification %s for %s (priority=%s, score=%d)",
            notification.type.value,
            notification.id,
            notification.user_id,
            notification.priority.value,
            notification.priority_score,
        )

    def note_failed(self, user_id: str, exc: Exception) -> None:
        self._stats.failed += 1
        logger.error("Failed to create notification for %s: %s", user_id, exc)

    def _digest_frequency(self, user_id: str) -> DigestFrequency:
        try:
            recipient = self.preferences.get_effective_recipient(user_id)
            return self.preferences.get_preferences(recipient).digest_frequency
        except StoreError as exc:
            logger.warning("No digest frequency for %s, sending individually: %s", user_id, exc)
            return DigestFrequency.INSTANT

    def _score(self, params: CreateNotificationParams, now: datetime) -> PriorityScore:
        return self.scorer.score(params, params.metadata.get("recipient_role"), now)

    def _priority(self, params: CreateNotificationParams, now: datetime) -> NotificationPriority:
        return params.priority or self._score(params, now).priority

    # ── Channels ──────────────────────────────────────────────────────

    @staticmethod
    def channels_for(
        notification_type: NotificationType,
        priority: NotificationPriority,
        preferences: NotificationPreferences,
        now: Optional[datetime] = None,
    ) -> List[NotificationChannel]:
        return routing.channels_for(notification_type, priority, preferences, now)

    def channels_for_notification(
        self,
        notification: Notification,
        now: Optional[datetime] = None,
    ) -> List[NotificationChannel]:
        """Channels for a stored notification under its recipient's current preferences."""
        prefs = self.preferences.get_preferences(notification.user_id)
        return routing.channels_for(notification.type, notification.priority, prefs, now)

    # ── Read / acted state ────────────────────────────────────────────

    def mark_as_read(self, notification_id: str, now: Optional[datetime] = None) -> bool:
        """Set read_at once. Returns False only for an unknown id or a store failure."""
        try:
            notification = self.guard.call("notifications.get", self.store.get, notification_id)
            if notification is None:
                return False
            if notification.read_at is not None:
                return True
            return self.guard.call(
                "notifications.update",
                self.store.update,
                notification_id,
                read_at=now or datetime.now(timezone.utc),
            )
        except StoreError as exc:
            logger.error("Failed to mark %s as read: %s", notification_id, exc)
            return False

    def mark_as_acted(self, notification_id: str, now: Optional[datetime] = None) -> bool:
        """Set acted_at once, and read_at too when the notification is unread."""
        try:
            notification = self.guard.call("notifications.get", self.store.get, notification_id)
            if notification is None:
                return False
            if notification.acted_at is not None:
                return True
            now = now or datetime.now(timezone.utc)
            changes = {"acted_at": now}
            if notification.read_at is None:
                changes["read_at"] = now
            return self.guard.call(
                "notifications.update", self.store.update, notification_id, **changes
            )
        except StoreError as exc:
            logger.error("Failed to mark %s as acted: %s", notification_id, exc)
            return False

    def mark_all_as_read(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Mark every unread notification of the user as read; returns how many changed."""
        try:
            count = self.guard.call(
                "notifications.bulk_mark_read",
                self.store.bulk_mark_read,
                user_id,
                now or datetime.now(timezone.utc),
            )
        except StoreError as exc:
            logger.error("Failed to mark all as read for %s: %s", user_id, exc)
            return 0
        logger.info("Marked %d notifications read for %s", count, user_id)
        return count

    def list_notifications(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        return self.guard.call(
            "notifications.list", self.store.list_for_user, user_id, unread_only
        )

    def unread_count(self, user_id: str) -> int:
        return len(self.list_notifications(user_id, unread_only=True))

    def get_stats(self) -> dict:
        return self._stats.to_dict()
