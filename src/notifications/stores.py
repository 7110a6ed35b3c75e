"""Store interfaces consumed by the router, plus in-memory implementations.

The persistent record store is an external collaborator. The router only
talks to these protocols; src.db.repositories provides SQL-backed versions.
"""

import copy
import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol, runtime_checkable

from src.notifications.models import Notification, NotificationPreferences


@runtime_checkable
class NotificationStore(Protocol):
    """Persistence for notification records."""

    def insert(self, notification: Notification) -> str:
        """Persist a new notification and return its id."""
        ...

    def get(self, notification_id: str) -> Optional[Notification]:
        ...

    def update(self, notification_id: str, **fields) -> bool:
        """Set the given fields; False when the id is unknown."""
        ...

    def bulk_mark_read(self, user_id: str, read_at: datetime) -> int:
        """Set read_at on the user's rows whose read_at is null; return the count."""
        ...

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        ...

    def delete(self, notification_id: str) -> bool:
        """Remove an undelivered row; False when the id is unknown."""
        ...


@runtime_checkable
class PreferenceStore(Protocol):
    """Persistence for per-user preferences."""

    def get(self, user_id: str) -> Optional[NotificationPreferences]:
        ...

    def upsert(self, preferences: NotificationPreferences) -> NotificationPreferences:
        ...

    def delete(self, user_id: str) -> bool:
        ...


class InMemoryNotificationStore:
    """Dict-backed NotificationStore. Returns copies, like a real store would."""

    def __init__(self) -> None:
        self._rows: Dict[str, Notification] = {}
        self._lock = threading.Lock()

    def insert(self, notification: Notification) -> str:
        with self._lock:
            self._rows[notification.id] = copy.deepcopy(notification)
        return notification.id

    def get(self, notification_id: str) -> Optional[Notification]:
        row = self._rows.get(notification_id)
        return copy.deepcopy(row) if row is not None else None

    def update(self, notification_id: str, **fields) -> bool:
        with self._lock:
            row = self._rows.get(notification_id)
            if row is None:
                return False
            for name, value in fields.items():
                if not hasattr(row, name):
                    raise AttributeError(f"Notification has no field {name!r}")
                setattr(row, name, value)
            return True

    def bulk_mark_read(self, user_id: str, read_at: datetime) -> int:
        count = 0
        with self._lock:
            for row in self._rows.values():
                if row.user_id == user_id and row.read_at is None:
                    row.read_at = read_at
                    count += 1
        return count

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        rows = [r for r in self._rows.values() if r.user_id == user_id]
        if unread_only:
            rows = [r for r in rows if r.read_at is None]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [copy.deepcopy(r) for r in rows]

    def delete(self, notification_id: str) -> bool:
        with self._lock:
            return self._rows.pop(notification_id, None) is not None

    def all(self) -> List[Notification]:
        return [copy.deepcopy(r) for r in self._rows.values()]

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryPreferenceStore:
    """Dict-backed PreferenceStore."""

    def __init__(self) -> None:
        self._rows: Dict[str, NotificationPreferences] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[NotificationPreferences]:
        row = self._rows.get(user_id)
        return copy.deepcopy(row) if row is not None else None

    def upsert(self, preferences: NotificationPreferences) -> NotificationPreferences:
        with self._lock:
            self._rows[preferences.user_id] = copy.deepcopy(preferences)
        return preferences

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._rows.pop(user_id, None) is not None

    def __len__(self) -> int:
        return len(self._rows)
