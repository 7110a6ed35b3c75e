"""User notification preferences management."""

import logging
from dataclasses import fields
from datetime import datetime, time, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.notifications.config import DigestFrequency, RoutingConfig
from src.notifications.guard import StoreGuard
from src.notifications.models import (
    CHANNEL_KEYS,
    NotificationPreferences,
    normalize_channels,
)
from src.notifications.stores import PreferenceStore

logger = logging.getLogger(__name__)

_READ_ONLY_FIELDS = {"user_id", "created_at", "updated_at"}
_UPDATABLE_FIELDS = {f.name for f in fields(NotificationPreferences)} - _READ_ONLY_FIELDS


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string. Raises ValueError on anything else."""
    try:
        hour_str, minute_str = value.split(":")
        return time(int(hour_str), int(minute_str))
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid HH:MM time: {value!r}") from exc


def _zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return timezone.utc


def local_time(preferences: NotificationPreferences, now: datetime) -> datetime:
    """``now`` in the user's timezone. Naive datetimes are taken as local already."""
    if now.tzinfo is None:
        return now
    return now.astimezone(_zone(preferences.timezone))


def is_quiet_hours(preferences: NotificationPreferences, now: Optional[datetime] = None) -> bool:
    """Whether ``now`` falls inside the user's quiet-hours window ``[start, end)``.

    A window whose start is after its end wraps midnight (e.g. 20:00-08:00).
    """
    now = local_time(preferences, now or datetime.now(timezone.utc))
    start = parse_hhmm(preferences.quiet_hours_start)
    end = parse_hhmm(preferences.quiet_hours_end)
    current = now.time().replace(second=0, microsecond=0)

    if start > end:
        return current >= start or current < end
    return start <= current < end


def is_weekend(preferences: NotificationPreferences, now: Optional[datetime] = None) -> bool:
    """Saturday or Sunday in the user's timezone."""
    now = local_time(preferences, now or datetime.now(timezone.utc))
    return now.weekday() >= 5


class PreferenceManager:
    """Manages user notification preferences.

    Preferences are materialized with defaults on first access and updated
    by partial merge.
    """

    def __init__(
        self,
        store: PreferenceStore,
        config: Optional[RoutingConfig] = None,
        guard: Optional[StoreGuard] = None,
    ):
        self.store = store
        self.config = config or RoutingConfig()
        self.guard = guard or StoreGuard(timeout_seconds=None)

    def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Get preferences for a user, creating defaults if none exist."""
        prefs = self.guard.call("preferences.get", self.store.get, user_id)
        if prefs is not None:
            prefs.fill_channel_defaults(self.config)
            return prefs

        prefs = NotificationPreferences.defaults(user_id, self.config)
        self.guard.call("preferences.upsert", self.store.upsert, prefs)
        logger.debug("Materialized default preferences for %s", user_id)
        return prefs

    def update_preferences(self, user_id: str, **changes: Any) -> NotificationPreferences:
        """Merge the given fields into the user's preferences and persist.

        Raises:
            ValueError: Unknown field, malformed HH:MM time or unknown channel.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")

        prefs = self.get_preferences(user_id)
        for name, value in changes.items():
            if value is None and name != "vacation_delegate":
                continue
            if name in ("quiet_hours_start", "quiet_hours_end"):
                parse_hhmm(value)
            elif name == "digest_frequency":
                value = DigestFrequency(value)
            elif name.endswith("_channels"):
                key = name[: -len("_channels")]
                value = normalize_channels(value, self.config.channel_defaults.for_key(key))
            setattr(prefs, name, value)

        prefs.updated_at = datetime.now(timezone.utc)
        self.guard.call("preferences.upsert", self.store.upsert, prefs)
        logger.info("Updated preferences for %s: %s", user_id, sorted(changes))
        return prefs

    def reset_to_defaults(self, user_id: str) -> NotificationPreferences:
        """Discard the user's settings and store fresh defaults."""
        prefs = NotificationPreferences.defaults(user_id, self.config)
        self.guard.call("preferences.upsert", self.store.upsert, prefs)
        return prefs

    def set_vacation(self, user_id: str, delegate: str) -> NotificationPreferences:
        """Redirect the user's notifications to ``delegate``."""
        if delegate == user_id:
            raise ValueError("A user cannot delegate to themselves")
        return self.update_preferences(user_id, vacation_mode=True, vacation_delegate=delegate)

    def clear_vacation(self, user_id: str) -> NotificationPreferences:
        return self.update_preferences(user_id, vacation_mode=False, vacation_delegate=None)

    def get_effective_recipient(self, user_id: str) -> str:
        """Who should actually receive a notification addressed to ``user_id``.

        Resolved on every call; vacation settings may change at any moment.
        Delegation is followed one hop only.
        """
        prefs = self.get_preferences(user_id)
        if prefs.vacation_mode and prefs.vacation_delegate:
            logger.debug("Delegating %s -> %s (vacation)", user_id, prefs.vacation_delegate)
            return prefs.vacation_delegate
        return user_id

    def export_preferences(self, user_id: str) -> dict:
        """Export preferences as a JSON-serializable dict."""
        return self.get_preferences(user_id).to_dict()

    def channel_summary(self, user_id: str) -> dict:
        prefs = self.get_preferences(user_id)
        return {key: [c.value for c in prefs.channels(key)] for key in CHANNEL_KEYS}
