"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.escalation import (  # noqa: E402
    EscalationConfig,
    EscalationEngine,
    HistoryLedger,
    InMemoryEntityStore,
    InMemoryHistoryStore,
    InMemoryRuleStore,
    RuleManager,
)
from src.notifications import (  # noqa: E402
    InMemoryNotificationStore,
    InMemoryPreferenceStore,
    NotificationRouter,
    PreferenceManager,
    RoutingConfig,
)

# Wednesday, outside the default 20:00-08:00 quiet hours
NOW = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def routing_config():
    return RoutingConfig()


@pytest.fixture
def preference_store():
    return InMemoryPreferenceStore()


@pytest.fixture
def preferences(preference_store, routing_config):
    return PreferenceManager(preference_store, routing_config)


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def router(notification_store, preferences, routing_config):
    return NotificationRouter(notification_store, preferences, routing_config)


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def rules(rule_store):
    return RuleManager(rule_store)


@pytest.fixture
def history_store():
    return InMemoryHistoryStore()


@pytest.fixture
def ledger(history_store):
    return HistoryLedger(history_store)


@pytest.fixture
def entity_store():
    return InMemoryEntityStore()


@pytest.fixture
def engine(rules, ledger, entity_store, router):
    return EscalationEngine(rules, ledger, entity_store, router, EscalationConfig())
