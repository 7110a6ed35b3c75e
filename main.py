"""CLI entry point: python main.py escalate"""

import argparse
import sys

from src.db import (
    SqlHistoryStore,
    SqlNotificationStore,
    SqlPreferenceStore,
    SqlRuleStore,
    create_db_engine,
    get_session_factory,
    init_db,
)
from src.escalation import (
    EscalationConfig,
    EscalationEngine,
    HistoryLedger,
    InMemoryEntityStore,
    RuleManager,
)
from src.logging_config import LoggingConfig, configure_logging
from src.notifications import NotificationRouter, PreferenceManager, RoutingConfig, StoreGuard
from src.settings import get_settings


def build_engine(settings=None, entity_store=None) -> EscalationEngine:
    """Wire an escalation engine against the SQL stores."""
    settings = settings or get_settings()
    session_factory = get_session_factory(
        create_db_engine(settings.database_url, echo=settings.database_echo)
    )
    guard = StoreGuard(
        timeout_seconds=settings.store_timeout_seconds,
        max_workers=settings.store_max_workers,
    )
    routing = RoutingConfig(
        quiet_hours_start=settings.quiet_hours_start,
        quiet_hours_end=settings.quiet_hours_end,
        default_timezone=settings.default_timezone,
    )
    preferences = PreferenceManager(SqlPreferenceStore(session_factory), routing, guard)
    router = NotificationRouter(SqlNotificationStore(session_factory), preferences, routing, guard)
    return EscalationEngine(
        rules=RuleManager(SqlRuleStore(session_factory), guard),
        ledger=HistoryLedger(SqlHistoryStore(session_factory), guard),
        entities=entity_store or InMemoryEntityStore(),
        router=router,
        config=EscalationConfig(max_workers=settings.escalation_max_workers),
        guard=guard,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Notification routing & escalation engine"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Create the engine tables")
    subparsers.add_parser("escalate", help="Run one escalation pass")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(LoggingConfig.from_settings(settings))

    if args.command == "init-db":
        init_db()
        print(f"Tables created in {settings.database_url}")
        return 0

    engine = build_engine(settings)
    try:
        count = engine.process_escalations()
    finally:
        engine.guard.shutdown()
    print(f"Escalated {count} entities")
    return 0


if __name__ == "__main__":
    sys.exit(main())
