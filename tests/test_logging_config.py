"""Tests for structured logging, run context and performance timing."""

import json
import logging
import sys

import pytest

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import LogContext, get_context_dict, get_run_id
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import ConsoleFormatter, StructuredFormatter, configure_logging


def _record(msg="hello %s", args=("world",), level=logging.INFO, **extra):
    record = logging.LogRecord("src.escalation.engine", level, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ── Formatters ───────────────────────────────────────────────────────


class TestStructuredFormatter:
    def test_basic_fields(self):
        entry = json.loads(StructuredFormatter(service_name="svc").format(_record()))
        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "src.escalation.engine"
        assert entry["service"] == "svc"
        assert "line" in entry

    def test_without_caller(self):
        entry = json.loads(StructuredFormatter(include_caller=False).format(_record()))
        assert "line" not in entry

    def test_extra_fields(self):
        record = _record(rule_id="r1", entity_id="t1", escalation_level=2)
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["rule_id"] == "r1"
        assert entry["entity_id"] == "t1"
        assert entry["escalation_level"] == 2

    def test_run_context_included(self):
        with LogContext(run_id="run-1", extra={"trigger": "cron"}):
            entry = json.loads(StructuredFormatter().format(_record()))
        assert entry["run_id"] == "run-1"
        assert entry["trigger"] == "cron"

    def test_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad"


class TestConsoleFormatter:
    def test_context_suffix(self):
        line = ConsoleFormatter().format(_record(rule_id="r1"))
        assert "hello world" in line
        assert "rule_id=r1" in line

    def test_no_context(self):
        line = ConsoleFormatter().format(_record())
        assert "=" not in line


# ── Setup ────────────────────────────────────────────────────────────


class TestConfigureLogging:
    def setup_method(self):
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def teardown_method(self):
        self.root.handlers[:] = self.saved_handlers
        self.root.setLevel(self.saved_level)

    def test_json_handler(self, monkeypatch):
        monkeypatch.delenv("NOTIFY_LOG_LEVEL", raising=False)
        monkeypatch.delenv("NOTIFY_LOG_FORMAT", raising=False)
        applied = configure_logging(LoggingConfig(level=LogLevel.WARNING))
        assert applied.level == LogLevel.WARNING
        assert self.root.level == logging.WARNING
        assert isinstance(self.root.handlers[0].formatter, StructuredFormatter)

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_LOG_LEVEL", "debug")
        monkeypatch.setenv("NOTIFY_LOG_FORMAT", "console")
        applied = configure_logging(LoggingConfig())
        assert applied.level == LogLevel.DEBUG
        assert applied.format == LogFormat.CONSOLE
        assert isinstance(self.root.handlers[0].formatter, ConsoleFormatter)

    def test_invalid_env_ignored(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_LOG_LEVEL", "loud")
        monkeypatch.delenv("NOTIFY_LOG_FORMAT", raising=False)
        assert configure_logging(LoggingConfig()).level == LogLevel.INFO

    def test_sqlalchemy_quieted(self, monkeypatch):
        monkeypatch.setenv("NOTIFY_LOG_LEVEL", "DEBUG")
        configure_logging()
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


# ── Run Context ──────────────────────────────────────────────────────


class TestLogContext:
    def test_generates_run_id(self):
        with LogContext() as ctx:
            assert ctx.run_id
            assert get_run_id() == ctx.run_id
        assert get_run_id() == ""

    def test_nested_contexts_restore(self):
        with LogContext(run_id="outer"):
            with LogContext(run_id="inner"):
                assert get_run_id() == "inner"
            assert get_run_id() == "outer"

    def test_bind(self):
        with LogContext(run_id="r") as ctx:
            ctx.bind(rule_count=3)
            assert get_context_dict() == {"run_id": "r", "rule_count": 3}
        assert get_context_dict() == {}


# ── Performance ──────────────────────────────────────────────────────


class TestLogPerformance:
    def test_returns_result(self, caplog):
        @log_performance(threshold_ms=10_000)
        def add(a, b):
            return a + b

        with caplog.at_level(logging.DEBUG):
            assert add(1, 2) == 3
        assert any("completed in" in r.getMessage() for r in caplog.records)

    def test_slow_call_warns(self, caplog):
        @log_performance(threshold_ms=0)
        def work():
            return None

        with caplog.at_level(logging.DEBUG):
            work()
        slow = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert slow and hasattr(slow[0], "duration_ms")

    def test_failure_logged_and_raised(self, caplog):
        @log_performance()
        def boom():
            raise RuntimeError("x")

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(RuntimeError):
                boom()
        assert any(r.levelno == logging.ERROR and "RuntimeError" in r.getMessage() for r in caplog.records)

    def test_include_args(self, caplog):
        @log_performance(threshold_ms=10_000, include_args=True)
        def run(rule_id, now=None):
            return rule_id

        with caplog.at_level(logging.DEBUG):
            run("r1", now="today")
        record = next(r for r in caplog.records if hasattr(r, "extra_data"))
        assert record.extra_data == "'r1', now='today'"


class TestPerformanceTimer:
    def test_measures_duration(self):
        with PerformanceTimer("block", threshold_ms=10_000) as timer:
            sum(range(100))
        assert timer.duration_ms >= 0

    def test_exception_propagates(self):
        with pytest.raises(KeyError):
            with PerformanceTimer("block"):
                raise KeyError("k")
