"""Logging Setup.

One call at process start routes every engine logger through a single
stdout handler: JSON lines for the scheduler's log shipper, or a colored
one-line-per-record layout when running ``main.py`` by hand.
"""

import dataclasses
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from src.logging_config.config import DEFAULT_LOGGING_CONFIG, LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import get_context_dict

# Record attributes passed through ``extra=`` that are copied into JSON output
EXTRA_FIELDS = ("rule_id", "entity_id", "escalation_level", "duration_ms", "extra_data")

# Shown on console lines; timing details stay JSON-only
CONSOLE_FIELDS = ("rule_id", "entity_id", "escalation_level")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, timezone.utc)


def _bound_fields(record: logging.LogRecord, keys=EXTRA_FIELDS) -> Dict[str, Any]:
    """Run context first, then the record's own escalation extras."""
    fields = get_context_dict()
    fields.update({key: getattr(record, key) for key in keys if hasattr(record, key)})
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Always carries timestamp, level, logger, message and service; adds the
    caller location when enabled, the bound run context, escalation extras
    and a structured ``exception`` block.
    """

    def __init__(self, service_name: str = "notification-engine", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def _exception(self, record: logging.LogRecord) -> Optional[Dict[str, str]]:
        if not record.exc_info or record.exc_info[0] is None:
            return None
        exc_type, exc_value, _ = record.exc_info
        return {
            "type": exc_type.__name__,
            "message": str(exc_value),
            "traceback": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.include_caller:
            entry.update(module=record.module, function=record.funcName, line=record.lineno)

        entry.update(_bound_fields(record))

        exception = self._exception(record)
        if exception is not None:
            entry["exception"] = exception
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines for local runs, level names colored by ANSI code."""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def format(self, record: logging.LogRecord) -> str:
        code = self.LEVEL_COLORS.get(record.levelno, "0")
        clock = _record_time(record).strftime("%H:%M:%S.%f")[:-3]
        level = f"\033[{code}m{record.levelname:<8}\033[0m"

        line = f"{clock} {level} {record.name}: {record.getMessage()}"
        fields = _bound_fields(record, CONSOLE_FIELDS)
        if fields:
            line += " [" + ", ".join(f"{k}={v}" for k, v in fields.items()) + "]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _apply_env_overrides(config: LoggingConfig) -> LoggingConfig:
    env_level = os.environ.get("NOTIFY_LOG_LEVEL", "").upper()
    if env_level in LogLevel.__members__:
        config = dataclasses.replace(config, level=LogLevel(env_level))

    env_format = os.environ.get("NOTIFY_LOG_FORMAT", "").lower()
    if env_format in {f.value for f in LogFormat}:
        config = dataclasses.replace(config, format=LogFormat(env_format))
    return config


def build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format == LogFormat.JSON:
        return StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    return ConsoleFormatter()


def configure_logging(
    config: Optional[LoggingConfig] = None,
    stream: Optional[TextIO] = None,
) -> LoggingConfig:
    """Install the engine's formatter on the root logger.

    Args:
        config: Logging configuration; defaults apply when omitted.
            ``NOTIFY_LOG_LEVEL`` and ``NOTIFY_LOG_FORMAT`` override the
            corresponding fields.
        stream: Destination of the handler; stdout by default.

    Returns:
        The configuration actually applied.
    """
    config = _apply_env_overrides(config or DEFAULT_LOGGING_CONFIG)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(build_formatter(config))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return config


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
