"""Logging Configuration.

Level, output format and service identity of the engine's log stream.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration.

    ``slow_threshold_ms`` marks escalation runs and rules as slow;
    ``quiet_loggers`` are capped at WARNING whatever the root level is
    (SQL echo is governed by the database settings instead).
    """

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    slow_threshold_ms: float = 1000.0
    service_name: str = "notification-engine"
    quiet_loggers: Tuple[str, ...] = ("sqlalchemy.engine", "sqlalchemy.pool")

    @classmethod
    def from_settings(cls, settings) -> "LoggingConfig":
        """Build from process settings; unknown level or format values fall back to the defaults."""
        level = settings.log_level.upper()
        fmt = settings.log_format.lower()
        return cls(
            level=LogLevel(level) if level in LogLevel.__members__ else cls.level,
            format=LogFormat(fmt) if fmt in {f.value for f in LogFormat} else cls.format,
            slow_threshold_ms=settings.slow_run_threshold_ms,
            service_name=settings.service_name,
        )


DEFAULT_LOGGING_CONFIG = LoggingConfig()
