"""Structured Logging & Run Tracing.

Provides structured JSON logging, run ID propagation,
and performance timing for the notification engine.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import LogContext, generate_run_id, get_run_id
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import configure_logging, get_logger

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "LogContext",
    "PerformanceTimer",
    "configure_logging",
    "generate_run_id",
    "get_logger",
    "get_run_id",
    "log_performance",
]
