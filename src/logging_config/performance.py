"""Performance Logging.

Timing for escalation runs and individual rules. Every timed block logs
its duration as ``duration_ms``: DEBUG when fast, WARNING once it crosses
the slow threshold, ERROR when it raised.
"""

import functools
import logging
import time
from typing import Any, Callable, Optional

from src.logging_config.config import DEFAULT_LOGGING_CONFIG

logger = logging.getLogger(__name__)

_MAX_ARG_REPR = 100
_MAX_ARGS_SHOWN = 3


def _emit(
    target: logging.Logger,
    name: str,
    duration_ms: float,
    threshold_ms: float,
    failed: Optional[BaseException] = None,
    extra_data: Optional[str] = None,
) -> None:
    extra = {"duration_ms": round(duration_ms, 2)}
    if extra_data is not None:
        extra["extra_data"] = extra_data

    if failed is not None:
        target.error("%s failed after %.1fms: %s", name, duration_ms, type(failed).__name__, extra=extra)
    elif duration_ms >= threshold_ms:
        target.warning("Slow operation: %s took %.1fms", name, duration_ms, extra=extra)
    else:
        target.debug("%s completed in %.1fms", name, duration_ms, extra=extra)


def _short_repr(value: Any) -> str:
    text = repr(value)
    return text if len(text) <= _MAX_ARG_REPR else text[:_MAX_ARG_REPR] + "..."


def _summarize_args(args: tuple, kwargs: dict) -> str:
    parts = [_short_repr(a) for a in args[:_MAX_ARGS_SHOWN]]
    if len(args) > _MAX_ARGS_SHOWN:
        parts.append(f"... +{len(args) - _MAX_ARGS_SHOWN} more args")
    parts.extend(f"{k}={_short_repr(v)}" for k, v in list(kwargs.items())[:_MAX_ARGS_SHOWN])
    return ", ".join(parts)


def log_performance(
    threshold_ms: Optional[float] = None,
    logger_name: Optional[str] = None,
    include_args: bool = False,
) -> Callable:
    """Decorator timing every call of the wrapped function.

    Args:
        threshold_ms: Slow-call threshold; defaults to the logging config's.
        logger_name: Logger to write to; defaults to the function's module.
        include_args: Attach a short argument summary as ``extra_data``.

    Example:
        @log_performance()
        def process_escalations(self, now=None):
            ...
    """
    threshold = DEFAULT_LOGGING_CONFIG.slow_threshold_ms if threshold_ms is None else threshold_ms

    def decorator(func: Callable) -> Callable:
        target = logging.getLogger(logger_name or func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            failed = None
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                failed = exc
                raise
            finally:
                _emit(
                    target,
                    func.__qualname__,
                    (time.perf_counter() - started) * 1000,
                    threshold,
                    failed=failed,
                    extra_data=_summarize_args(args, kwargs) if include_args else None,
                )

        return wrapper

    return decorator


class PerformanceTimer:
    """Context manager timing one block, e.g. a single rule inside a run."""

    def __init__(self, operation_name: str, threshold_ms: Optional[float] = None):
        self.operation_name = operation_name
        self.threshold_ms = DEFAULT_LOGGING_CONFIG.slow_threshold_ms if threshold_ms is None else threshold_ms
        self.duration_ms = 0.0
        self._started = 0.0

    def __enter__(self) -> "PerformanceTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        _emit(logger, self.operation_name, self.duration_ms, self.threshold_ms, failed=exc_val)
