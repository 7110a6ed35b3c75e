"""Run Context Management.

Binds an escalation run id, plus any run-scoped fields, to every log
record emitted while the run is active. Backed by a single ContextVar, so
worker threads started with ``contextvars.copy_context().run`` inherit the
binding of the run that spawned them.
"""

import time
import uuid
from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

_run_fields: ContextVar[Dict[str, Any]] = ContextVar("run_fields", default={})


def generate_run_id() -> str:
    return uuid.uuid4().hex[:12]


def get_run_id() -> str:
    """Id of the active run, or an empty string outside one."""
    return _run_fields.get().get("run_id", "")


def get_context_dict() -> Dict[str, Any]:
    """Fresh copy of the active run's fields, for merging into a log entry."""
    return dict(_run_fields.get())


class LogContext:
    """Context manager scoping log fields to one escalation run.

    Nested contexts shadow the outer one and restore it on exit.

    Example:
        with LogContext() as ctx:
            ctx.bind(rule_count=len(rules))
            logger.info("escalation run started")  # carries run_id, rule_count
    """

    def __init__(self, run_id: str = "", extra: Optional[Dict[str, Any]] = None):
        self.run_id = run_id or generate_run_id()
        self.extra = dict(extra or {})
        self._started = time.perf_counter()
        self._token: Optional[Token] = None

    def __enter__(self) -> "LogContext":
        self._started = time.perf_counter()
        self._token = _run_fields.set({"run_id": self.run_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _run_fields.reset(self._token)
            self._token = None

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000

    def bind(self, **fields: Any) -> None:
        """Add fields to the active binding."""
        self.extra.update(fields)
        _run_fields.set({**_run_fields.get(), **fields})
