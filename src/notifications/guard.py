"""Bounded-time wrapper for store calls.

Store implementations are external collaborators. Every call the engine makes
into them goes through a StoreGuard so that a stalled call fails the current
entity or notification instead of hanging the whole run.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Optional

from src.notifications.exceptions import NotificationEngineError, StoreError, StoreTimeoutError

logger = logging.getLogger(__name__)


class StoreGuard:
    """Runs store calls with a timeout and normalizes their failures.

    Any exception raised by the call is re-raised as StoreError (engine errors
    pass through unchanged). When ``timeout_seconds`` is None or not positive
    the call runs inline on the caller's thread.
    """

    def __init__(self, timeout_seconds: Optional[float] = 10.0, max_workers: int = 4) -> None:
        self._timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self._timeout

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="store-call",
                )
            return self._executor

    def call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Invoke ``func(*args, **kwargs)`` within the time budget.

        Args:
            operation: Name used in logs and error details (e.g. "history.insert").
            func: The store method to call.

        Returns:
            Whatever the store call returned.

        Raises:
            StoreTimeoutError: The call did not complete in time.
            StoreError: The call raised.
        """
        try:
            if self._timeout is None:
                return func(*args, **kwargs)
            future = self._get_executor().submit(func, *args, **kwargs)
            return future.result(timeout=self._timeout)
        except FuturesTimeoutError:
            logger.error("Store call %s timed out after %.1fs", operation, self._timeout)
            raise StoreTimeoutError(operation, self._timeout)
        except NotificationEngineError:
            raise
        except Exception as exc:
            logger.error("Store call %s failed: %s", operation, exc)
            raise StoreError(f"{operation} failed: {exc}", operation=operation) from exc

    def shutdown(self) -> None:
        """Release the worker threads without waiting for stalled calls."""
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None
