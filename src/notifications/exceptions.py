"""Exception hierarchy for the notification engine.

Every error raised by the router, the preference manager, the rule manager
or the escalation engine derives from NotificationEngineError, so callers can
catch the whole family in one place.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    STORE_ERROR = "STORE_ERROR"
    STORE_TIMEOUT = "STORE_TIMEOUT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class NotificationEngineError(Exception):
    """Base exception for the notification engine."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or []

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class StoreError(NotificationEngineError):
    """Raised when a persistence call fails."""

    def __init__(
        self,
        message: str = "Store operation failed",
        error_code: ErrorCode = ErrorCode.STORE_ERROR,
        operation: Optional[str] = None,
    ):
        details = [{"operation": operation}] if operation else None
        super().__init__(message, error_code, details)
        self.operation = operation


class StoreTimeoutError(StoreError):
    """Raised when a store call does not finish within its time budget."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"{operation} timed out after {timeout_seconds}s",
            ErrorCode.STORE_TIMEOUT,
            operation=operation,
        )
        self.timeout_seconds = timeout_seconds


class ConfigurationError(NotificationEngineError):
    """Raised when a rule references an unknown role, entity type or trigger."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        field: Optional[str] = None,
    ):
        details = [{"field": field, "issue": message}] if field else None
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
        self.field = field


class NotFoundError(NotificationEngineError):
    """Raised when a requested record does not exist."""

    def __init__(
        self,
        message: str = "Record not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        details = []
        if resource_type or resource_id:
            details = [{"resource_type": resource_type, "resource_id": resource_id}]
        super().__init__(message, ErrorCode.NOT_FOUND, details)
