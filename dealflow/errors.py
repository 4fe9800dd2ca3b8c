"""Error taxonomy for the orchestration pipeline.

Every caller-facing failure maps onto one :class:`ErrorCategory`. The
category decides whether the failure is recoverable (the user can do
something about it) and whether it is retryable (running it again may
succeed).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    DECISION_PARSE = "decision_parse"
    SYSTEM = "system"


# category -> (recoverable, retryable)
CATEGORY_POLICY: Dict[ErrorCategory, Tuple[bool, bool]] = {
    ErrorCategory.VALIDATION: (False, False),
    ErrorCategory.PERMISSION: (False, False),
    ErrorCategory.NOT_FOUND: (True, False),
    ErrorCategory.EXECUTION: (True, True),
    ErrorCategory.TIMEOUT: (True, True),
    ErrorCategory.DECISION_PARSE: (True, False),
    ErrorCategory.SYSTEM: (True, False),
}


class DealflowError(Exception):
    """Base error carrying a stable code and a category."""

    code = "DEALFLOW_ERROR"
    category = ErrorCategory.SYSTEM

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    @property
    def recoverable(self) -> bool:
        return CATEGORY_POLICY[self.category][0]

    @property
    def retryable(self) -> bool:
        return CATEGORY_POLICY[self.category][1]


class ValidationFailed(DealflowError):
    code = "VALIDATION_FAILED"
    category = ErrorCategory.VALIDATION


class PermissionDenied(DealflowError):
    code = "INSUFFICIENT_PERMISSIONS"
    category = ErrorCategory.PERMISSION


class NotFound(DealflowError):
    code = "NOT_FOUND"
    category = ErrorCategory.NOT_FOUND


class ExecutionFailed(DealflowError):
    code = "EXECUTION_FAILED"
    category = ErrorCategory.EXECUTION

    def __init__(self, message: str, *, retryable: bool = True, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        return self._retryable


class StepTimeout(DealflowError):
    code = "STEP_TIMEOUT"
    category = ErrorCategory.TIMEOUT


class DecisionParseError(DealflowError):
    code = "DECISION_PARSE_FAILED"
    category = ErrorCategory.DECISION_PARSE


class InvalidTransition(DealflowError):
    code = "INVALID_TRANSITION"
    category = ErrorCategory.VALIDATION


__all__ = [
    "CATEGORY_POLICY",
    "DealflowError",
    "DecisionParseError",
    "ErrorCategory",
    "ExecutionFailed",
    "InvalidTransition",
    "NotFound",
    "PermissionDenied",
    "StepTimeout",
    "ValidationFailed",
]
