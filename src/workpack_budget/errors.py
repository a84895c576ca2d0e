"""Exception hierarchy and stable error codes for the work pack budget service.

Every error raised on purpose by the service derives from BudgetServiceError
so the API layer can map it to a structured response in one place.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes returned to API clients."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MALFORMED_INPUT = "MALFORMED_INPUT"
    DATA_SOURCE_UNAVAILABLE = "DATA_SOURCE_UNAVAILABLE"
    BUDGET_LOAD_FAILED = "BUDGET_LOAD_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class BudgetServiceError(Exception):
    """Base exception carrying a user-safe message, a code and log-only details."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code.value!r}, "
            f"details={self.details!r})"
        )


class InvalidRequestError(BudgetServiceError):
    """Raised when a request lacks required context such as the organization."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class MalformedBudgetInputError(BudgetServiceError):
    """Raised under the ``reject`` policy when a line item or expense carries a negative value."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.MALFORMED_INPUT, details)


class DataSourceError(BudgetServiceError):
    """Raised by adapters when the backend cannot be reached or answers with an error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.DATA_SOURCE_UNAVAILABLE, details)


class BudgetLoadError(BudgetServiceError):
    """Raised when either budget input could not be fetched.

    The aggregator is never run on a partial snapshot; callers surface this
    as a "could not load budget" state with a manual refresh.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.BUDGET_LOAD_FAILED, details)
