"""
Custom exception classes for the relationship assessment application.

Provides structured error handling with user-friendly messages and proper
error categorization for scoring, licensing and storage failures.
"""

from __future__ import annotations

from typing import Any


class AssessmentAppError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        """Provide a user-friendly version of the error message."""
        return "An unexpected error occurred. Please try again."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(AssessmentAppError):
    """Raised when input validation fails."""

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {field.replace('_', ' ')}: {message}",
        )

    def _get_default_user_message(self) -> str:
        return f"Please check your input for {self.field.replace('_', ' ')} and try again."


class MultipleValidationError(AssessmentAppError):
    """Raised when multiple validation errors occur."""

    def __init__(self, errors: list[ValidationError]):
        self.validation_errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(
            message=f"Multiple validation errors: {'; '.join(messages)}",
            details={
                "errors": [
                    {"field": e.field, "message": e.message, "value": e.value} for e in errors
                ]
            },
            user_message="Please correct the following errors and try again.",
        )


class InvalidAnswerError(ValidationError):
    """Raised when an answer falls outside the question bank's scale."""

    def __init__(self, value: Any, scale_min: int, scale_max: int, question_id: str | None = None):
        self.question_id = question_id
        self.scale_min = scale_min
        self.scale_max = scale_max
        super().__init__(
            field="answer",
            message=f"must be an integer between {scale_min} and {scale_max}",
            value=value,
            details={
                "question_id": question_id,
                "value": value,
                "min": scale_min,
                "max": scale_max,
            },
        )

    def _get_default_user_message(self) -> str:
        return f"Please pick a value between {self.scale_min} and {self.scale_max}."


class IncompleteDataError(AssessmentAppError):
    """Describes a scoring request made before every question was answered.

    The scoring engine never raises this; it is attached to the scoring outcome
    so callers can report the missing question ids.
    """

    def __init__(self, missing: list[str], invalid: list[str] | None = None):
        self.missing = list(missing)
        self.invalid = list(invalid or [])
        super().__init__(
            message=(
                f"Assessment incomplete: {len(self.missing)} unanswered, "
                f"{len(self.invalid)} out of range"
            ),
            details={"missing": self.missing, "invalid": self.invalid},
            user_message="Please answer every question before viewing your results.",
        )


class NotFoundError(AssessmentAppError):
    """Raised when a requested record or blob does not exist."""

    def __init__(self, message: str, resource: str | None = None):
        self.resource = resource
        super().__init__(message=message, details={"resource": resource})

    def _get_default_user_message(self) -> str:
        return "The requested item could not be found."


class LicenseKeyNotFoundError(NotFoundError):
    """Raised when a license key is not present in the pool."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(message=f"License key {key} not found", resource="license_key")

    def _get_default_user_message(self) -> str:
        return "invalid key"


class StateConflictError(AssessmentAppError):
    """Raised when a license key is in a state that forbids the operation."""

    def __init__(self, message: str, key: str | None = None, details: dict[str, Any] | None = None):
        self.key = key
        super().__init__(message=message, details=details or {"key": key})

    def _get_default_user_message(self) -> str:
        return "This license key cannot be used right now."


class LicenseExpiredError(StateConflictError):
    """Raised when an activated key is past its expiry date."""

    def __init__(self, key: str, expiry_date: Any = None):
        self.expiry_date = expiry_date
        super().__init__(
            message=f"License key {key} expired at {expiry_date}",
            key=key,
            details={"key": key, "expiry_date": str(expiry_date) if expiry_date else None},
        )

    def _get_default_user_message(self) -> str:
        return "expired"


class DeviceLimitError(StateConflictError):
    """Raised when a key already has its maximum number of bound devices."""

    def __init__(self, key: str, max_devices: int):
        self.max_devices = max_devices
        super().__init__(
            message=f"License key {key} already bound to {max_devices} device(s)",
            key=key,
            details={"key": key, "max_devices": max_devices},
        )

    def _get_default_user_message(self) -> str:
        return "device limit reached"


class PersistenceError(AssessmentAppError):
    """Raised when the persistent store cannot be read or written."""

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Store error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message="Changes could not be synchronised. They are kept for this session.",
        )


class ConfigurationError(AssessmentAppError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            details=details or {"config_key": config_key},
            user_message="Configuration error. Please check your settings.",
        )


def handle_store_error(e: Exception, operation: str = "store operation") -> PersistenceError:
    """
    Convert low-level storage exceptions into a PersistenceError.

    Args:
        e: The original exception
        operation: Description of the operation that failed

    Returns:
        PersistenceError describing the failure

    Example:
        >>> try:
        ...     path.write_text(payload)
        >>> except OSError as e:
        ...     raise handle_store_error(e, "write keys.json") from e
    """
    if isinstance(e, PersistenceError):
        return e
    error_msg = str(e).lower()
    details: dict[str, Any] = {"operation": operation, "error_type": type(e).__name__}
    if "timeout" in error_msg or "timed out" in error_msg:
        details["reason"] = "timeout"
    elif "connect" in error_msg or "connection" in error_msg:
        details["reason"] = "connection"
    elif "permission" in error_msg or "read-only" in error_msg:
        details["reason"] = "permission"
    return PersistenceError(str(e), operation=operation, details=details)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> error = DeviceLimitError("ABCD", 2)
        >>> create_user_friendly_error_message(error)
        'device limit reached'
    """
    if isinstance(error, AssessmentAppError):
        return error.user_message

    fallbacks: tuple[tuple[type[Exception], str], ...] = (
        (KeyError, "Some answers or key details are missing. Please check your input."),
        (ValueError, "Some answers or key details look wrong. Please check them and try again."),
        (TypeError, "Answers must be whole numbers on the question scale."),
        (OSError, "Saved data could not be reached. Your progress is kept for this session."),
    )
    for exc_type, message in fallbacks:
        if isinstance(error, exc_type):
            return message
    return "An unexpected error occurred. Please try again or contact support."


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Example:
        >>> details = log_error_details(PersistenceError("refused", "save"), {"pool": 3})
        >>> details["error_type"]
        'PersistenceError'
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, AssessmentAppError):
        details.update({"user_message": error.user_message, "error_details": error.details})

    return details
