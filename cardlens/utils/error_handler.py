"""
Centralized error handling for the card analysis pipeline.

This module provides the exception hierarchy shared by every stage and the
helpers used to log failures with context or absorb best-effort failures.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass


class CardLensError(Exception):
    """Base exception class for all cardlens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CardLensError):
    """Raised when there are configuration or environment variable issues."""
    pass


class InvalidInputError(CardLensError):
    """Raised when a caller supplies malformed identifiers, refs or values."""
    pass


class TransientExternalError(CardLensError):
    """Raised for timeouts, throttling and connection failures of collaborators."""
    pass


class StageFailed(CardLensError):
    """Raised when a stage exhausts its retry budget or fails terminally."""

    def __init__(self, stage: str, attempts: int, message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message or f"Stage '{stage}' failed after {attempts} attempt(s)",
            details,
        )
        self.stage = stage
        self.attempts = attempts


class ContentRejected(CardLensError):
    """Raised when an image is not a trading card or is inappropriate."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, details)
        self.reason = reason


class SchemaValidationError(CardLensError):
    """Raised when reasoning output or a feature payload violates its schema."""
    pass


class ReasoningUnavailable(CardLensError):
    """Raised when no reasoning capability is configured."""
    pass


class ConcurrencyConflict(CardLensError):
    """Raised when a conditional write loses a race."""
    pass


class NotFoundError(CardLensError):
    """Raised when a record is missing, deleted or owned by someone else."""
    pass


class RunAlreadyActive(CardLensError):
    """Raised when a run is requested for a card that already has one in flight."""
    pass


class InvalidTransition(CardLensError):
    """Raised when the pipeline state machine receives an illegal event."""
    pass


class PricingError(CardLensError):
    """Raised when pricing data extraction or processing fails."""
    pass


class CacheError(CardLensError):
    """Raised when cache operations fail."""
    pass


class PersistenceError(CardLensError):
    """Raised when the card store cannot complete an operation."""
    pass


@dataclass
class ErrorContext:
    """Context information for error reporting."""
    operation: str
    module: str
    function: str
    input_data: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None


def handle_error(
    error: Exception,
    context: ErrorContext,
    logger,
    reraise: bool = True,
    default_return: Any = None
) -> Any:
    """
    Centralized error handling with logging and optional recovery.

    Args:
        error: The exception that occurred
        context: Context information about where the error occurred
        logger: structlog logger used for error reporting
        reraise: Whether to re-raise the exception after logging
        default_return: Value to return if not re-raising

    Returns:
        The default_return value if not re-raising

    Raises:
        The original exception if reraise is True
    """
    error_msg = f"Error in {context.module}.{context.function} during {context.operation}"

    if isinstance(error, CardLensError):
        error_msg += f": {error.message}"
    else:
        error_msg += f": {str(error)}"

    logger.error(
        error_msg,
        error_type=type(error).__name__,
        operation=context.operation,
        error_module=context.module,
        error_function=context.function,
        input_data=context.input_data,
        details=getattr(error, "details", None),
        exc_info=True,
    )

    if reraise:
        raise error

    return default_return


def safe_execute(
    func,
    *args,
    context: ErrorContext,
    logger,
    default_return: Any = None,
    **kwargs
) -> Any:
    """
    Safely execute a function with error handling and logging.

    Args:
        func: Function to execute
        context: Error context information
        logger: Logger instance
        default_return: Value to return on error
        *args, **kwargs: Arguments to pass to the function

    Returns:
        Function result or default_return on error
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        return handle_error(e, context, logger, reraise=False, default_return=default_return)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str], context: ErrorContext) -> None:
    """
    Validate that required fields are present in a payload.

    Raises:
        SchemaValidationError: If required fields are missing
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None]

    if missing_fields:
        raise SchemaValidationError(
            f"Missing required fields: {missing_fields}",
            details={
                "missing_fields": missing_fields,
                "available_fields": list(data.keys()),
                "operation": context.operation,
            }
        )
