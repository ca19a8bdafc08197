"""Standardized errors for sdmsmith.

Every error raised on purpose by the library derives from SDMSmithError so
callers can catch the whole family, and carries an optional suggestion that
is appended to the message.
"""

from typing import Any, Optional, Sequence


class SDMSmithError(Exception):
    """Base exception for sdmsmith errors."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize sdmsmith error.

        Args:
            message: Primary error message.
            suggestion: Optional suggestion for fixing the error.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with suggestion if available."""
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class DataValidationError(SDMSmithError):
    """Error raised when input data is malformed or inconsistent."""

    pass


class ParameterError(SDMSmithError):
    """Error raised when parameters are invalid."""

    pass


class ConfigurationError(SDMSmithError):
    """Error raised when options that cannot be combined are given together."""

    def __init__(
        self,
        message: str,
        options: Sequence[str] = (),
        suggestion: Optional[str] = None,
    ):
        super().__init__(message, suggestion=suggestion, details={"options": list(options)})
        self.options = tuple(options)


class InsufficientDataError(SDMSmithError):
    """Error raised when a metric cannot be computed from the data given."""

    def __init__(
        self,
        message: str,
        metric: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message, suggestion=suggestion, details={"metric": metric})
        self.metric = metric


def format_validation_error(
    message: str,
    expected: Optional[str] = None,
    received: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> str:
    """Format a standardized validation error message.

    Args:
        message: Primary error message.
        expected: What was expected (optional).
        received: What was received (optional).
        suggestion: How to fix the error (optional).

    Returns:
        Formatted error message string.
    """
    parts = [message]
    if expected and received:
        parts.append(f"Expected: {expected}, Received: {received}")
    elif expected:
        parts.append(f"Expected: {expected}")
    elif received:
        parts.append(f"Received: {received}")
    if suggestion:
        parts.append(f"Suggestion: {suggestion}")
    return "\n".join(parts)


def format_parameter_error(
    parameter_name: str,
    value: Any,
    valid_values: Optional[list[str]] = None,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> str:
    """Format a standardized parameter error message.

    Args:
        parameter_name: Name of the invalid parameter.
        value: Invalid value that was provided.
        valid_values: List of valid values (optional).
        constraint: Constraint that was violated (optional).
        suggestion: How to fix the error (optional).

    Returns:
        Formatted error message string.
    """
    parts = [f"Invalid value for parameter '{parameter_name}': {value}"]
    if valid_values:
        parts.append(f"Valid values: {', '.join(map(str, valid_values))}")
    if constraint:
        parts.append(f"Constraint: {constraint}")
    if suggestion:
        parts.append(f"Suggestion: {suggestion}")
    return "\n".join(parts)


def raise_validation_error(
    message: str,
    expected: Optional[str] = None,
    received: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized validation error.

    Raises:
        DataValidationError: Always raises this exception.
    """
    error_msg = format_validation_error(message, expected, received)
    raise DataValidationError(error_msg, suggestion=suggestion)


def raise_parameter_error(
    parameter_name: str,
    value: Any,
    valid_values: Optional[list[str]] = None,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized parameter error.

    Raises:
        ParameterError: Always raises this exception.
    """
    error_msg = format_parameter_error(parameter_name, value, valid_values, constraint)
    raise ParameterError(error_msg, suggestion=suggestion)


def raise_conflicting_options(
    first: str, second: str, suggestion: Optional[str] = None
) -> None:
    """Raise a ConfigurationError for two options that exclude each other.

    Raises:
        ConfigurationError: Always raises this exception.
    """
    raise ConfigurationError(
        f"Conflicting options: '{first}' and '{second}' cannot be given together",
        options=(first, second),
        suggestion=suggestion or f"Pass either '{first}' or '{second}', not both",
    )
