"""Utility modules for sdmsmith."""

from sdmsmith.utils.errors import (
    ConfigurationError,
    DataValidationError,
    InsufficientDataError,
    ParameterError,
    SDMSmithError,
    format_parameter_error,
    format_validation_error,
    raise_conflicting_options,
    raise_parameter_error,
    raise_validation_error,
)

__all__ = [
    "SDMSmithError",
    "DataValidationError",
    "ParameterError",
    "ConfigurationError",
    "InsufficientDataError",
    "format_validation_error",
    "format_parameter_error",
    "raise_validation_error",
    "raise_parameter_error",
    "raise_conflicting_options",
]
