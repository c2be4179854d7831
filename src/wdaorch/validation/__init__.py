"""
Validation and error handling for the wdaorch package.

This module provides the error taxonomy of the orchestration engine, input
validation for configuration values and consistent error reporting.
"""

from .exceptions import (
    BuildFailureError,
    ConfigurationError,
    DerivedPathUnresolvedError,
    DescriptorNotFoundError,
    ErrorSeverity,
    OrchestrationError,
    ProcessTerminationError,
    StartupTimeoutError,
    ValidationError,
    handle_cli_error,
    handle_config_error,
    handle_error,
    handle_file_error,
)
from .validators import (
    validate_bool,
    validate_enum_choice,
    validate_optional_string,
    validate_positive_float,
    validate_positive_integer,
    validate_url,
)

__all__ = [
    # Errors
    "ErrorSeverity",
    "ValidationError",
    "OrchestrationError",
    "BuildFailureError",
    "StartupTimeoutError",
    "DescriptorNotFoundError",
    "DerivedPathUnresolvedError",
    "ProcessTerminationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "handle_config_error",
    "handle_file_error",
    "handle_cli_error",
    # Validators
    "validate_bool",
    "validate_enum_choice",
    "validate_optional_string",
    "validate_positive_float",
    "validate_positive_integer",
    "validate_url",
]
