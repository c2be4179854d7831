"""
Exception taxonomy and error handling helpers.

This module defines the errors raised by the orchestration engine and a small
set of helpers that log an error with context and optionally re-raise it, so
fatal and non-fatal conditions are reported the same way everywhere.
"""

import logging
import sys
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for error handling."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ValidationError(Exception):
    """
    Exception raised when configuration validation fails.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.severity = severity


class OrchestrationError(Exception):
    """Base class for all runner orchestration failures."""


class BuildFailureError(OrchestrationError):
    """xcodebuild exited with a nonzero code or printed a low-level error."""

    def __init__(self, message: str, code: Optional[int] = None,
                 signal_name: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.signal_name = signal_name


class StartupTimeoutError(OrchestrationError):
    """The runner status endpoint did not answer within the launch timeout."""

    def __init__(self, message: str, timeout_ms: Optional[float] = None):
        super().__init__(message)
        self.timeout_ms = timeout_ms


class DescriptorNotFoundError(OrchestrationError):
    """Neither a per-device xctestrun file nor a template could be found."""

    def __init__(self, message: str, expected_path: Optional[str] = None):
        super().__init__(message)
        self.expected_path = expected_path


class DerivedPathUnresolvedError(OrchestrationError):
    """The derived data path could not be queried or parsed."""


class ProcessTerminationError(OrchestrationError):
    """A process could not be signalled for a reason other than being gone."""

    def __init__(self, message: str, pid: Optional[int] = None):
        super().__init__(message)
        self.pid = pid


class ConfigurationError(OrchestrationError):
    """The session cannot be configured (bad url, missing module root, ...)."""


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Handle errors with consistent logging and optional re-raising.

    Args:
        error: The exception that occurred
        context: Context description of where the error occurred
        severity: Severity level for logging
        reraise: Whether to re-raise the exception after logging
        logger: Logger instance to use (defaults to module logger)
    """
    effective_logger = logger or globals()['logger']

    error_msg = f"Error in {context}: {error}"

    if isinstance(severity, str):
        severity_str = severity.lower()
    else:
        severity_str = severity.value

    if severity_str == "debug":
        effective_logger.debug(error_msg, exc_info=True)
    elif severity_str == "info":
        effective_logger.info(error_msg)
    elif severity_str == "warning":
        effective_logger.warning(error_msg)
    elif severity_str == "error":
        effective_logger.error(error_msg)
    elif severity_str == "critical":
        effective_logger.critical(error_msg, exc_info=True)

    if reraise:
        raise error


def handle_config_error(error: Exception, context: str, **kwargs) -> None:
    """Handle configuration-related errors."""
    handle_error(error, f"config {context}", **kwargs)


def handle_file_error(error: Exception, context: str, **kwargs) -> None:
    """Handle file-related errors."""
    handle_error(error, f"file {context}", **kwargs)


def handle_cli_error(error: Exception, context: str, **kwargs) -> None:
    """Log a CLI error and exit the interpreter with the given code."""
    exit_code = kwargs.pop('exit_code', 1)
    include_traceback = kwargs.pop('include_traceback', False)
    severity = kwargs.pop('severity', ErrorSeverity.CRITICAL if include_traceback else ErrorSeverity.ERROR)

    handle_error(error, f"CLI {context}", severity=severity, reraise=False, **kwargs)

    sys.exit(exit_code)
