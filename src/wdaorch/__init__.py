"""
wdaorch: WebDriverAgent runner orchestration.

This package builds, launches, supervises and reuses the WebDriverAgent test
runner on iOS and tvOS devices and simulators by driving xcodebuild.

The package is organized into specialized modules:
- config: Configuration management and validation
- models: Data structures and type definitions
- validation: Error taxonomy, input validation and error handling
- system: Command execution, process lookup and keychain setup
- orchestration: Build supervision, readiness, reuse and termination
- cli: Command-line interface

Usage:
    From command line:
        wdaorch --udid <UDID> --platform-version 17.4 launch

    Programmatically:
        from wdaorch import RunnerAgent, DeviceRef, get_config
        agent = RunnerAgent(get_config(), DeviceRef(udid="..."))
        status = await agent.launch()
"""

# Main interfaces
from .config import clear_config_cache, get_config, set_config_path
from .orchestration import BuildOrchestrator, RunnerAgent
from .cli import main_cli

# Model classes for external use
from .models import (
    AppleDevice,
    BuildConfig,
    DeviceRef,
    LifecycleState,
    ReuseDecision,
    RuntimeState,
)

# Errors
from .validation import (
    BuildFailureError,
    ConfigurationError,
    DescriptorNotFoundError,
    OrchestrationError,
    StartupTimeoutError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    # Main interfaces
    "get_config",
    "clear_config_cache",
    "set_config_path",
    "RunnerAgent",
    "BuildOrchestrator",
    "main_cli",
    # Models
    "AppleDevice",
    "BuildConfig",
    "DeviceRef",
    "LifecycleState",
    "ReuseDecision",
    "RuntimeState",
    # Errors
    "OrchestrationError",
    "BuildFailureError",
    "StartupTimeoutError",
    "DescriptorNotFoundError",
    "ConfigurationError",
    "ValidationError",
]
