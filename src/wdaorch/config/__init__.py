"""
Configuration management for the wdaorch package.

This module provides a clean interface for loading, validating, and accessing
configuration data from TOML files with singleton pattern management.
"""

# Main configuration interface
from .manager import (
    clear_config_cache,
    get_config,
    is_config_loaded,
    set_config_overrides,
    set_config_path,
)

# For advanced usage - direct access to loaders and validators
from .loader import load_main_config, load_toml_file
from .validators import validate_build_config, validate_device

__all__ = [
    # Main interface
    "get_config",
    "set_config_path",
    "set_config_overrides",
    "clear_config_cache",
    "is_config_loaded",
    # Advanced interface
    "load_toml_file",
    "load_main_config",
    "validate_build_config",
    "validate_device",
]
