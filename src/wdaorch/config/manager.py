"""
Configuration management and singleton pattern.

This module provides the main configuration loading and management interface,
implementing a singleton pattern to ensure configuration is loaded only once.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..models.config import BuildConfig
from ..validation import ErrorSeverity, handle_config_error
from .loader import load_main_config
from .validators import validate_build_config

logger = logging.getLogger(__name__)

# --- Global Singleton for Configuration ---

_CONFIG: Optional[BuildConfig] = None

# Default path of the main configuration file, relative to this script's location.
# The CLI and tests override it with set_config_path().
_CONFIG_FILE_PATH = Path(__file__).parent.parent.parent.parent / "conf" / "config.toml"

# Values applied on top of the file, usually command-line flags.
_CONFIG_OVERRIDES: Dict[str, Any] = {}


def set_config_path(config_path: Path) -> None:
    """
    Set a custom configuration file path.

    The cached configuration is dropped so the next get_config() reloads.
    """
    global _CONFIG_FILE_PATH, _CONFIG
    _CONFIG_FILE_PATH = config_path
    _CONFIG = None
    logger.info(f"Configuration path set to: {config_path}")


def set_config_overrides(overrides: Dict[str, Any]) -> None:
    """Set values that take precedence over the configuration file."""
    global _CONFIG_OVERRIDES, _CONFIG
    _CONFIG_OVERRIDES = {k: v for k, v in overrides.items() if v is not None}
    _CONFIG = None
    logger.debug(f"Configuration overrides set: {sorted(_CONFIG_OVERRIDES)}")


def clear_config_cache() -> None:
    """
    Clear the cached configuration and overrides, forcing a reload on next access.
    """
    global _CONFIG, _CONFIG_OVERRIDES
    _CONFIG = None
    _CONFIG_OVERRIDES = {}
    logger.debug("Configuration cache cleared")


def _load_config(config_path: Path, overrides: Dict[str, Any]) -> BuildConfig:
    """
    Load and validate the configuration file.

    A missing file is not an error: defaults and overrides are used and
    relative paths resolve against the working directory.

    Raises:
        ValidationError: If configuration validation fails
        tomllib.TOMLDecodeError: If the file is malformed
    """
    try:
        if config_path.exists():
            config_data = load_main_config(config_path)
            config_dir = config_path.parent
        else:
            logger.info(f"No configuration file at {config_path}, using defaults")
            config_data = {}
            config_dir = None

        build_config = validate_build_config(config_data, config_dir, overrides)
        logger.info(f"Successfully loaded configuration for agent project {build_config.agent_path}")
        return build_config

    except Exception as e:
        handle_config_error(
            error=e,
            context="processing configuration",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger
        )
        raise


def get_config() -> BuildConfig:
    """
    Get the session configuration, loading it if necessary.

    Returns:
        The singleton BuildConfig instance
    """
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _load_config(_CONFIG_FILE_PATH, _CONFIG_OVERRIDES)
    return _CONFIG


def is_config_loaded() -> bool:
    return _CONFIG is not None
