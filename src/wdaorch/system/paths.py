"""
Package root discovery and the upgrade timestamp derived from it.
"""

import functools
import logging
import tomllib
from pathlib import Path
from typing import Optional

from ..constants import PACKAGE_NAME
from ..validation import ConfigurationError

logger = logging.getLogger(__name__)

MANIFEST_FILE = "pyproject.toml"


def _manifest_name(manifest_path: Path) -> Optional[str]:
    try:
        with open(manifest_path, "rb") as f:
            return tomllib.load(f).get("project", {}).get("name")
    except (OSError, tomllib.TOMLDecodeError):
        return None


@functools.lru_cache(maxsize=None)
def get_module_root() -> Path:
    """Return the directory holding this package's pyproject.toml.

    The search walks up from this file until the filesystem root.

    Raises:
        ConfigurationError: If no matching manifest is found.
    """
    current_dir = Path(__file__).resolve().parent
    while True:
        manifest_path = current_dir / MANIFEST_FILE
        if manifest_path.is_file() and _manifest_name(manifest_path) == PACKAGE_NAME:
            return current_dir
        if current_dir.parent == current_dir:
            break
        current_dir = current_dir.parent
    raise ConfigurationError(f"Cannot find the root folder of the {PACKAGE_NAME} package")


def get_upgrade_timestamp() -> Optional[int]:
    """Return the package manifest modification time in milliseconds.

    The manifest only changes when the package is upgraded, which makes its
    mtime a coarse version fingerprint. None when it cannot be determined.
    """
    try:
        manifest_path = get_module_root() / MANIFEST_FILE
    except ConfigurationError as e:
        logger.debug(f"Upgrade timestamp unavailable: {e}")
        return None
    if not manifest_path.exists():
        return None
    return int(manifest_path.stat().st_mtime * 1000)
