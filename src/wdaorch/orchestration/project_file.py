"""
Temporary bundle id changes in the runner's Xcode project file.
"""

import logging
import shutil
from pathlib import Path
from typing import Union

from ..constants import PROJECT_FILE, WDA_RUNNER_BUNDLE_ID
from ..validation import ErrorSeverity, handle_file_error

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".old"


def update_project_file(agent_path: Union[str, Path], new_bundle_id: str) -> None:
    """
    Replace the default runner bundle id in project.pbxproj.

    A backup is written next to the file first so reset_project_file can
    restore it. Failures are logged and never raised.
    """
    project_file_path = Path(agent_path).resolve() / PROJECT_FILE
    try:
        # Assumes the project file is still pristine
        shutil.copyfile(project_file_path, f"{project_file_path}{BACKUP_SUFFIX}")
        content = project_file_path.read_text(encoding="utf-8")
        project_file_path.write_text(content.replace(WDA_RUNNER_BUNDLE_ID, new_bundle_id), encoding="utf-8")
        logger.debug(f"Successfully updated '{project_file_path}' with bundle id '{new_bundle_id}'")
    except OSError as e:
        handle_file_error(
            error=e,
            context=f"updating '{project_file_path}' with bundle id '{new_bundle_id}'. WebDriverAgent may not start",
            severity=ErrorSeverity.WARNING,
            reraise=False,
            logger=logger,
        )


def reset_project_file(agent_path: Union[str, Path]) -> None:
    """Restore project.pbxproj from the backup made by update_project_file."""
    project_file_path = Path(agent_path) / PROJECT_FILE
    backup_path = Path(f"{project_file_path}{BACKUP_SUFFIX}")
    if not backup_path.exists():
        return
    try:
        shutil.move(str(backup_path), str(project_file_path))
        logger.debug(f"Successfully reset '{project_file_path}' with bundle id '{WDA_RUNNER_BUNDLE_ID}'")
    except OSError as e:
        handle_file_error(
            error=e,
            context=(
                f"resetting '{project_file_path}' with bundle id '{WDA_RUNNER_BUNDLE_ID}'. "
                f"WebDriverAgent has been modified and not returned to the original state"
            ),
            severity=ErrorSeverity.WARNING,
            reraise=False,
            logger=logger,
        )
