"""
Simulator build of the runner app.
"""

import logging
from pathlib import Path

from ..constants import SDK_SIMULATOR, WDA_RUNNER_APP, WDA_SCHEME
from ..system import exec_command
from ..validation import ConfigurationError

logger = logging.getLogger(__name__)


async def build_simulator_runner(orchestrator) -> None:
    """Build the runner for the simulator SDK without code signing."""
    args = [
        "xcodebuild",
        "-project", str(orchestrator.config.agent_path),
        "-scheme", WDA_SCHEME,
        "-sdk", SDK_SIMULATOR,
        'CODE_SIGN_IDENTITY=""',
        'CODE_SIGNING_REQUIRED="NO"',
        "GCC_TREAT_WARNINGS_AS_ERRORS=0",
    ]
    logger.info(f"Building the runner for {SDK_SIMULATOR}")
    await exec_command(args, cwd=str(orchestrator.config.bootstrap_path))


async def bundle_simulator_runner(orchestrator) -> Path:
    """
    Return the path of the simulator runner app, building it if missing.

    Args:
        orchestrator: A BuildOrchestrator used to locate the derived data.

    Raises:
        ConfigurationError: If the derived data folder cannot be resolved.
        subprocess.CalledProcessError: If the build fails.
    """
    derived_data_path = await orchestrator.retrieve_derived_data_path()
    if not derived_data_path:
        raise ConfigurationError("Cannot retrieve the path to the Xcode derived data folder")

    bundle_path = Path(derived_data_path) / "Build" / "Products" / "Debug-iphonesimulator" / WDA_RUNNER_APP
    if bundle_path.exists():
        return bundle_path

    await build_simulator_runner(orchestrator)
    return bundle_path
