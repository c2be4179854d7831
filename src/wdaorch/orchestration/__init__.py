"""
Orchestration module for the WebDriverAgent runner.

Components:
- RunnerAgent: Session facade (URL, reuse, launch, quit)
- BuildOrchestrator: xcodebuild command construction and supervision
- ReadinessPoller: Status polling until the runner answers
- ReuseDecisionEngine: Reuse or reinstall of a running runner
- RunDescriptorResolver: Per-device xctestrun file resolution
- ProcessReaper: Escalating process termination
"""

from .agent import RunnerAgent
from .build_runner import BuildOrchestrator
from .bundle import bundle_simulator_runner
from .descriptor import RunDescriptorResolver, get_xctestrun_file_name, set_xctestrun_file
from .process_manager import (
    DEFAULT_TERMINATION_PHASES,
    ProcessReaper,
    TerminationPhase,
    kill_app_using_pattern,
    reset_test_processes,
)
from .project_file import reset_project_file, update_project_file
from .readiness import ReadinessPoller
from .reuse import ReuseDecisionEngine
from .shared_state import TimeoutConstants
from .status_client import StatusClient

__all__ = [
    "RunnerAgent",
    "BuildOrchestrator",
    "ReadinessPoller",
    "ReuseDecisionEngine",
    "RunDescriptorResolver",
    "StatusClient",
    "ProcessReaper",
    "TerminationPhase",
    "DEFAULT_TERMINATION_PHASES",
    "TimeoutConstants",
    "bundle_simulator_runner",
    "get_xctestrun_file_name",
    "kill_app_using_pattern",
    "reset_project_file",
    "reset_test_processes",
    "set_xctestrun_file",
    "update_project_file",
]
