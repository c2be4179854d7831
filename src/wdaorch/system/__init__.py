"""
System interaction utilities.

- Command execution for xcodebuild, security, simctl and lsof
- Process lookup by command line and by listening port
- Keychain preparation for real-device signing
- Package root discovery and upgrade fingerprinting
- Simulator app lookup and removal
"""

from .commands import build_child_environment, exec_command, run_command
from .paths import get_module_root, get_upgrade_timestamp
from .processes import get_pids_listening_on_port, get_pids_using_pattern
from .security import set_real_device_security

__all__ = [
    # Commands
    "build_child_environment",
    "exec_command",
    "run_command",
    # Paths
    "get_module_root",
    "get_upgrade_timestamp",
    # Processes
    "get_pids_listening_on_port",
    "get_pids_using_pattern",
    # Security
    "set_real_device_security",
]
