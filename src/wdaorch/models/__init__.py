"""
Data models for the orchestration engine.

Configuration Models:
- DeviceRef: the device a session targets
- BuildConfig: the immutable session configuration

Runtime Models:
- RuntimeState: the mutable per-session record
- LifecycleState / ReuseDecision: state machine and decision enums
- RunDescriptor / InstalledRunnerStatus: resolved artifacts and status data

Collaborators:
- AppleDevice: abstract device layer
"""

from .config import BuildConfig, DeviceRef
from .device import AppleDevice
from .runtime import (
    InstalledRunnerStatus,
    LifecycleState,
    ReuseDecision,
    RunDescriptor,
    RuntimeState,
)

__all__ = [
    # Configuration
    "BuildConfig",
    "DeviceRef",
    # Collaborators
    "AppleDevice",
    # Runtime
    "InstalledRunnerStatus",
    "LifecycleState",
    "ReuseDecision",
    "RunDescriptor",
    "RuntimeState",
]
