"""
Runtime data models.

This module contains the data structures that change while a session runs:
the lifecycle state of the build subprocess, resolved run descriptors and the
status reported by a live runner.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class LifecycleState(Enum):
    """States of the xcodebuild subprocess supervised by a BuildOrchestrator."""
    IDLE = "idle"
    SPAWNING = "spawning"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    EXITED = "exited"
    FAILED = "failed"


class ReuseDecision(Enum):
    """Outcome of inspecting a previously installed runner."""
    # Nothing usable is running; build without uninstalling anything.
    REBUILD = "rebuild"
    # A stale or foreign runner was removed; build a fresh one.
    REINSTALL = "reinstall"
    # The running instance is compatible; skip the build.
    REUSE = "reuse"


@dataclass(frozen=True)
class RunDescriptor:
    """
    A per-device xctestrun file and the version key that produced it.
    """

    path: Path
    # The SDK or platform version the file name was derived from.
    version: str


@dataclass
class InstalledRunnerStatus:
    """
    The fields of a /status payload the orchestrator cares about.

    The raw payload is kept as-is for callers.
    """

    raw: Dict[str, Any]
    upgraded_at: Optional[str] = None
    product_bundle_identifier: Optional[str] = None
    ip: Optional[str] = None

    @property
    def has_build_info(self) -> bool:
        return isinstance(self.raw.get("build"), dict)

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional["InstalledRunnerStatus"]:
        """Build a status from a decoded JSON payload, or None for no payload."""
        if not isinstance(payload, dict):
            return None
        build = payload.get("build")
        build = build if isinstance(build, dict) else {}
        ios = payload.get("ios")
        ios = ios if isinstance(ios, dict) else {}

        def _text(value: Any) -> Optional[str]:
            if value is None or value == "":
                return None
            return str(value)

        return cls(
            raw=payload,
            upgraded_at=_text(build.get("upgradedAt")),
            product_bundle_identifier=_text(build.get("productBundleIdentifier")),
            ip=_text(ios.get("ip")),
        )


@dataclass
class RuntimeState:
    """
    Mutable state of one orchestration session.

    BuildConfig stays frozen; everything a session learns or toggles while it
    runs is recorded here and shared by reference between components.
    """

    lifecycle: LifecycleState = LifecycleState.IDLE
    derived_data_path: Optional[Path] = None
    xctestrun_file_path: Optional[Path] = None
    use_prebuilt: bool = False
    did_build_fail: bool = False
    did_process_exit: bool = False
    exit_code: Optional[int] = None
    exit_signal: Optional[str] = None
    # Address reported by the runner in the ios.ip status field.
    agent_url: Optional[str] = None
    # Endpoint of a reusable runner chosen by the reuse engine.
    web_driver_agent_url: Optional[str] = None
    started: bool = False
