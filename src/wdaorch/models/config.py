"""
Configuration data models.

This module contains the immutable values that describe one orchestration
session: the target device and the resolved build configuration.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..constants import DEFAULT_SIGNING_ID, DEFAULT_WDA_PORT, WDA_BASE_URL


@dataclass(frozen=True)
class DeviceRef:
    """
    Identity of the device a session targets, as reported by the device layer.
    """

    # Unique device identifier (UDID).
    udid: str
    # True for physical hardware, False for simulators.
    is_real_device: bool = False
    # Platform family, e.g. "iOS" or "tvOS".
    platform_name: str = "iOS"
    # Platform version string, e.g. "17.4".
    platform_version: str = ""


@dataclass(frozen=True)
class BuildConfig:
    """
    Resolved configuration for one orchestration session.

    Built once when the session starts and never mutated afterwards. Values
    that change while the session runs live in RuntimeState.
    """

    # --- Project locations ---
    # Path to the WebDriverAgent.xcodeproj directory.
    agent_path: Path
    # Directory xcodebuild runs in and where xctestrun files live.
    bootstrap_path: Path

    # --- SDK and descriptor mode ---
    sdk_version: str = ""
    use_xctestrun_file: bool = False

    # --- Build behaviour ---
    use_prebuilt: bool = False
    use_simple_build_test: bool = False
    prebuild_runner: bool = False
    allow_provisioning_device_registration: bool = False
    # None logs xcodebuild output only after an error line was seen.
    show_xcode_log: Optional[bool] = None
    derived_data_path: Optional[Path] = None
    result_bundle_path: Optional[str] = None
    result_bundle_version: Optional[str] = None

    # --- Signing (real devices only) ---
    xcode_config_file: Optional[str] = None
    xcode_org_id: Optional[str] = None
    xcode_signing_id: str = DEFAULT_SIGNING_ID
    keychain_path: Optional[str] = None
    keychain_password: Optional[str] = None
    updated_bundle_id: Optional[str] = None
    # None applies the default ".xctrunner" suffix; "" disables it.
    updated_bundle_id_suffix: Optional[str] = None

    # --- Networking ---
    base_url: str = WDA_BASE_URL
    local_port: int = DEFAULT_WDA_PORT
    remote_port: int = DEFAULT_WDA_PORT
    binding_ip: Optional[str] = None
    mjpeg_server_port: Optional[int] = None
    # An already running runner; skips building entirely.
    web_driver_agent_url: Optional[str] = None

    # --- Timeouts (milliseconds) ---
    launch_timeout_ms: float = 60000.0
    prebuild_delay_ms: float = 0.0
