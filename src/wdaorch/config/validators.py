"""
Configuration validation utilities.

This module converts the raw TOML tables into a validated BuildConfig.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import (
    DEFAULT_SIGNING_ID,
    DEFAULT_WDA_PORT,
    PLATFORM_NAME_IOS,
    PLATFORM_NAME_TVOS,
    WDA_BASE_URL,
    WDA_PROJECT_NAME,
)
from ..models.config import BuildConfig, DeviceRef
from ..orchestration.shared_state import TimeoutConstants
from ..validation import (
    ValidationError,
    validate_bool,
    validate_enum_choice,
    validate_optional_string,
    validate_positive_float,
    validate_positive_integer,
    validate_url,
)

logger = logging.getLogger(__name__)

MAX_PORT = 65535

# Section of config.toml each overridable key belongs to
OVERRIDE_SECTIONS = {
    **{key: "runner" for key in (
        "agent_path", "bootstrap_path", "sdk_version", "use_xctestrun_file", "use_prebuilt",
        "use_simple_build_test", "prebuild_runner", "allow_provisioning_device_registration",
        "show_xcode_log", "derived_data_path", "result_bundle_path", "result_bundle_version",
    )},
    **{key: "network" for key in (
        "base_url", "local_port", "remote_port", "binding_ip", "mjpeg_server_port", "web_driver_agent_url",
    )},
    **{key: "signing" for key in (
        "xcode_config_file", "xcode_org_id", "xcode_signing_id", "keychain_path", "keychain_password",
        "updated_bundle_id", "updated_bundle_id_suffix",
    )},
    **{key: "timeouts" for key in ("launch_timeout_ms", "prebuild_delay_ms")},
}


def _resolve_path(value: Optional[str], base_dir: Path) -> Optional[Path]:
    if value is None:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else (base_dir / path).resolve()


def _optional_port(value: Any, field_name: str) -> Optional[int]:
    if value is None:
        return None
    return validate_positive_integer(value, min_value=1, max_value=MAX_PORT, field_name=field_name)


def validate_device(
    udid: Any,
    is_real_device: Any = False,
    platform_name: Any = PLATFORM_NAME_IOS,
    platform_version: Any = "",
) -> DeviceRef:
    """
    Validate device identity values and create a DeviceRef.

    Raises:
        ValidationError: If the udid is empty or the platform is unknown
    """
    udid = validate_optional_string(udid, field_name="device.udid")
    if not udid:
        raise ValidationError("device.udid must not be empty", field_name="device.udid", value=udid)
    return DeviceRef(
        udid=udid,
        is_real_device=validate_bool(is_real_device, field_name="device.is_real_device"),
        platform_name=validate_enum_choice(
            platform_name,
            valid_choices=[PLATFORM_NAME_IOS, PLATFORM_NAME_TVOS],
            field_name="device.platform_name",
        ),
        platform_version=validate_optional_string(
            platform_version, field_name="device.platform_version"
        ) or "",
    )


def validate_build_config(
    config_data: Dict[str, Any],
    config_dir: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BuildConfig:
    """
    Validate and create a BuildConfig from raw configuration data.

    Args:
        config_data: Parsed config.toml with [runner], [network], [signing]
            and [timeouts] tables
        config_dir: Base directory for relative paths, the working directory
            when omitted
        overrides: Flat values that take precedence over the file, e.g.
            from command-line flags; None values are ignored

    Returns:
        Validated BuildConfig instance

    Raises:
        ValidationError: If validation fails
    """
    base_dir = (config_dir or Path.cwd()).resolve()
    runner = dict(config_data.get("runner", {}))
    network = dict(config_data.get("network", {}))
    signing = dict(config_data.get("signing", {}))
    timeouts = dict(config_data.get("timeouts", {}))

    sections = {"runner": runner, "network": network, "signing": signing, "timeouts": timeouts}
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        section_name = OVERRIDE_SECTIONS.get(key)
        if section_name is None:
            raise ValidationError(f"Unknown configuration override '{key}'", field_name=key, value=value)
        sections[section_name][key] = value

    # Runner
    bootstrap_path = _resolve_path(
        validate_optional_string(runner.get("bootstrap_path"), field_name="runner.bootstrap_path"),
        base_dir,
    ) or base_dir
    agent_path = _resolve_path(
        validate_optional_string(runner.get("agent_path"), field_name="runner.agent_path"),
        base_dir,
    ) or bootstrap_path / WDA_PROJECT_NAME
    derived_data_path = _resolve_path(
        validate_optional_string(runner.get("derived_data_path"), field_name="runner.derived_data_path"),
        base_dir,
    )

    show_xcode_log = runner.get("show_xcode_log")
    if show_xcode_log is not None:
        show_xcode_log = validate_bool(show_xcode_log, field_name="runner.show_xcode_log")

    # Network
    base_url = network.get("base_url") or WDA_BASE_URL
    validate_url(base_url, field_name="network.base_url")
    web_driver_agent_url = network.get("web_driver_agent_url")
    if web_driver_agent_url is not None:
        validate_url(web_driver_agent_url, field_name="network.web_driver_agent_url")

    # Signing
    updated_bundle_id_suffix = signing.get("updated_bundle_id_suffix")
    if updated_bundle_id_suffix is not None and not isinstance(updated_bundle_id_suffix, str):
        raise ValidationError(
            "signing.updated_bundle_id_suffix must be a string",
            field_name="signing.updated_bundle_id_suffix",
            value=updated_bundle_id_suffix,
        )

    build_config = BuildConfig(
        agent_path=agent_path,
        bootstrap_path=bootstrap_path,
        sdk_version=validate_optional_string(runner.get("sdk_version"), field_name="runner.sdk_version") or "",
        use_xctestrun_file=validate_bool(
            runner.get("use_xctestrun_file", False), field_name="runner.use_xctestrun_file"
        ),
        use_prebuilt=validate_bool(runner.get("use_prebuilt", False), field_name="runner.use_prebuilt"),
        use_simple_build_test=validate_bool(
            runner.get("use_simple_build_test", False), field_name="runner.use_simple_build_test"
        ),
        prebuild_runner=validate_bool(runner.get("prebuild_runner", False), field_name="runner.prebuild_runner"),
        allow_provisioning_device_registration=validate_bool(
            runner.get("allow_provisioning_device_registration", False),
            field_name="runner.allow_provisioning_device_registration",
        ),
        show_xcode_log=show_xcode_log,
        derived_data_path=derived_data_path,
        result_bundle_path=validate_optional_string(
            runner.get("result_bundle_path"), field_name="runner.result_bundle_path"
        ),
        result_bundle_version=validate_optional_string(
            runner.get("result_bundle_version"), field_name="runner.result_bundle_version"
        ),
        xcode_config_file=validate_optional_string(
            signing.get("xcode_config_file"), field_name="signing.xcode_config_file"
        ),
        xcode_org_id=validate_optional_string(signing.get("xcode_org_id"), field_name="signing.xcode_org_id"),
        xcode_signing_id=validate_optional_string(
            signing.get("xcode_signing_id"), field_name="signing.xcode_signing_id"
        ) or DEFAULT_SIGNING_ID,
        keychain_path=validate_optional_string(signing.get("keychain_path"), field_name="signing.keychain_path"),
        keychain_password=validate_optional_string(
            signing.get("keychain_password"), field_name="signing.keychain_password"
        ),
        updated_bundle_id=validate_optional_string(
            signing.get("updated_bundle_id"), field_name="signing.updated_bundle_id"
        ),
        updated_bundle_id_suffix=updated_bundle_id_suffix,
        base_url=base_url,
        local_port=validate_positive_integer(
            network.get("local_port", DEFAULT_WDA_PORT), max_value=MAX_PORT, field_name="network.local_port"
        ),
        remote_port=validate_positive_integer(
            network.get("remote_port", DEFAULT_WDA_PORT), max_value=MAX_PORT, field_name="network.remote_port"
        ),
        binding_ip=validate_optional_string(network.get("binding_ip"), field_name="network.binding_ip"),
        mjpeg_server_port=_optional_port(network.get("mjpeg_server_port"), "network.mjpeg_server_port"),
        web_driver_agent_url=web_driver_agent_url,
        launch_timeout_ms=validate_positive_float(
            timeouts.get("launch_timeout_ms", TimeoutConstants.DEFAULT_LAUNCH_TIMEOUT_MS),
            min_value=1.0,
            field_name="timeouts.launch_timeout_ms",
        ),
        prebuild_delay_ms=validate_positive_float(
            timeouts.get("prebuild_delay_ms", TimeoutConstants.PREBUILD_DELAY_MS),
            field_name="timeouts.prebuild_delay_ms",
        ),
    )

    if build_config.use_xctestrun_file and not build_config.sdk_version:
        logger.warning("runner.use_xctestrun_file is enabled without runner.sdk_version")
    return build_config
