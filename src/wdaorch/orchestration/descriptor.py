"""
Run descriptor (xctestrun file) resolution.

xcodebuild can launch an already built test bundle from an .xctestrun file
instead of rebuilding the project. Each device needs its own copy because the
runner port is written into the file, so shared templates produced by the
build are copied to a per-device name on first use.
"""

import logging
import platform
import plistlib
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..constants import XCTESTRUN_EXTENSION, is_tvos
from ..models import DeviceRef, RunDescriptor
from ..validation import DescriptorNotFoundError

logger = logging.getLogger(__name__)


def host_architecture() -> str:
    """Return the simulator slice name for the host processor."""
    return "arm64" if platform.machine().lower() in ("arm64", "aarch64") else "x86_64"


def get_xctestrun_file_name(device: DeviceRef, version: str) -> str:
    """
    Return the name of the template xctestrun file produced by the build.

    Examples:
        WebDriverAgentRunner_iphoneos17.2-arm64.xctestrun (real iPhone)
        WebDriverAgentRunner_tvOS_appletvsimulator17.2-x86_64.xctestrun
    """
    if device.is_real_device:
        arch_suffix = f"os{version}-arm64"
    else:
        arch_suffix = f"simulator{version}-{host_architecture()}"
    family = "tvOS_appletv" if is_tvos(device.platform_name) else "iphone"
    return f"WebDriverAgentRunner_{family}{arch_suffix}{XCTESTRUN_EXTENSION}"


class RunDescriptorResolver:
    """
    Locates or derives the per-device xctestrun file.

    Lookup order, first match wins:
    1. <base>/<udid>_<sdkVersion>.xctestrun
    2. <base>/<udid>_<platformVersion>.xctestrun
    3. the SDK version template, copied to the path of (1)
    4. the platform version template, copied to the path of (2)
    """

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path).resolve()
        self._resolved: Dict[tuple, RunDescriptor] = {}

    def device_file_path(self, device: DeviceRef, version: str) -> Path:
        return self.base_path / f"{device.udid}_{version}{XCTESTRUN_EXTENSION}"

    def template_path(self, device: DeviceRef, version: str) -> Path:
        return self.base_path / get_xctestrun_file_name(device, version)

    def resolve(self, device: DeviceRef, sdk_version: str) -> RunDescriptor:
        """
        Return a usable descriptor for the device.

        Descriptors are remembered per device and version pair for the
        lifetime of the resolver.

        Raises:
            DescriptorNotFoundError: If no per-device file or template exists.
        """
        key = (device.udid, sdk_version, device.platform_version)
        if key in self._resolved:
            return self._resolved[key]

        candidates = [(sdk_version, self.device_file_path(device, sdk_version))]
        candidates.append(
            (device.platform_version, self.device_file_path(device, device.platform_version))
        )

        for version, file_path in candidates:
            if file_path.exists():
                logger.info(f"Using '{file_path}' as xctestrun file")
                return self._remember(key, RunDescriptor(path=file_path, version=version))

        for version, file_path in candidates:
            template = self.template_path(device, version)
            if template.exists():
                # First run for this device: derive its own copy from the template
                shutil.copyfile(template, file_path)
                logger.info(f"Using '{file_path}' as xctestrun file copied by '{template}'")
                return self._remember(key, RunDescriptor(path=file_path, version=version))

        expected = self.template_path(device, sdk_version)
        raise DescriptorNotFoundError(
            f"If you are using 'use_xctestrun_file' then you need to have "
            f"a xctestrun file (expected: '{expected}')",
            expected_path=str(expected),
        )

    def _remember(self, key: tuple, descriptor: RunDescriptor) -> RunDescriptor:
        self._resolved[key] = descriptor
        return descriptor


def get_additional_run_content(
    platform_name: str,
    remote_port: Union[int, str],
    binding_ip: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Return the runner section that gets merged into an xctestrun file.

    USE_PORT must be a string in the property list.
    """
    runner = "WebDriverAgentRunner_tvOS" if is_tvos(platform_name) else "WebDriverAgentRunner"
    env: Dict[str, str] = {"USE_PORT": str(remote_port)}
    if binding_ip:
        env["USE_IP"] = binding_ip
    return {runner: {"EnvironmentVariables": env}}


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge source into target in place and return target."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def update_xctestrun_file(
    descriptor: RunDescriptor,
    platform_name: str,
    remote_port: Union[int, str],
    binding_ip: Optional[str] = None,
) -> Path:
    """Write the runner port and bind address into a per-device xctestrun file."""
    with open(descriptor.path, "rb") as f:
        content = plistlib.load(f)
    deep_merge(content, get_additional_run_content(platform_name, remote_port, binding_ip))
    with open(descriptor.path, "wb") as f:
        plistlib.dump(content, f)
    return descriptor.path


def set_xctestrun_file(
    device: DeviceRef,
    sdk_version: str,
    bootstrap_path: Union[str, Path],
    remote_port: Union[int, str],
    binding_ip: Optional[str] = None,
    resolver: Optional[RunDescriptorResolver] = None,
) -> Path:
    """
    Resolve the per-device xctestrun file and write the network settings in.

    Returns:
        Path of the prepared xctestrun file.
    """
    resolver = resolver or RunDescriptorResolver(bootstrap_path)
    descriptor = resolver.resolve(device, sdk_version)
    return update_xctestrun_file(descriptor, device.platform_name, remote_port, binding_ip)
