"""
Supervision of the xcodebuild process that builds and runs WebDriverAgent.

This module provides BuildOrchestrator, which constructs the xcodebuild
command line, spawns it, watches its output for low-level errors and races
its exit against the runner's readiness check.
"""

import asyncio
import logging
import os
import re
import signal
import time
from pathlib import Path
from typing import Any, List, Optional

from ..constants import (
    LIB_SCHEME_IOS,
    LIB_SCHEME_TV,
    REAL_DEVICES_CONFIG_DOCS_LINK,
    RUNNER_SCHEME_IOS,
    RUNNER_SCHEME_TV,
    WDA_RUNNER_BUNDLE_ID,
    is_tvos,
)
from ..models import BuildConfig, DeviceRef, InstalledRunnerStatus, LifecycleState, RuntimeState
from ..system import (
    build_child_environment,
    exec_command,
    get_upgrade_timestamp,
    run_command,
    set_real_device_security,
)
from ..validation import (
    BuildFailureError,
    DerivedPathUnresolvedError,
    ErrorSeverity,
    OrchestrationError,
    StartupTimeoutError,
    handle_error,
)
from .descriptor import RunDescriptorResolver, set_xctestrun_file
from .process_manager import ProcessReaper
from .readiness import ReadinessPoller

logger = logging.getLogger(__name__)
xcode_log = logging.getLogger("Xcode")

IGNORED_ERRORS = [
    "Error writing attachment data to file",
    "Error copying testing attachment",
    "Failed to remove screenshot at path",
]
IGNORED_ERRORS_PATTERN = re.compile("(" + "|".join(re.escape(e) for e in IGNORED_ERRORS) + ")")
ERROR_MARKER = "Error Domain="
BUILD_DIR_PATTERN = re.compile(r"^\s*BUILD_DIR\s+=\s+(/.*)", re.MULTILINE)
DEPLOYMENT_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)")

# xcodebuild can print very long lines
STREAM_LIMIT = 1024 * 1024


class BuildOrchestrator:
    """
    Spawns and supervises one xcodebuild process at a time.

    The configuration is immutable; everything that changes during the
    session, including the cached derived data path and the lifecycle
    state, is kept in the shared RuntimeState.
    """

    def __init__(
        self,
        device: DeviceRef,
        config: BuildConfig,
        state: Optional[RuntimeState] = None,
        status_client=None,
        reaper: Optional[ProcessReaper] = None,
    ):
        """
        Args:
            device: The device to build for
            config: Session configuration
            state: Shared mutable session state, created when omitted
            status_client: Client used to poll the runner's /status endpoint
            reaper: Process terminator used by quit()
        """
        self.device = device
        self.config = config
        self.state = state or RuntimeState(
            use_prebuilt=config.use_prebuilt,
            derived_data_path=config.derived_data_path,
        )
        self.status_client = status_client
        self.reaper = reaper or ProcessReaper()

        self.process: Optional[asyncio.subprocess.Process] = None
        self._exit_task: Optional[asyncio.Task] = None
        self._stream_tasks: List[asyncio.Task] = []
        self._derived_data_path_task: Optional[asyncio.Future] = None
        self._log_xcode_output = bool(config.show_xcode_log)

        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    @property
    def runner_scheme(self) -> str:
        return RUNNER_SCHEME_TV if is_tvos(self.device.platform_name) else RUNNER_SCHEME_IOS

    @property
    def lib_scheme(self) -> str:
        return LIB_SCHEME_TV if is_tvos(self.device.platform_name) else LIB_SCHEME_IOS

    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def init(self, status_client=None, resolver: Optional[RunDescriptorResolver] = None) -> None:
        """
        Attach the status client and prepare the xctestrun file if needed.

        Raises:
            DescriptorNotFoundError: In descriptor mode without a usable file.
        """
        if status_client is not None:
            self.status_client = status_client

        if self.config.use_xctestrun_file and self.state.xctestrun_file_path is None:
            self.state.xctestrun_file_path = set_xctestrun_file(
                device=self.device,
                sdk_version=self.config.sdk_version,
                bootstrap_path=self.config.bootstrap_path,
                remote_port=self.config.remote_port,
                binding_ip=self.config.binding_ip,
                resolver=resolver,
            )

    async def retrieve_derived_data_path(self) -> Optional[Path]:
        """
        Return the root folder of the build products.

        Concurrent callers share one xcodebuild query. Failures are logged
        and reported as None.
        """
        if self.state.derived_data_path:
            return self.state.derived_data_path

        if self._derived_data_path_task is None:
            self._derived_data_path_task = asyncio.ensure_future(self._query_derived_data_path())
        return await asyncio.shield(self._derived_data_path_task)

    async def _query_derived_data_path(self) -> Optional[Path]:
        return_code, stdout, stderr = await run_command(
            ["xcodebuild", "-project", str(self.config.agent_path), "-showBuildSettings"]
        )
        if return_code != 0:
            handle_error(
                error=DerivedPathUnresolvedError(
                    f"Cannot retrieve WDA build settings. Original error: {stderr.strip() or return_code}"
                ),
                context="retrieving the derived data path",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
            return None

        match = BUILD_DIR_PATTERN.search(stdout)
        if not match:
            handle_error(
                error=DerivedPathUnresolvedError(f"Cannot parse WDA build dir from {stdout[:300]}"),
                context="retrieving the derived data path",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
            return None

        build_dir = match.group(1).strip()
        logger.debug(f"Parsed BUILD_DIR configuration value: '{build_dir}'")
        # The derived data root is two levels above the build dir
        self.state.derived_data_path = Path(os.path.normpath(build_dir)).parent.parent
        logger.debug(f"Got derived data root: '{self.state.derived_data_path}'")
        return self.state.derived_data_path

    async def prebuild(self) -> None:
        """Build the runner without testing it, so start() can skip the build."""
        logger.debug("Pre-building WDA before launching test")
        self.state.use_prebuilt = True
        await self.start(build_only=True)

        if self.config.prebuild_delay_ms > 0:
            await asyncio.sleep(self.config.prebuild_delay_ms / 1000)

    async def clean_project(self) -> None:
        """
        Clean the library and runner schemes.

        Raises:
            subprocess.CalledProcessError: If xcodebuild clean fails.
        """
        for scheme in (self.lib_scheme, self.runner_scheme):
            logger.debug(
                f"Cleaning the project scheme '{scheme}' to make sure there are no "
                f"leftovers from previous installs"
            )
            await exec_command(
                ["xcodebuild", "clean", "-project", str(self.config.agent_path), "-scheme", scheme]
            )

    async def start(self, build_only: bool = False) -> Optional[Any]:
        """
        Start xcodebuild to build and/or test WebDriverAgent.

        Args:
            build_only: Only build, and finish when xcodebuild exits.

        Returns:
            The runner status payload when testing, None for build-only runs.

        Raises:
            BuildFailureError: If xcodebuild fails or reports an error.
            StartupTimeoutError: If the runner never answers /status.
            OrchestrationError: If xcodebuild cannot be spawned.
        """
        if self.is_running():
            raise OrchestrationError("xcodebuild is already running for this session")

        self.state.lifecycle = LifecycleState.SPAWNING
        self.start_time = time.monotonic()
        self.end_time = None
        try:
            self.process = await self._create_subprocess(build_only)
        except Exception as e:
            self.state.lifecycle = LifecycleState.FAILED
            raise OrchestrationError(f"Unable to start WebDriverAgent: {e}") from e

        self._stream_tasks = [
            asyncio.create_task(self._read_stream(stream))
            for stream in (self.process.stderr, self.process.stdout)
        ]
        self._exit_task = asyncio.create_task(self._watch_exit())

        if build_only:
            # the process exit is our finish
            await self._exit_task
            self.state.lifecycle = LifecycleState.EXITED
            return None

        self.state.lifecycle = LifecycleState.AWAITING_READY
        poller = ReadinessPoller(
            self.status_client,
            has_process_exited=lambda: self.state.did_process_exit,
        )
        ready_task = asyncio.create_task(poller.wait_for_start(self.config.launch_timeout_ms))

        await asyncio.wait({self._exit_task, ready_task}, return_when=asyncio.FIRST_COMPLETED)
        if self._exit_task.done() and self._exit_task.exception() is not None:
            await self._cancel_task(ready_task)
            raise self._exit_task.exception()

        try:
            status = await ready_task
        except StartupTimeoutError as e:
            self.state.lifecycle = LifecycleState.FAILED
            # xcodebuild runs in its own session and would outlive us
            await self.quit()
            handle_error(
                error=e,
                context="waiting for WebDriverAgent to start",
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger,
            )

        # A failed exit is authoritative even if a status arrived just before
        if self._exit_task.done() and self._exit_task.exception() is not None:
            raise self._exit_task.exception()

        runner_status = InstalledRunnerStatus.from_payload(status)
        if runner_status is not None and runner_status.ip:
            self.state.agent_url = runner_status.ip
        self.state.lifecycle = LifecycleState.READY if status is not None else LifecycleState.EXITED
        return status

    async def wait_for_exit(self) -> Optional[int]:
        """Wait for the running xcodebuild process and return its exit code."""
        if self._exit_task is None:
            return None
        return await asyncio.shield(self._exit_task)

    async def quit(self) -> None:
        """Stop xcodebuild and release the watcher tasks."""
        await self.reaper.terminate(self.process, "xcodebuild")
        for task in [self._exit_task, *self._stream_tasks]:
            await self._cancel_task(task)
        self._stream_tasks = []

    def get_command(self, build_only: bool = False) -> List[str]:
        """Assemble the xcodebuild argument list for the current settings."""
        config = self.config
        args = ["xcodebuild"]

        build_cmd, test_cmd = (
            ("build", "test") if config.use_simple_build_test
            else ("build-for-testing", "test-without-building")
        )
        if build_only:
            args.append(build_cmd)
        elif self.state.use_prebuilt or config.use_xctestrun_file:
            args.append(test_cmd)
        else:
            args.extend([build_cmd, test_cmd])

        if config.allow_provisioning_device_registration:
            # -allowProvisioningDeviceRegistration needs -allowProvisioningUpdates to take effect
            args.extend(["-allowProvisioningUpdates", "-allowProvisioningDeviceRegistration"])

        if config.result_bundle_path:
            args.extend(["-resultBundlePath", config.result_bundle_path])
        if config.result_bundle_version:
            args.extend(["-resultBundleVersion", config.result_bundle_version])

        if config.use_xctestrun_file and self.state.xctestrun_file_path:
            args.extend(["-xctestrun", str(self.state.xctestrun_file_path)])
        else:
            args.extend(["-project", str(config.agent_path), "-scheme", self.runner_scheme])
            if self.state.derived_data_path:
                args.extend(["-derivedDataPath", str(self.state.derived_data_path)])
        args.extend(["-destination", f"id={self.device.udid}"])

        version_match = DEPLOYMENT_VERSION_PATTERN.match(self.device.platform_version or "")
        if version_match:
            prefix = "TV" if is_tvos(self.device.platform_name) else "IPHONE"
            args.append(f"{prefix}OS_DEPLOYMENT_TARGET={version_match.group(1)}.{version_match.group(2)}")
        else:
            logger.warning(
                f"Cannot parse major and minor version numbers from platform version "
                f"'{self.device.platform_version}'. Will build for the default platform instead"
            )

        if self.device.is_real_device:
            if config.xcode_config_file:
                logger.debug(f"Using Xcode configuration file: '{config.xcode_config_file}'")
                args.extend(["-xcconfig", config.xcode_config_file])
            if config.xcode_org_id and config.xcode_signing_id:
                args.extend([
                    f"DEVELOPMENT_TEAM={config.xcode_org_id}",
                    f"CODE_SIGN_IDENTITY={config.xcode_signing_id}",
                ])
            if config.updated_bundle_id:
                args.append(f"PRODUCT_BUNDLE_IDENTIFIER={config.updated_bundle_id}")

        if not os.environ.get("WDAORCH_TREAT_WARNINGS_AS_ERRORS"):
            # This sometimes helps to survive Xcode updates
            args.append("GCC_TREAT_WARNINGS_AS_ERRORS=0")

        # Skips generating the Index/DataStore used only during development
        args.append("COMPILER_INDEX_STORE_ENABLE=NO")
        return args

    async def _create_subprocess(self, build_only: bool) -> asyncio.subprocess.Process:
        config = self.config
        if not config.use_xctestrun_file and self.device.is_real_device:
            if config.keychain_path and config.keychain_password:
                await set_real_device_security(config.keychain_path, config.keychain_password)

        args = self.get_command(build_only)
        logger.debug(
            f"Beginning {'build' if build_only else 'test'} with command '{' '.join(args)}' "
            f"in directory '{config.bootstrap_path}'"
        )
        env = build_child_environment({
            "USE_PORT": config.remote_port,
            "WDA_PRODUCT_BUNDLE_IDENTIFIER": config.updated_bundle_id or WDA_RUNNER_BUNDLE_ID,
            "MJPEG_SERVER_PORT": config.mjpeg_server_port,
            "USE_IP": config.binding_ip,
            "UPGRADE_TIMESTAMP": get_upgrade_timestamp(),
        })

        self.state.did_build_fail = False
        self.state.did_process_exit = False
        self.state.exit_code = None
        self.state.exit_signal = None
        self._log_xcode_output = bool(config.show_xcode_log)

        if config.show_xcode_log is None:
            log_msg = "Output from xcodebuild will only be logged if any errors are present there"
        else:
            log_msg = f"Output from xcodebuild {'will' if config.show_xcode_log else 'will not'} be logged"
        logger.debug(f"{log_msg}. To change this, use the 'show_xcode_log' setting")

        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(config.bootstrap_path),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
            limit=STREAM_LIMIT,
        )
        logger.info(f"xcodebuild started with PID {process.pid}")
        return process

    async def _read_stream(self, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            self._on_stream_line(line.decode("utf-8", errors="replace").rstrip("\r\n"))

    def _on_stream_line(self, line: str) -> None:
        if self.config.show_xcode_log is False or IGNORED_ERRORS_PATTERN.search(line):
            return
        if ERROR_MARKER in line:
            # Output is needed to make the failure understandable
            self._log_xcode_output = True
            # xcodebuild may still exit with 0
            self.state.did_build_fail = True
        if self._log_xcode_output:
            xcode_log.info(line)

    async def _watch_exit(self) -> int:
        await asyncio.gather(*self._stream_tasks)
        code = await self.process.wait()
        self.end_time = time.monotonic()

        signal_name = None
        if code is not None and code < 0:
            try:
                signal_name = signal.Signals(-code).name
            except ValueError:
                signal_name = str(-code)
        self.state.did_process_exit = True
        self.state.exit_code = code
        self.state.exit_signal = signal_name
        xcode_log.error(f"xcodebuild exited with code '{code}' and signal '{signal_name}'")

        if self.state.did_build_fail or (signal_name is None and code != 0):
            self.state.lifecycle = LifecycleState.FAILED
            raise BuildFailureError(self._failure_message(code), code=code, signal_name=signal_name)
        return code

    def _failure_message(self, code: Optional[int]) -> str:
        message = (
            f"xcodebuild failed with code {code}. This usually indicates an issue with the "
            f"local Xcode setup or WebDriverAgent project configuration or the "
            f"driver-to-platform version mismatch."
        )
        if not self.config.show_xcode_log:
            message += (
                " Consider setting 'show_xcode_log' to true in order to check the "
                "server log for build-related error messages."
            )
        elif self.device.is_real_device:
            message += (
                f" Consider checking the WebDriverAgent configuration guide for real "
                f"iOS devices at {REAL_DEVICES_CONFIG_DOCS_LINK}."
            )
        return message

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except OrchestrationError as e:
            logger.debug(f"Discarding result of a finished watcher: {e}")

    @property
    def duration_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        end_time = self.end_time or time.monotonic()
        return end_time - self.start_time
