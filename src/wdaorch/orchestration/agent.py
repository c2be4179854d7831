"""
Session facade over the build orchestrator, status client and reuse engine.

RunnerAgent is the entry point used by the command line and by embedding
code: it computes where the runner listens, decides whether a running
instance can be reused and otherwise builds and launches a fresh one.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..constants import DEFAULT_TEST_BUNDLE_SUFFIX, WDA_BASE_URL, WDA_RUNNER_BUNDLE_ID
from ..models import BuildConfig, DeviceRef, ReuseDecision, RuntimeState
from ..models.device import AppleDevice
from ..system import get_pids_listening_on_port
from ..validation import ConfigurationError, OrchestrationError, ProcessTerminationError
from .build_runner import BuildOrchestrator
from .process_manager import ProcessReaper
from .project_file import reset_project_file, update_project_file
from .reuse import ReuseDecisionEngine
from .status_client import StatusClient

logger = logging.getLogger(__name__)

RUNNER_CMDLINE_MARKER = "/WebDriverAgentRunner"


class RunnerAgent:
    """
    One runner session on one device.

    Args:
        config: Immutable session configuration
        device: Identity of the target device
        apple_device: Device collaborator used to uninstall stale runners
        reaper: Process terminator shared with the orchestrator
        transport: Optional httpx transport for the status client
    """

    def __init__(
        self,
        config: BuildConfig,
        device: DeviceRef,
        apple_device: Optional[AppleDevice] = None,
        reaper: Optional[ProcessReaper] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.device = device
        self.apple_device = apple_device
        self.reaper = reaper or ProcessReaper()
        self.state = RuntimeState(
            use_prebuilt=config.use_prebuilt,
            derived_data_path=config.derived_data_path,
            web_driver_agent_url=config.web_driver_agent_url,
        )

        self._url = self._compute_url()
        self.status_client = StatusClient(self._url, transport=transport)
        self.orchestrator = BuildOrchestrator(
            device=device,
            config=config,
            state=self.state,
            status_client=self.status_client,
            reaper=self.reaper,
        )
        self.reuse_engine = ReuseDecisionEngine(
            config=config,
            state=self.state,
            device=apple_device,
            get_status=self.get_status,
            agent_url=self._url,
        )

    def _compute_url(self) -> str:
        override = self.config.web_driver_agent_url
        if override:
            parsed = urlparse(override)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ConfigurationError(f"Invalid WebDriverAgent URL '{override}'")
            return override

        parsed = urlparse(self.config.base_url or WDA_BASE_URL)
        if not parsed.hostname:
            parsed = urlparse(WDA_BASE_URL)
        return f"{parsed.scheme or 'http'}://{parsed.hostname}:{self.config.local_port}/"

    @property
    def url(self) -> str:
        """Where the runner is expected to listen."""
        return self._url

    @property
    def bundle_id_for_xctest(self) -> str:
        """The bundle id of the installed test runner app."""
        suffix = self.config.updated_bundle_id_suffix
        if suffix is None:
            suffix = DEFAULT_TEST_BUNDLE_SUFFIX
        return f"{self.config.updated_bundle_id or WDA_RUNNER_BUNDLE_ID}{suffix}"

    async def get_status(self) -> Optional[Any]:
        """Return the runner's /status payload, or None if it does not answer."""
        try:
            return await self.status_client.get_status()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"WDA is not listening at '{self.url}': {e}")
            return None

    async def is_running(self) -> bool:
        return await self.get_status() is not None

    async def setup_caching(self) -> ReuseDecision:
        return await self.reuse_engine.setup_caching()

    async def uninstall(self) -> None:
        await self.reuse_engine.uninstall()

    async def launch(self) -> Optional[Any]:
        """
        Return the status of a usable runner, building and starting one if needed.

        Raises:
            ConfigurationError: If the agent project does not exist.
            DescriptorNotFoundError: In descriptor mode without a usable file.
            BuildFailureError: If xcodebuild fails.
            StartupTimeoutError: If the runner never becomes ready.
        """
        if self.state.web_driver_agent_url:
            logger.info(f"Using provided WebDriverAgent at '{self.state.web_driver_agent_url}'")
            return await self.get_status()

        logger.info("Launching WebDriverAgent on the device")
        if not self.config.use_xctestrun_file and not self.config.agent_path.exists():
            raise ConfigurationError(
                f"Trying to use WebDriverAgent project at '{self.config.agent_path}' "
                f"but the file does not exist"
            )

        if self.device.is_real_device and self.config.updated_bundle_id and not self.config.use_xctestrun_file:
            update_project_file(self.config.agent_path, self.config.updated_bundle_id)

        try:
            await self.orchestrator.init(self.status_client)
            if self.config.prebuild_runner:
                await self.orchestrator.prebuild()
            status = await self.orchestrator.start()
        except OrchestrationError:
            logger.info("WebDriverAgent failed to launch. Cleaning up")
            await self.quit()
            raise
        self.state.started = True
        return status

    async def quit(self) -> None:
        """Stop the session's xcodebuild process and restore the project file."""
        if self.config.web_driver_agent_url:
            logger.debug(
                "Do not stop xcodebuild nor XCTest session since the WDA session "
                "is managed outside of this process"
            )
        else:
            logger.info("Shutting down sub-processes")
            await self.orchestrator.quit()
            if self.device.is_real_device and self.config.updated_bundle_id:
                reset_project_file(self.config.agent_path)
            self.state.web_driver_agent_url = None
        self.state.started = False

    async def cleanup_obsolete_processes(self) -> None:
        """Kill runners of other devices still holding the local port."""
        udid = self.device.udid.lower()
        port = urlparse(self.url).port or self.config.local_port
        obsolete_pids = await get_pids_listening_on_port(
            port,
            lambda cmdline: RUNNER_CMDLINE_MARKER in cmdline and udid not in cmdline.lower(),
        )
        if not obsolete_pids:
            logger.debug(
                f"No obsolete cached processes from previous WDA sessions "
                f"listening on port {port} have been found"
            )
            return

        logger.info(
            f"Detected {len(obsolete_pids)} obsolete cached process"
            f"{'' if len(obsolete_pids) == 1 else 'es'} from previous WDA sessions. Cleaning them up"
        )
        for pid in obsolete_pids:
            try:
                await self.reaper.terminate(pid, "obsolete WebDriverAgent")
            except ProcessTerminationError as e:
                logger.warning(f"Failed to kill obsolete cached process '{pid}'. Original error: {e}")
