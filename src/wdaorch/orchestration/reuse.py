"""
Decides whether a runner that is already installed and running can be reused.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional

from ..constants import DEFAULT_TEST_BUNDLE_SUFFIX, WDA_CF_BUNDLE_NAME, WDA_RUNNER_BUNDLE_ID
from ..models import BuildConfig, InstalledRunnerStatus, ReuseDecision, RuntimeState
from ..models.device import AppleDevice
from ..system import get_upgrade_timestamp

logger = logging.getLogger(__name__)


def expected_runner_bundle_ids(config: BuildConfig) -> List[str]:
    """Bundle ids a runner built from this configuration may report."""
    bundle_id = config.updated_bundle_id or WDA_RUNNER_BUNDLE_ID
    suffix = config.updated_bundle_id_suffix
    if suffix is None:
        suffix = DEFAULT_TEST_BUNDLE_SUFFIX
    return [bundle_id, f"{bundle_id}{suffix}"] if suffix else [bundle_id]


class ReuseDecisionEngine:
    """
    Inspects the /status payload of a running runner.

    A compatible runner is reused by recording its endpoint in the runtime
    state. A runner built from another bundle id or another package upgrade
    is uninstalled so that the next launch rebuilds it. When the status lacks
    the information needed to decide, the runner is reused.
    """

    def __init__(
        self,
        config: BuildConfig,
        state: RuntimeState,
        device: Optional[AppleDevice],
        get_status: Callable[[], Awaitable[Any]],
        agent_url: str,
        upgrade_timestamp_getter: Callable[[], Optional[int]] = get_upgrade_timestamp,
    ):
        self.config = config
        self.state = state
        self.device = device
        self.get_status = get_status
        self.agent_url = agent_url
        self.upgrade_timestamp_getter = upgrade_timestamp_getter

    async def setup_caching(self) -> ReuseDecision:
        status = InstalledRunnerStatus.from_payload(await self.get_status())
        if status is None or not status.has_build_info:
            logger.debug("WDA is currently not running. There is nothing to cache")
            return ReuseDecision.REBUILD

        product_bundle_id = status.product_bundle_identifier
        upgraded_at = status.upgraded_at
        if product_bundle_id is None and upgraded_at is None:
            logger.debug(
                "WDA does not provide any build information. "
                "Assuming it is compatible and reusing the running instance"
            )
            return self._reuse()

        if product_bundle_id is not None and product_bundle_id not in expected_runner_bundle_ids(self.config):
            logger.info(
                f"Will uninstall running WDA since it has different bundle id. "
                f"The actual value is '{product_bundle_id}'"
            )
            await self.uninstall()
            return ReuseDecision.REINSTALL

        actual_upgrade_timestamp = self.upgrade_timestamp_getter()
        logger.debug(f"Upgrade timestamp of the currently bundled WDA: {actual_upgrade_timestamp}")
        logger.debug(f"Upgrade timestamp of the WDA on the device: {upgraded_at}")
        if upgraded_at is None or actual_upgrade_timestamp is None:
            return self._reuse()

        if str(actual_upgrade_timestamp) != str(upgraded_at):
            logger.info(
                "Will uninstall running WDA since it has a different version "
                "in comparison to the one which is bundled with the package"
            )
            await self.uninstall()
            return ReuseDecision.REINSTALL

        logger.info("Will reuse previously cached WDA instance")
        return self._reuse()

    async def uninstall(self) -> None:
        """Remove every installed runner app from the device."""
        if self.device is None:
            logger.warning("No device is attached to the session. Skipping the runner removal")
            return
        bundle_ids = await self.device.get_user_installed_bundle_ids_by_bundle_name(WDA_CF_BUNDLE_NAME)
        if not bundle_ids:
            logger.debug("No WDAs on the device")
            return

        logger.debug(f"Uninstalling WDAs: '{bundle_ids}'")
        for bundle_id in bundle_ids:
            await self.device.remove_app(bundle_id)

    def _reuse(self) -> ReuseDecision:
        self.state.web_driver_agent_url = self.agent_url
        return ReuseDecision.REUSE
