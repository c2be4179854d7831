"""
Simulator implementation of the device collaborator, backed by `xcrun simctl`.
"""

import logging
import plistlib
from pathlib import Path
from typing import Iterable, List

from ..models.device import AppleDevice
from .commands import exec_command, run_command

logger = logging.getLogger(__name__)


class SimulatorDevice(AppleDevice):
    """
    Looks up and removes runner apps on a simulator.

    simctl cannot filter installed apps by bundle name, so only the given
    candidate bundle ids are checked.
    """

    def __init__(self, udid: str, candidate_bundle_ids: Iterable[str]):
        super().__init__(udid)
        self.candidate_bundle_ids = list(dict.fromkeys(candidate_bundle_ids))

    async def get_user_installed_bundle_ids_by_bundle_name(self, bundle_name: str) -> List[str]:
        matched = []
        for bundle_id in self.candidate_bundle_ids:
            return_code, stdout, _ = await run_command(
                ["xcrun", "simctl", "get_app_container", self.udid, bundle_id]
            )
            if return_code != 0 or not stdout.strip():
                continue
            info_plist = Path(stdout.strip()) / "Info.plist"
            try:
                with open(info_plist, "rb") as f:
                    info = plistlib.load(f)
            except (OSError, plistlib.InvalidFileException) as e:
                logger.debug(f"Cannot read '{info_plist}': {e}")
                continue
            if info.get("CFBundleName") == bundle_name:
                matched.append(bundle_id)
        return matched

    async def remove_app(self, bundle_id: str) -> None:
        logger.info(f"Removing '{bundle_id}' from simulator {self.udid}")
        await exec_command(["xcrun", "simctl", "uninstall", self.udid, bundle_id])
