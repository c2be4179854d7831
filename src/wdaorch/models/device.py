"""
Interface of the device collaborator.

The orchestrator never talks to simulators or hardware directly; it asks an
AppleDevice implementation to list and remove installed applications.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

logger = logging.getLogger(__name__)


class AppleDevice(ABC):
    """
    Abstract base class for the device layer.

    Implementations wrap simctl, devicectl or any other tool able to
    enumerate and remove user-installed applications on one device.
    """

    def __init__(self, udid: str):
        self.udid = udid

    @abstractmethod
    async def get_user_installed_bundle_ids_by_bundle_name(self, bundle_name: str) -> List[str]:
        """
        Return bundle identifiers of installed apps whose CFBundleName matches.

        Args:
            bundle_name: The CFBundleName to look for.
        """
        raise NotImplementedError

    @abstractmethod
    async def remove_app(self, bundle_id: str) -> None:
        """Uninstall the application with the given bundle identifier."""
        raise NotImplementedError
