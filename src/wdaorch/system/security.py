"""
Keychain preparation for real-device builds.
"""

import logging

from .commands import exec_command

logger = logging.getLogger(__name__)

KEYCHAIN_TIMEOUT_SECONDS = 3600


async def set_real_device_security(keychain_path: str, keychain_password: str) -> None:
    """Make the signing keychain searchable, unlock it and extend its timeout.

    Raises:
        subprocess.CalledProcessError: If any security command fails.
    """
    logger.debug("Setting security for iOS device")
    await exec_command(["security", "-v", "list-keychains", "-s", keychain_path])
    await exec_command(["security", "-v", "unlock-keychain", "-p", keychain_password, keychain_path])
    await exec_command(
        ["security", "set-keychain-settings", "-t", str(KEYCHAIN_TIMEOUT_SECONDS), "-l", keychain_path]
    )
