"""
Shared constants for the orchestration module.
"""


class TimeoutConstants:
    """
    Centralized timing configuration, in milliseconds.
    """
    # Readiness polling
    STATUS_POLL_INTERVAL_MS = 1000
    STATUS_REQUEST_TIMEOUT_MS = 1000
    DEFAULT_LAUNCH_TIMEOUT_MS = 60000

    # Status queries outside of readiness polling
    DEFAULT_STATUS_TIMEOUT_MS = 3000

    # Process termination
    TERMINATION_WAIT_MS = 1000
    TERMINATION_POLL_INTERVAL_MS = 100

    # Delay after a prebuild
    PREBUILD_DELAY_MS = 0
