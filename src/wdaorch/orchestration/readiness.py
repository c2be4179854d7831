"""
Readiness polling for a freshly launched runner.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Optional

import httpx

from ..validation import StartupTimeoutError
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


class ReadinessPoller:
    """
    Repeatedly queries the runner status endpoint until it answers.

    Each attempt temporarily lowers the client timeout so that one hung
    request cannot consume the whole launch deadline. The original timeout
    is restored after every attempt.
    """

    def __init__(
        self,
        client,
        has_process_exited: Callable[[], bool] = lambda: False,
        interval_ms: float = TimeoutConstants.STATUS_POLL_INTERVAL_MS,
        request_timeout_ms: float = TimeoutConstants.STATUS_REQUEST_TIMEOUT_MS,
    ):
        """
        Args:
            client: Object with a mutable `timeout` (ms) and an async
                `get_status()` method.
            has_process_exited: Returns True once the supervised build process
                is gone, which makes polling pointless.
            interval_ms: Pause between attempts.
            request_timeout_ms: Per-request timeout during polling.
        """
        self.client = client
        self.has_process_exited = has_process_exited
        self.interval_ms = interval_ms
        self.request_timeout_ms = request_timeout_ms

    async def wait_for_start(self, timeout_ms: float) -> Optional[Any]:
        """
        Poll until the status endpoint responds.

        Returns:
            The status payload, or the last observed one (possibly None) if
            the build process exited while polling.

        Raises:
            StartupTimeoutError: If no status arrived within timeout_ms.
        """
        logger.debug(f"Waiting up to {timeout_ms:.0f}ms for WebDriverAgent to start")
        started_at = time.monotonic()
        deadline = started_at + timeout_ms / 1000
        current_status = None
        last_error: Optional[Exception] = None

        while True:
            if self.has_process_exited():
                # there has been an error elsewhere and we need to short-circuit
                return current_status

            proxy_timeout = self.client.timeout
            self.client.timeout = self.request_timeout_ms
            try:
                current_status = await self.client.get_status()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.debug(f"Unable to connect to running WebDriverAgent: {e}")
            else:
                logger.debug("WebDriverAgent information:")
                logger.debug(json.dumps(current_status, indent=2, default=str))
                elapsed_ms = (time.monotonic() - started_at) * 1000
                logger.debug(f"WebDriverAgent successfully started after {elapsed_ms:.0f}ms")
                return current_status
            finally:
                self.client.timeout = proxy_timeout

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            # The last pause ends exactly at the deadline, followed by a final attempt
            await asyncio.sleep(min(self.interval_ms / 1000, remaining))

        if self.has_process_exited():
            return current_status

        if last_error is not None:
            logger.debug(f"Last status error: {last_error}")
        raise StartupTimeoutError(
            f"We were not able to retrieve the /status response from the WebDriverAgent "
            f"server after {timeout_ms:.0f}ms timeout. Try to increase the value of "
            f"'launch_timeout_ms' as a possible workaround.",
            timeout_ms=timeout_ms,
        )
