"""
HTTP client for the runner's session-less endpoints.

Only what the orchestrator needs is implemented: building URLs relative to
the runner base and issuing a JSON request with an adjustable timeout.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..constants import STATUS_PATH
from ..validation import ConfigurationError
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


class StatusClient:
    """
    Sends requests to a running WebDriverAgent without a session.

    The timeout attribute is in milliseconds and is read on every request,
    so callers may shorten it temporarily.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = TimeoutConstants.DEFAULT_STATUS_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigurationError(f"Did not know what to do with url '{base_url}'")
        self.scheme = parsed.scheme
        self.server = parsed.hostname
        self.port = parsed.port
        self.base = parsed.path.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def proxy_base(self) -> str:
        port = f":{self.port}" if self.port else ""
        return f"{self.scheme}://{self.server}{port}{self.base}"

    def get_url_for_proxy(self, url: str) -> str:
        """
        Return the absolute URL of an endpoint path.

        Raises:
            ConfigurationError: If the path is not absolute.
        """
        if url == "":
            url = "/"
        if not url.startswith("/"):
            raise ConfigurationError(f"Did not know what to do with url '{url}'")
        # the runner does not accept trailing slashes
        return self.proxy_base + url.rstrip("/")

    async def command(self, url: str, method: str = "GET", body: Any = None) -> Any:
        """
        Send a request and return the decoded response value.

        Responses wrapped as {"value": ...} are unwrapped.

        Raises:
            httpx.HTTPError: On connection failures, timeouts and error statuses.
        """
        full_url = self.get_url_for_proxy(url)
        async with httpx.AsyncClient(timeout=self.timeout / 1000, transport=self._transport) as client:
            response = await client.request(method, full_url, json=body)
            response.raise_for_status()
            payload = response.json()
        if isinstance(payload, dict) and "value" in payload:
            return payload["value"]
        return payload

    async def get_status(self) -> Any:
        return await self.command(STATUS_PATH, "GET")
