"""Provider adapter base class and shared HTTP handling."""

import logging
from abc import ABC, abstractmethod

import httpx

from reelcast.models.errors import ProviderRejected, ProviderUnavailable
from reelcast.models.provider import ProviderPhase, ProviderStatus
from reelcast.models.video import GenerationMode

logger = logging.getLogger(__name__)

# 429 is a throttle, not a verdict on the request
_TRANSIENT_STATUS = {408, 429}


def first_present(data: dict, paths: tuple[tuple, ...]) -> str | None:
    """Return the first non-empty string found along ``paths`` in nested ``data``."""
    for path in paths:
        node = data
        for key in path:
            if isinstance(key, int) and isinstance(node, list) and -len(node) <= key < len(node):
                node = node[key]
            elif isinstance(node, dict):
                node = node.get(key)
            else:
                node = None
                break
        if isinstance(node, str) and node:
            return node
    return None


class BaseProvider(ABC):
    """Uniform submit/poll contract over one external generation API.

    Each adapter normalizes its provider's status vocabulary into
    ProviderPhase and its result location into ``result_url``; nothing
    provider-shaped crosses this boundary.
    """

    name = "base"
    supported_modes: frozenset[GenerationMode] = frozenset()
    status_map: dict[str, ProviderPhase] = {}

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            headers={"Content-Type": "application/json", **self.auth_headers()},
            transport=transport,
        )

    def auth_headers(self) -> dict[str, str]:
        return {}

    def is_available(self) -> bool:
        return bool(self.api_key)

    def supports(self, mode: GenerationMode) -> bool:
        return mode in self.supported_modes

    @abstractmethod
    def submit(self, job) -> str:
        """Start a remote task for ``job`` and return its opaque task id."""

    @abstractmethod
    def poll(self, task_id: str) -> ProviderStatus:
        """Observe the remote task once."""

    def map_phase(self, raw_status: str | None) -> ProviderPhase:
        key = (raw_status or "").strip().lower()
        phase = self.status_map.get(key)
        if phase is None:
            logger.warning("%s: unknown task status %r, treating as running", self.name, raw_status)
            return ProviderPhase.RUNNING
        return phase

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send one request and return the decoded JSON body.

        Transport failures, timeouts, throttling and 5xx raise
        ProviderUnavailable; any other non-2xx raises ProviderRejected with
        the status code and body attached.
        """
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(f"{self.name} request timed out: {e}", provider=self.name)
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"{self.name} unreachable: {e}", provider=self.name)

        if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS:
            raise ProviderUnavailable(
                f"{self.name} returned HTTP {response.status_code}",
                provider=self.name,
                details={"status_code": response.status_code, "body": response.text[:2000]},
            )
        if not response.is_success:
            raise ProviderRejected(
                f"{self.name} API error: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
                provider=self.name,
            )

        try:
            return response.json()
        except ValueError:
            raise ProviderUnavailable(
                f"{self.name} returned a non-JSON body",
                provider=self.name,
                details={"body": response.text[:2000]},
            )

    def close(self) -> None:
        self._client.close()
