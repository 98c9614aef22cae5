"""HTTP transport: the custom client registry and the request executor."""

from __future__ import annotations

import logging
import threading

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import InterfaceError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "default"

# Coordinator hiccups worth retrying with backoff.
RETRYABLE_STATUS_CODES = frozenset([502, 503, 504])


class TransportRegistry:
    """Named ``httpx.Client`` instances that connections can select.

    Clients must be registered before the registry is first used to look one
    up; registration itself is safe from multiple threads.
    """

    def __init__(self) -> None:
        self._clients: dict[str, httpx.Client] = {}
        self._lock = threading.Lock()
        self._in_use = False

    def register(self, name: str, client: httpx.Client) -> None:
        if not name or name == DEFAULT_CLIENT_NAME:
            raise ValueError(f"invalid custom client name: {name!r}")
        with self._lock:
            if self._in_use:
                raise RuntimeError("custom clients must be registered before first use")
            if name in self._clients:
                raise ValueError(f"custom client already registered: {name}")
            self._clients[name] = client

    def get(self, name: str) -> httpx.Client:
        self._in_use = True
        try:
            return self._clients[name]
        except KeyError:
            raise InterfaceError(f"custom client not registered: {name}") from None

    def names(self) -> list[str]:
        return sorted(self._clients)

    def __contains__(self, name: object) -> bool:
        return name in self._clients


default_registry = TransportRegistry()


def register_custom_client(name: str, client: httpx.Client) -> None:
    """Register ``client`` under ``name`` in the process-wide registry."""
    default_registry.register(name, client)


class _RetryableStatus(Exception):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"coordinator unavailable ({status_code})")
        self.status_code = status_code
        self.body = body


class HttpExecutor:
    """Performs one logical HTTP exchange with the coordinator.

    502/503/504 responses are retried with exponential backoff, as are
    connection failures (and, for idempotent requests, any transport error).
    Every other non-200 status is surfaced immediately.
    """

    def __init__(
        self,
        client: httpx.Client,
        max_attempts: int = 3,
        backoff: float = 0.1,
        max_backoff: float = 2.0,
    ) -> None:
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.max_backoff = max_backoff

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        """Send a request and return the 200 response.

        Raises:
            TransportError: Network failure or non-200 status after retries.
        """
        retryable: tuple[type[BaseException], ...] = (_RetryableStatus, httpx.ConnectError)
        if method in ("GET", "DELETE"):
            retryable = (_RetryableStatus, httpx.TransportError)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=self.max_backoff),
            retry=retry_if_exception_type(retryable),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        try:
            return retrying(self._send, method, url, headers, content)
        except _RetryableStatus as e:
            raise TransportError(
                f"{e}: {e.body[:200]}", status_code=e.status_code, url=url
            ) from None
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}", url=url) from e

    def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        content: str | bytes | None,
    ) -> httpx.Response:
        response = self.client.request(method, url, headers=headers, content=content)
        if response.status_code in RETRYABLE_STATUS_CODES:
            body = response.text
            response.close()
            raise _RetryableStatus(response.status_code, body)
        if response.status_code != 200:
            body = response.text
            response.close()
            raise TransportError(
                f"unexpected status {response.status_code} from {method} {url}: {body[:200]}",
                status_code=response.status_code,
                url=url,
            )
        return response
