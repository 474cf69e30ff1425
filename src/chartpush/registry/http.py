"""
HTTP executor for registry requests.

The push flow only needs "send this request, give me status, headers and
body". HttpExecutor is that seam; HttpxExecutor is the production
implementation and tests substitute an in-memory fake.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Union, runtime_checkable

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import TransportError
from .media_types import USER_AGENT

logger = logging.getLogger(__name__)

RequestContent = Union[bytes, Iterable[bytes], None]


@dataclass(frozen=True)
class HttpResponse:
    """
    Registry response as seen by the push flow.

    Header names keep the casing the server used; use header() for lookups.
    """
    status_code: int
    headers: Dict[str, List[str]] = field(default_factory=dict)
    content: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def header(self, name: str) -> Optional[str]:
        """First value of a header, matched case-insensitively."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None


@runtime_checkable
class HttpExecutor(Protocol):
    """Protocol for performing a single HTTP request."""

    def request(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
                content: RequestContent = None) -> HttpResponse:
        """
        Perform one request.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers
            content: Body as bytes or an iterable of byte chunks

        Returns:
            Response regardless of status code

        Raises:
            TransportError: If no response was received
        """
        ...


class HttpxExecutor:
    """
    HttpExecutor backed by an httpx.Client.

    Retries are off by default. With retries > 0, only failures to establish
    a connection are retried, since no request bytes reached the registry.
    """

    def __init__(self, timeout_s: float = 30.0, insecure: bool = False, retries: int = 0,
                 client: Optional[httpx.Client] = None):
        """
        Initialize executor.

        Args:
            timeout_s: Read/write timeout in seconds
            insecure: Skip TLS certificate verification
            retries: Extra attempts on connection failures
            client: Preconfigured httpx client (tests inject a MockTransport client)
        """
        self.retries = retries
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(connect=5.0, read=timeout_s, write=timeout_s, pool=5.0),
            follow_redirects=True,
            verify=not insecure,
            headers={"User-Agent": USER_AGENT},
        )

    def request(self, method: str, url: str, headers: Optional[Dict[str, str]] = None,
                content: RequestContent = None) -> HttpResponse:
        logger.debug(f"{method} {url}")

        retrying = Retrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    response = self.client.request(method, url, headers=headers, content=content)
        except httpx.RequestError as e:
            raise TransportError(f"Network error during {method} {url}: {e}") from e

        logger.debug(f"{method} {url} -> {response.status_code}")

        collected: Dict[str, List[str]] = {}
        for key, value in response.headers.multi_items():
            collected.setdefault(key, []).append(value)

        return HttpResponse(
            status_code=response.status_code,
            headers=collected,
            content=response.content,
        )

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["HttpResponse", "HttpExecutor", "HttpxExecutor", "RequestContent"]
