"""HTTP transport reading tag documents from a static file host.

Purpose
-------
Implement :class:`lib_tag_config.application.ports.Transport` over
``httpx.AsyncClient`` so a deployment can serve its tag folders from any web
server or CDN.

Key behaviours
--------------
* Every request carries a ``t=<milliseconds>`` cache-busting parameter and
  no-cache headers, so edge caches never serve a stale layer.
* Non-2xx responses, non-JSON ``content-type`` headers, undecodable bodies,
  timeouts, and connection errors all become ``None``; the failure is logged
  as ``document_fetch_failed``.
* The client is created lazily and owned by the transport unless one is
  injected (tests pass one built on ``httpx.MockTransport``). An owned client
  is rebuilt when the transport is used from a new event loop, so a
  long-lived resolver survives successive ``asyncio.run`` calls. An injected
  client is the caller's to keep on one loop.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Final

import httpx

from ...domain.errors import TransportError
from ...observability import log_debug, log_warning

NO_CACHE_HEADERS: Final[dict[str, str]] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
DEFAULT_TIMEOUT: Final[float] = 10.0


def with_cache_buster(url: str, now_ms: int) -> str:
    """Append ``t=<now_ms>`` to *url* using ``?`` or ``&`` as appropriate.

    Examples
    --------
    >>> with_cache_buster("https://cdn.example/conf/eu/tips.json", 5)
    'https://cdn.example/conf/eu/tips.json?t=5'
    >>> with_cache_buster("https://cdn.example/tips.json?v=2", 5)
    'https://cdn.example/tips.json?v=2&t=5'
    """

    separator = "&" if "?" in url else "?"
    return f"{url}{separator}t={now_ms}"


def build_url(base_url: str, segment: str) -> str:
    """Join *base_url* and *segment* with exactly one slash.

    Examples
    --------
    >>> build_url("https://cdn.example/conf/", "/eu/conf.json")
    'https://cdn.example/conf/eu/conf.json'
    """

    return f"{base_url.rstrip('/')}/{segment.lstrip('/')}"


class HttpTransport:
    """Fetch JSON documents relative to *base_url*."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self.base_url = base_url
        self._client = client
        self._client_loop: asyncio.AbstractEventLoop | None = None
        self._owns_client = client is None
        self._timeout = timeout
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    async def fetch(self, path: str) -> Any | None:
        """Return the decoded JSON document at *path*, or ``None`` on any failure."""

        try:
            payload = await self._fetch(path)
        except TransportError as exc:
            log_warning("document_fetch_failed", tag=None, path=path, error=exc.reason)
            return None
        log_debug("document_fetched", tag=None, path=path)
        return payload

    async def aclose(self) -> None:
        """Close the underlying client when this transport created it."""

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._client_loop = None

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _fetch(self, path: str) -> Any:
        url = with_cache_buster(build_url(self.base_url, path), self._clock_ms())
        try:
            response = await self._get_client().get(url, headers=NO_CACHE_HEADERS)
        except httpx.HTTPError as exc:
            raise TransportError(path, f"{type(exc).__name__}: {exc}") from exc
        if not response.is_success:
            raise TransportError(path, f"HTTP {response.status_code}")
        content_type = response.headers.get("content-type")
        if content_type and "application/json" not in content_type:
            raise TransportError(path, f"unexpected content-type {content_type}")
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransportError(path, f"invalid JSON: {exc}") from exc

    def _get_client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._owns_client and self._client is not None and self._client_loop is not loop:
            # connection pools are bound to the loop that opened them
            log_debug("http_client_rebuilt", tag=None, path=None, base_url=self.base_url)
            self._client = None
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._client_loop = loop
        return self._client
