"""Blocking upstream fetch capability backed by :mod:`httpx`.

This module provides :class:`UpstreamClient`, the concrete implementation of
the :class:`UpstreamFetcher` protocol that
:class:`~fluxcache.coordinator.FetchCoordinator` calls on a cache miss.

Behaviour:

- **Single GET, no retry** -- one attempt per miss; a failure is surfaced
  immediately.
- **Optional timeout** -- ``upstream_timeout`` from the
  :class:`~fluxcache.models.ProxyConfig`; unset means wait indefinitely.
- **Body read only on 200** -- the response is streamed so that a non-200
  answer is rejected without downloading its body; a 200 body is then read
  fully into memory.
- **Replayable headers** -- headers that describe the upstream connection
  or its transfer framing rather than the content are dropped, since the
  body is re-framed by the listener (``httpx`` also decodes any
  ``Content-Encoding``).
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from fluxcache.exceptions import UpstreamReadError, UpstreamUnavailableError
from fluxcache.models import ProxyConfig, UpstreamResponse

UNREPLAYABLE_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "transfer-encoding",
        "content-encoding",
        "content-length",
    }
)
"""Lower-cased upstream headers never copied onto the outgoing response."""


class UpstreamFetcher(Protocol):
    """Anything that can GET a path from the upstream registry."""

    def fetch(self, path: str, query: str = "") -> UpstreamResponse:
        """Fetch *path* (raw, percent-encoded) with raw *query* from the upstream."""
        ...


def build_upstream_url(base: str, path: str, query: str = "") -> str:
    """Concatenate the upstream base, the raw request path, and the raw query.

    The query is appended with a ``?`` only when it is non-empty. A trailing
    slash on *base* is dropped so that ``https://proxy.golang.org/`` and
    ``https://proxy.golang.org`` behave the same.
    """
    url = base.rstrip("/") + path
    if query:
        url = f"{url}?{query}"
    return url


class UpstreamClient:
    """Synchronous client for the upstream module registry.

    Must be used as a context manager so that the connection pool is
    opened once and shared by all listener threads.

    Args:
        config: Proxy settings providing ``upstream`` and
            ``upstream_timeout``.
        transport: Optional :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        with UpstreamClient(config) as client:
            resp = client.fetch("/github.com/foo/bar/@v/list")
    """

    def __init__(
        self,
        config: ProxyConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> UpstreamClient:
        self._client = httpx.Client(
            timeout=self._config.upstream_timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Fetch
    # ------------------------------------------------------------------ #

    def url_for(self, path: str, query: str = "") -> str:
        """Return the upstream URL a miss for *path* and *query* is fetched from."""
        return build_upstream_url(self._config.upstream, path, query)

    def fetch(self, path: str, query: str = "") -> UpstreamResponse:
        """GET *path* from the upstream and return the fully-read 200 response.

        Args:
            path: Raw request path, leading slash included.
            query: Raw query string without ``?``.

        Returns:
            The :class:`~fluxcache.models.UpstreamResponse` with replayable
            headers and the complete body.

        Raises:
            UpstreamUnavailableError: On a transport failure (DNS, refused
                connection, timeout) or any status other than 200.
            UpstreamReadError: If the 200 body cannot be read in full.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        url = self.url_for(path, query)
        try:
            with self._client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise UpstreamUnavailableError(
                        f"Upstream answered HTTP {response.status_code} for {url}",
                        upstream_status=response.status_code,
                    )
                try:
                    content = response.read()
                except httpx.HTTPError as exc:
                    raise UpstreamReadError(f"Failed reading upstream body from {url}: {exc}") from exc
                return UpstreamResponse(
                    status_code=response.status_code,
                    headers=replayable_headers(response.headers),
                    content=content,
                    url=str(response.url),
                )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Upstream request to {url} failed: {exc}") from exc


def replayable_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    """Return *headers* as ordered pairs, minus :data:`UNREPLAYABLE_HEADERS`."""
    return [
        (name, value)
        for name, value in headers.multi_items()
        if name.lower() not in UNREPLAYABLE_HEADERS
    ]
