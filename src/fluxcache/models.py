"""Canonical Pydantic models shared across all fluxcache modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config
directory or a project-local ``fluxcache.json``:
    :class:`ProxyConfig`.

**Request-path models** -- built per proxied request and passed between the
listener, the coordinator, the cache store and the upstream client:
    :class:`ProxyRequest`, :class:`ProxyResponse`, :class:`UpstreamResponse`,
    :class:`LookupStatus`, :class:`CacheLookup`, and :class:`CacheStatus`.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_UPSTREAM = "https://proxy.golang.org"
DEFAULT_PORT = 8080


# --- Configuration ---


class ProxyConfig(BaseModel):
    """Process-wide proxy settings, fixed at startup.

    Built once by :func:`~fluxcache.config.resolve_config` and handed to the
    :class:`~fluxcache.cache.CacheStore`,
    :class:`~fluxcache.client.UpstreamClient` and
    :class:`~fluxcache.coordinator.FetchCoordinator` constructors. Nothing
    reads configuration from module-level state.

    Example::

        ProxyConfig(
            cache_dir="/var/cache/fluxcache",
            port=3000,
            upstream="https://proxy.golang.org",
        )
    """

    cache_dir: Optional[str] = Field(
        default=None,
        description="Cache root; defaults to the XDG cache directory when unset",
    )
    host: str = Field(default="0.0.0.0", description="Interface to listen on")
    port: int = Field(
        default=DEFAULT_PORT, ge=0, le=65535, description="TCP port, 0 for ephemeral"
    )
    upstream: str = Field(
        default=DEFAULT_UPSTREAM, description="Base URL of the upstream module registry"
    )
    verbose: bool = Field(default=False, description="Log every hit and miss")
    upstream_timeout: Optional[float] = Field(
        default=None, gt=0, description="Upstream timeout in seconds; unset waits forever"
    )
    single_flight: bool = Field(
        default=True, description="Share one upstream fetch between concurrent misses"
    )


# --- Request path ---


class ProxyRequest(BaseModel):
    """An incoming request as seen by the coordinator.

    ``path`` is the raw request path, still percent-encoded and with its
    leading slash; ``query`` is the raw query string without the ``?``.
    """

    method: str = "GET"
    path: str
    query: str = ""


class CacheStatus(str, enum.Enum):
    """How a :class:`ProxyResponse` was produced."""

    HIT = "HIT"
    MISS = "MISS"
    ERROR = "ERROR"


class ProxyResponse(BaseModel):
    """A response ready to be written back by the HTTP listener.

    Headers are a list of ``(name, value)`` pairs so that repeated upstream
    headers survive the round trip in order.
    """

    status_code: int
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""
    cache_status: CacheStatus = CacheStatus.MISS

    def header(self, name: str) -> Optional[str]:
        """Return the first header value named *name* (case-insensitive), or ``None``."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None


class UpstreamResponse(BaseModel):
    """Status, headers, and fully-read body returned by the upstream fetch capability."""

    status_code: int
    headers: list[tuple[str, str]] = Field(default_factory=list)
    content: bytes = b""
    url: str = ""


class LookupStatus(str, enum.Enum):
    """Outcome of a cache read.

    ``STORAGE_ERROR`` is kept apart from ``MISS`` so that a broken disk is
    visible in the logs even though the request still falls through to the
    upstream.
    """

    HIT = "hit"
    MISS = "miss"
    STORAGE_ERROR = "storage_error"


class CacheLookup(BaseModel):
    """Result of :meth:`~fluxcache.cache.CacheStore.read`."""

    status: LookupStatus
    data: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        """Whether the artifact was read successfully."""
        return self.status == LookupStatus.HIT
