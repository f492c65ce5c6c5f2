"""Upstream HTTP client for fluxcache.

Provides :class:`UpstreamClient`, a blocking wrapper around
:class:`httpx.Client` that performs the single GET issued on a cache miss,
and the :class:`UpstreamFetcher` protocol the coordinator depends on.

Example::

    from fluxcache.client import UpstreamClient

    with UpstreamClient(config) as client:
        resp = client.fetch("/github.com/foo/bar/@v/v1.0.0.info")
"""

from fluxcache.client.upstream import UpstreamClient, UpstreamFetcher, build_upstream_url

__all__ = ["UpstreamClient", "UpstreamFetcher", "build_upstream_url"]
