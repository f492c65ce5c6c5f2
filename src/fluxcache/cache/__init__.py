"""Content-addressed artifact cache for fluxcache.

This package provides :class:`CacheStore`, which stores raw upstream
response bodies on the local filesystem at a location derived from the
SHA-256 of the module path (see :mod:`fluxcache.cache.keys`).

The store is consumed by :class:`~fluxcache.coordinator.FetchCoordinator`
and rooted at the ``cache_dir`` of the active
:class:`~fluxcache.models.ProxyConfig`.
"""

from fluxcache.cache.keys import cache_key, shard_path
from fluxcache.cache.store import CacheStore

__all__ = ["CacheStore", "cache_key", "shard_path"]
