"""Content addressing for cached artifacts.

A logical module path is hashed with SHA-256; the lowercase hex digest is
the cache key, and the artifact lives at ``<hex[0:2]>/<hex[2:4]>/<hex>``
below the cache root. The two shard levels keep any single directory to at
most 256 subdirectories.

Module paths are ``str`` but may carry undecodable bytes as surrogate
escapes (see :func:`~fluxcache.coordinator.decode_module_path`); they are
turned back into the original bytes before hashing.
"""

from __future__ import annotations

import hashlib
from pathlib import PurePath, PurePosixPath


def module_path_bytes(module_path: str) -> bytes:
    """Return the raw bytes of *module_path*, restoring surrogate-escaped bytes."""
    return module_path.encode("utf-8", "surrogateescape")


def cache_key(module_path: str) -> str:
    """Return the lowercase hex SHA-256 of the module path's bytes."""
    return hashlib.sha256(module_path_bytes(module_path)).hexdigest()


def shard_path(key: str) -> PurePath:
    """Return the relative artifact path ``<key[0:2]>/<key[2:4]>/<key>`` for *key*."""
    return PurePosixPath(key[:2], key[2:4], key)
