"""Filesystem-backed artifact storage for proxied module responses.

Each artifact is the raw body of a successful upstream response, stored
without headers or metadata at the sharded location derived by
:mod:`fluxcache.cache.keys`. There is no in-memory index: every lookup is a
filesystem read, so artifacts placed or removed by hand are picked up
immediately.

Writes go through :func:`~fluxcache.config.atomic_write`, so a concurrent
reader sees either the previous artifact or the complete new one, never a
truncated file. Artifact files get mode ``0o666`` less the process umask,
so a cache root shared with another user or a static file server stays
readable.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from fluxcache.cache.keys import cache_key, shard_path
from fluxcache.config import atomic_write
from fluxcache.exceptions import StorageError
from fluxcache.models import CacheLookup, LookupStatus

ARTIFACT_MODE = 0o666
"""Permission bits for artifact files before the umask is applied."""


class CacheStore:
    """Maps logical module paths to durable bytes under a cache root.

    Args:
        root: Root directory for artifacts. Created (with parents) if
            absent.

    Raises:
        StorageError: If *root* cannot be created.

    Example::

        store = CacheStore("/var/cache/fluxcache")
        store.write("github.com/foo/bar/@v/list", b"v1.0.0\\n")
        lookup = store.read("github.com/foo/bar/@v/list")
        assert lookup.found and lookup.data == b"v1.0.0\\n"
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create cache directory {self._root}: {exc}") from exc

    @property
    def root(self) -> Path:
        """The cache root directory."""
        return self._root

    def locate(self, module_path: str) -> Path:
        """Return the artifact location for *module_path*. Pure; never touches the disk."""
        return self._root / shard_path(cache_key(module_path))

    def read(self, module_path: str) -> CacheLookup:
        """Read the artifact for *module_path*.

        Returns:
            A :class:`~fluxcache.models.CacheLookup` that is ``HIT`` with the
            bytes, ``MISS`` when no artifact exists, or ``STORAGE_ERROR``
            with the OS error text for any other failure.
        """
        path = self.locate(module_path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return CacheLookup(status=LookupStatus.MISS)
        except OSError as exc:
            return CacheLookup(status=LookupStatus.STORAGE_ERROR, error=f"{path}: {exc}")
        return CacheLookup(status=LookupStatus.HIT, data=data)

    def write(self, module_path: str, data: bytes) -> Path:
        """Persist *data* as the artifact for *module_path*, replacing any previous one.

        Returns:
            The artifact location written.

        Raises:
            StorageError: If the shard directories or the file cannot be
                written.
        """
        path = self.locate(module_path)
        try:
            atomic_write(path, data, mode=ARTIFACT_MODE)
        except OSError as exc:
            raise StorageError(f"Cannot write artifact {path}: {exc}") from exc
        return path

    def exists(self, module_path: str) -> bool:
        """Return whether an artifact file is present for *module_path*."""
        return self.locate(module_path).is_file()

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``directory`` (str path), ``entries`` (number of
            artifacts), and ``size_bytes`` (their total size). Leftover
            temp files from interrupted writes are not counted.
        """
        entries = 0
        size = 0
        for dirpath, _dirnames, filenames in os.walk(self._root):
            for name in filenames:
                if name.startswith("."):
                    continue
                try:
                    size += os.path.getsize(os.path.join(dirpath, name))
                except OSError:
                    continue
                entries += 1
        return {
            "directory": str(self._root),
            "entries": entries,
            "size_bytes": size,
        }
