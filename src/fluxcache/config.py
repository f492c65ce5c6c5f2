"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for fluxcache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fluxcache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **User config** -- A single :class:`~fluxcache.models.ProxyConfig` JSON
  file storing the operator's defaults.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and user config into the one
  :class:`~fluxcache.models.ProxyConfig` the server is built from.

All file writes, including cached artifacts written by
:class:`~fluxcache.cache.CacheStore`, use the temp-file-then-rename strategy
in :func:`atomic_write`.
"""

from __future__ import annotations

import functools
import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from fluxcache.exceptions import ConfigError
from fluxcache.models import ProxyConfig

_APP_NAME = "fluxcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "fluxcache.json"
_MODULES_SUBDIR = "modules"

ENV_PREFIX = "FLUXCACHE_"
"""Prefix of the environment variables read by :func:`resolve_config`."""

_ENV_FIELDS = (
    "cache_dir",
    "host",
    "port",
    "upstream",
    "verbose",
    "upstream_timeout",
    "single_flight",
)


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/fluxcache/`` (default ``~/.config/fluxcache/``).
    On macOS/Windows: ``~/.fluxcache/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the module artifact tree when no explicit ``cache_dir`` is
    configured. Its contents can be deleted at any time; the proxy simply
    refetches.

    On Linux/BSD: ``$XDG_CACHE_HOME/fluxcache/`` (default ``~/.cache/fluxcache/``).
    On macOS/Windows: ``~/.fluxcache/cache/``.

    Returns:
        Absolute path to the cache directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CACHE_HOME", (".cache",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/fluxcache/`` (default ``~/.local/share/fluxcache/``).
    On macOS/Windows: ``~/.fluxcache/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def cache_root(config: ProxyConfig) -> Path:
    """Return the artifact root for *config*.

    An explicit ``cache_dir`` is used as given (``~`` expanded); otherwise
    the root is ``<get_cache_dir()>/modules``.
    """
    if config.cache_dir:
        return Path(config.cache_dir).expanduser()
    return get_cache_dir() / _MODULES_SUBDIR


# --- Atomic file writes ---


@functools.lru_cache(maxsize=None)
def process_umask() -> int:
    """Return the process umask, read once.

    Reading the umask means setting it, so this is done a single time rather
    than on every write from a listener thread.
    """
    mask = os.umask(0o022)
    os.umask(mask)
    return mask


def atomic_write(path: Path, data: Union[str, bytes], mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    ``str`` data is written as UTF-8 text, ``bytes`` verbatim. On success the
    temp file is renamed over *path*; on any failure the temp file is cleaned
    up and the original exception propagates.

    Temp files are created owner-only. When *mode* is given it is applied,
    less the process umask, before the rename.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    binary = isinstance(data, bytes)
    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="wb" if binary else "w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding=None if binary else "utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        if mode is not None:
            os.chmod(tmp_path, mode & ~process_umask())
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- User config ---


def _user_config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, label: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_user_config() -> ProxyConfig:
    """Load the user configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~fluxcache.models.ProxyConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _user_config_path()
    if not path.is_file():
        return ProxyConfig()
    data = _read_json(path, "user config")
    try:
        return ProxyConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid user config at {path}: {exc}") from exc


def save_user_config(config: ProxyConfig) -> None:
    """Persist the user configuration atomically to disk.

    Args:
        config: The configuration to save.
    """
    data = config.model_dump(mode="json")
    atomic_write(_user_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./fluxcache.json``.

    Project-local config sits between user config and environment variables
    in the precedence chain. It may hold any subset of
    :class:`~fluxcache.models.ProxyConfig` fields, typically a pinned
    ``upstream`` or a repository-local ``cache_dir``.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


def _env_overrides() -> dict[str, str]:
    """Collect ``FLUXCACHE_*`` variables that map onto config fields."""
    overrides: dict[str, str] = {}
    for field_name in _ENV_FIELDS:
        value = os.environ.get(ENV_PREFIX + field_name.upper())
        if value:
            overrides[field_name] = value
    return overrides


# --- Precedence resolution ---


def resolve_config(
    cli_cache_dir: Optional[str] = None,
    cli_host: Optional[str] = None,
    cli_port: Optional[int] = None,
    cli_upstream: Optional[str] = None,
    cli_verbose: Optional[bool] = None,
    cli_timeout: Optional[float] = None,
    cli_single_flight: Optional[bool] = None,
) -> ProxyConfig:
    """Resolve the effective proxy config with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_*`` arguments that are not ``None``)
        2. Environment variables (``FLUXCACHE_CACHE_DIR``, ``FLUXCACHE_PORT``, ...)
        3. Project config (``./fluxcache.json``)
        4. User config (``~/.config/fluxcache/config.json``)
        5. Defaults

    Returns:
        A validated :class:`~fluxcache.models.ProxyConfig`.

    Raises:
        ConfigError: If any layer holds invalid JSON or the merged result
            fails validation (e.g. ``FLUXCACHE_PORT=abc``).
    """
    # 5 + 4. User config (fills in defaults automatically)
    merged: dict[str, Any] = load_user_config().model_dump(mode="json")

    # 3. Project-local config
    project = load_project_config()
    if project is not None:
        merged.update(project)

    # 2. Environment variables; pydantic coerces the strings
    merged.update(_env_overrides())

    # 1. CLI flags (highest precedence)
    cli = {
        "cache_dir": cli_cache_dir,
        "host": cli_host,
        "port": cli_port,
        "upstream": cli_upstream,
        "verbose": cli_verbose,
        "upstream_timeout": cli_timeout,
        "single_flight": cli_single_flight,
    }
    merged.update({key: value for key, value in cli.items() if value is not None})

    try:
        return ProxyConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
