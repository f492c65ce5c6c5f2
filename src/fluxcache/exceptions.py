"""Exception hierarchy for fluxcache.

All exceptions inherit from :class:`FluxcacheError`, which carries two
mappings:

* ``exit_code`` -- a constant from :mod:`fluxcache.exit_codes`, used by
  :func:`fluxcache.app.main` when an error escapes to the process level.
* ``http_status`` and ``public_message`` -- the status line and short body
  the HTTP listener writes back when the error ends a proxied request.

Subclass hierarchy::

    FluxcacheError              (exit 1, HTTP 500 "internal error")
    +-- BadPathError            (exit 2, HTTP 400 "bad path")
    +-- StorageError            (exit 3, HTTP 500 "storage error")
    +-- UpstreamUnavailableError(exit 5, HTTP 502 "upstream error")
    +-- UpstreamReadError       (exit 5, HTTP 500 "read error")
    +-- ListenError             (exit 6)
    +-- ConfigError             (exit 1)
"""

from __future__ import annotations

from typing import Optional

from fluxcache.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LISTEN_FAILURE,
    EXIT_STORAGE_ERROR,
    EXIT_UPSTREAM_ERROR,
)


class FluxcacheError(Exception):
    """Base exception for all fluxcache errors.

    Args:
        message: Human-readable error description, logged on stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    http_status: int = 500
    public_message: str = "internal error"

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class BadPathError(FluxcacheError):
    """Raised when a request path contains a malformed percent-escape."""

    exit_code = EXIT_INVALID_USAGE
    http_status = 400
    public_message = "bad path"


class StorageError(FluxcacheError):
    """Raised when the cache directory cannot be created or an artifact cannot be written."""

    exit_code = EXIT_STORAGE_ERROR
    http_status = 500
    public_message = "storage error"


class UpstreamUnavailableError(FluxcacheError):
    """Raised on a transport failure or a non-200 answer from the upstream registry.

    A 404 for a module that does not exist and a refused connection both end
    up here; callers that care can inspect :attr:`upstream_status`, which is
    ``None`` for transport failures.

    Args:
        message: Human-readable error description.
        upstream_status: The status code the upstream answered with, if any.
    """

    exit_code = EXIT_UPSTREAM_ERROR
    http_status = 502
    public_message = "upstream error"

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamReadError(FluxcacheError):
    """Raised when the upstream answered 200 but its body could not be read in full."""

    exit_code = EXIT_UPSTREAM_ERROR
    http_status = 500
    public_message = "read error"


class ListenError(FluxcacheError):
    """Raised when the HTTP listener cannot bind its address."""

    exit_code = EXIT_LISTEN_FAILURE


class ConfigError(FluxcacheError):
    """Raised for configuration problems (invalid JSON, values that fail validation)."""

    exit_code = EXIT_GENERIC_FAILURE
