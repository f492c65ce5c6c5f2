"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~fluxcache.exceptions.FluxcacheError` subclass.
Process supervisors (systemd units, container entrypoints) can inspect the
exit code to tell a bad flag from a port that is already taken.

Example::

    $ fluxcache serve --port 80
    $ echo $?
    6   # EXIT_LISTEN_FAILURE -- the listener could not bind
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an undecodable module path."""

EXIT_STORAGE_ERROR = 3
"""The cache directory could not be created, read, or written."""

EXIT_UPSTREAM_ERROR = 5
"""The upstream registry was unreachable or answered with a non-200 status."""

EXIT_LISTEN_FAILURE = 6
"""The HTTP listener could not be started (address in use, permission denied)."""
