"""Thread-per-request HTTP listener in front of the fetch coordinator.

:class:`ProxyServer` binds a :class:`http.server.ThreadingHTTPServer` and
hands every request, whatever its method, to
:meth:`~fluxcache.coordinator.FetchCoordinator.handle`. The handler only
translates between the wire and the request/response models: it splits the
raw request target into path and query, writes the status line and headers,
sets ``Content-Length`` from the body it is about to send, and omits the
body for ``HEAD``.
"""

from __future__ import annotations

import re
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import urlsplit

from fluxcache.coordinator import FetchCoordinator, error_response
from fluxcache.exceptions import FluxcacheError, ListenError
from fluxcache.models import ProxyRequest, ProxyResponse
from fluxcache.output import debug, error

_ABSOLUTE_FORM = re.compile(r"^https?://", re.IGNORECASE)


class ProxyRequestHandler(BaseHTTPRequestHandler):
    """Adapts one HTTP exchange to a :class:`~fluxcache.models.ProxyRequest`."""

    server: _CoordinatorHTTPServer
    server_version = "fluxcache"

    def do_GET(self) -> None:
        self._proxy()

    def do_HEAD(self) -> None:
        self._proxy()

    def do_POST(self) -> None:
        self._proxy()

    def do_PUT(self) -> None:
        self._proxy()

    def do_PATCH(self) -> None:
        self._proxy()

    def do_DELETE(self) -> None:
        self._proxy()

    def do_OPTIONS(self) -> None:
        self._proxy()

    def _request_target(self) -> str:
        """Return the target exactly as sent on the request line.

        ``self.path`` has leading slashes collapsed by :mod:`http.server`,
        which would change the module path.
        """
        words = self.requestline.split()
        return words[1] if len(words) >= 2 else self.path

    def _proxy(self) -> None:
        request = parse_request_target(self.command, self._request_target())
        try:
            response = self.server.coordinator.handle(request)
        except Exception as exc:
            error(f"Unhandled error serving {self.command} {self.path}: {exc!r}")
            response = error_response(FluxcacheError(str(exc)))
        self._write_response(response)

    def _write_response(self, response: ProxyResponse) -> None:
        self.log_request(response.status_code)
        self.send_response_only(response.status_code)
        # Replayed upstream Server/Date replace the listener's own.
        if response.header("Server") is None:
            self.send_header("Server", self.version_string())
        if response.header("Date") is None:
            self.send_header("Date", self.date_time_string())
        for name, value in response.headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(response.body)))
        self.end_headers()
        if self.command != "HEAD" and response.body:
            self.wfile.write(response.body)

    def log_message(self, format: str, *args: Any) -> None:
        debug(f"{self.address_string()} {format % args}")


def parse_request_target(method: str, target: str) -> ProxyRequest:
    """Split a raw request target (``/path?query``) into a :class:`ProxyRequest`.

    Both parts are kept exactly as received, percent-escapes included. An
    origin-form target is split on the first ``?`` only, so a path starting
    with ``//`` stays a path. Absolute-form targets (``http://host/path``)
    are reduced to their path.
    """
    if _ABSOLUTE_FORM.match(target):
        parts = urlsplit(target)
        return ProxyRequest(method=method, path=parts.path or "/", query=parts.query)
    path, _sep, query = target.partition("?")
    return ProxyRequest(method=method, path=path or "/", query=query)


class _CoordinatorHTTPServer(ThreadingHTTPServer):
    """A threading server that carries the coordinator its handlers call."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], coordinator: FetchCoordinator) -> None:
        self.coordinator = coordinator
        super().__init__(address, ProxyRequestHandler)


class ProxyServer:
    """Owns the listening socket and the serving loop.

    Args:
        coordinator: Answers every request.
        host: Interface to bind.
        port: TCP port to bind; ``0`` picks a free port (see :attr:`port`).

    Raises:
        ListenError: If the address cannot be bound.

    Example::

        server = ProxyServer(coordinator, "127.0.0.1", 8080)
        server.serve_forever()
    """

    def __init__(self, coordinator: FetchCoordinator, host: str, port: int) -> None:
        try:
            self._httpd = _CoordinatorHTTPServer((host, port), coordinator)
        except OSError as exc:
            raise ListenError(f"Cannot listen on {host}:{port}: {exc}") from exc
        self._thread: Optional[threading.Thread] = None

    @property
    def host(self) -> str:
        """The bound interface."""
        return str(self._httpd.server_address[0])

    @property
    def port(self) -> int:
        """The bound port (useful after binding port ``0``)."""
        return int(self._httpd.server_address[1])

    def serve_forever(self) -> None:
        """Serve requests on the calling thread until :meth:`shutdown` is called."""
        self._httpd.serve_forever()

    def start(self) -> None:
        """Serve requests on a background daemon thread."""
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        """Stop the serving loop and close the listening socket."""
        if self._thread is not None:
            self._httpd.shutdown()
            self._thread.join()
            self._thread = None
        self._httpd.server_close()

    def __enter__(self) -> ProxyServer:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()
