"""Hit/miss orchestration for one proxied request.

:class:`FetchCoordinator` turns a :class:`~fluxcache.models.ProxyRequest`
into a :class:`~fluxcache.models.ProxyResponse`:

1. The raw request path is percent-decoded into a logical module path
   (:func:`decode_module_path`). A malformed escape ends the request with
   ``400 bad path`` before any I/O.
2. The :class:`~fluxcache.cache.CacheStore` is consulted. A hit is served
   as-is with a minimal set of content headers; there is no freshness check.
   A storage failure is logged and handled as a miss.
3. On a miss the upstream is fetched once (shared between concurrent misses
   for the same key when ``single_flight`` is on). Anything but a 200 ends
   the request with ``502 upstream error`` and nothing is cached.
4. A 200 body is written to the store, then replayed to the client with the
   upstream's status and headers. A failed write is logged and the client
   is served anyway.

Each request is independent; the only cross-request state is the
single-flight table.
"""

from __future__ import annotations

import codecs
import mimetypes
import re
from email.utils import formatdate
from typing import Optional
from urllib.parse import unquote

from fluxcache.cache import CacheStore, cache_key
from fluxcache.client.upstream import UpstreamFetcher, build_upstream_url
from fluxcache.exceptions import (
    BadPathError,
    FluxcacheError,
    StorageError,
    UpstreamUnavailableError,
)
from fluxcache.models import (
    CacheStatus,
    LookupStatus,
    ProxyConfig,
    ProxyRequest,
    ProxyResponse,
    UpstreamResponse,
)
from fluxcache.output import debug, warning
from fluxcache.singleflight import SingleFlight

_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

# Built-in table only, so the answer does not depend on /etc/mime.types.
_MIME_TYPES = mimetypes.MimeTypes()

_SNIFF_LEN = 512
_BINARY_CHARS = re.compile(r"[\x00-\x08\x0b\x0e-\x1a\x1c-\x1f]")

TEXT_PLAIN = "text/plain; charset=utf-8"
OCTET_STREAM = "application/octet-stream"


def decode_module_path(raw_path: str) -> str:
    """Return the logical module path for a raw, percent-encoded request path.

    The leading slash is stripped and escapes are decoded as UTF-8; bytes
    that are not valid UTF-8 are kept as surrogate escapes so the cache key
    still covers the exact bytes requested. ``+`` is left alone.

    Raises:
        BadPathError: If a ``%`` is not followed by two hex digits.
    """
    path = raw_path[1:] if raw_path.startswith("/") else raw_path
    match = _MALFORMED_ESCAPE.search(path)
    if match is not None:
        bad = path[match.start():match.start() + 3]
        raise BadPathError(f"Invalid escape {bad!r} in path {raw_path!r}")
    return unquote(path, encoding="utf-8", errors="surrogateescape")


def filename_hint(module_path: str) -> str:
    """Return the last segment of *module_path*, used to pick a content type."""
    name = module_path.rstrip("/").rsplit("/", 1)[-1]
    return name or "."


def guess_content_type(filename: str, body: bytes) -> str:
    """Pick a ``Content-Type`` from the file extension, falling back to sniffing.

    Sniffing only distinguishes text from binary: a body whose first bytes
    are UTF-8 without control characters is ``text/plain``.
    """
    guessed, _encoding = _MIME_TYPES.guess_type(filename, strict=False)
    if guessed:
        if guessed.startswith("text/"):
            return f"{guessed}; charset=utf-8"
        return guessed

    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        head = decoder.decode(body[:_SNIFF_LEN], final=False)
    except UnicodeDecodeError:
        return OCTET_STREAM
    if _BINARY_CHARS.search(head):
        return OCTET_STREAM
    return TEXT_PLAIN


def error_response(exc: FluxcacheError) -> ProxyResponse:
    """Build the plain-text error response for *exc*."""
    return ProxyResponse(
        status_code=exc.http_status,
        headers=[
            ("Content-Type", TEXT_PLAIN),
            ("X-Content-Type-Options", "nosniff"),
        ],
        body=f"{exc.public_message}\n".encode("utf-8"),
        cache_status=CacheStatus.ERROR,
    )


class FetchCoordinator:
    """Serve module requests from the cache store, filling it from the upstream on a miss.

    Args:
        config: Proxy settings; ``upstream`` names the registry in log
            lines and ``single_flight`` toggles miss coalescing.
        store: Where artifacts are read from and written to.
        fetcher: The upstream fetch capability, usually an entered
            :class:`~fluxcache.client.UpstreamClient`.

    Example::

        with UpstreamClient(config) as upstream:
            coordinator = FetchCoordinator(config, CacheStore(root), upstream)
            response = coordinator.handle(ProxyRequest(path="/github.com/foo/bar/@v/list"))
    """

    def __init__(
        self,
        config: ProxyConfig,
        store: CacheStore,
        fetcher: UpstreamFetcher,
    ) -> None:
        self._config = config
        self._store = store
        self._fetcher = fetcher
        self._flight: Optional[SingleFlight[UpstreamResponse]] = (
            SingleFlight() if config.single_flight else None
        )

    @property
    def store(self) -> CacheStore:
        """The cache store this coordinator reads and fills."""
        return self._store

    def handle(self, request: ProxyRequest) -> ProxyResponse:
        """Answer *request*, mapping any fluxcache error to its HTTP error response."""
        try:
            return self.resolve(request)
        except FluxcacheError as exc:
            debug(f"{request.method} {request.path} -> {exc.http_status}: {exc}")
            return error_response(exc)

    def resolve(self, request: ProxyRequest) -> ProxyResponse:
        """Answer *request*, raising on failure.

        Raises:
            BadPathError: If the request path cannot be decoded.
            UpstreamUnavailableError: On a transport failure or non-200
                upstream answer.
            UpstreamReadError: If the upstream body cannot be read.
        """
        module_path = decode_module_path(request.path)

        lookup = self._store.read(module_path)
        if lookup.status == LookupStatus.HIT:
            debug(f"CACHE HIT: {module_path}")
            return self._serve_artifact(module_path, lookup.data or b"")
        if lookup.status == LookupStatus.STORAGE_ERROR:
            warning(f"Cache read failed, refetching {module_path}: {lookup.error}")

        upstream = self._fetch(request, module_path)
        return ProxyResponse(
            status_code=upstream.status_code,
            headers=list(upstream.headers),
            body=upstream.content,
            cache_status=CacheStatus.MISS,
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _serve_artifact(self, module_path: str, data: bytes) -> ProxyResponse:
        return ProxyResponse(
            status_code=200,
            headers=[
                ("Content-Type", guess_content_type(filename_hint(module_path), data)),
                ("Last-Modified", formatdate(usegmt=True)),
                ("X-Cache", CacheStatus.HIT.value),
            ],
            body=data,
            cache_status=CacheStatus.HIT,
        )

    def _fetch(self, request: ProxyRequest, module_path: str) -> UpstreamResponse:
        """Fetch and store, joining an in-flight fetch for the same key if there is one."""
        if self._flight is None:
            return self._fetch_and_store(request, module_path)

        result, shared = self._flight.do(
            cache_key(module_path),
            lambda: self._fetch_and_store(request, module_path),
        )
        if shared:
            debug(f"Joined in-flight fetch: {module_path}")
        return result

    def _fetch_and_store(self, request: ProxyRequest, module_path: str) -> UpstreamResponse:
        url = build_upstream_url(self._config.upstream, request.path, request.query)
        debug(f"CACHE MISS -> FETCH: {url}")

        upstream = self._fetcher.fetch(request.path, request.query)
        if upstream.status_code != 200:
            raise UpstreamUnavailableError(
                f"Upstream answered HTTP {upstream.status_code} for {url}",
                upstream_status=upstream.status_code,
            )

        try:
            self._store.write(module_path, upstream.content)
        except StorageError as exc:
            warning(f"{exc}; serving without caching")
        return upstream
