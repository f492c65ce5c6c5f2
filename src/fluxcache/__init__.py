"""fluxcache -- a transparent caching reverse proxy for module registries.

fluxcache sits between module clients (e.g. ``GOPROXY=http://localhost:8080``)
and an upstream registry. The first request for a module path is fetched
from the upstream and its body stored on disk under the SHA-256 of the path;
every later request for that path is answered from disk.

Typical workflow::

    fluxcache serve --upstream https://proxy.golang.org --cache-dir /var/cache/fluxcache
    fluxcache cache stats

Modules:
    app: Typer application and CLI entry point.
    coordinator: Hit/miss orchestration for one request.
    cache: Content-addressed artifact store.
    client: Upstream HTTP client.
    server: Thread-per-request HTTP listener.
    singleflight: Coalescing of concurrent misses.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code and HTTP status mapping.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
