"""Serve command -- run the caching proxy.

Resolves the effective :class:`~fluxcache.models.ProxyConfig`, builds the
cache store, upstream client and coordinator from it, and serves until the
process is interrupted.
"""

from __future__ import annotations

from typing import Optional

import typer


def serve_command(
    ctx: typer.Context,
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", "-c", help="Cache root directory (created if absent)."
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Interface to listen on."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on."),
    upstream: Optional[str] = typer.Option(
        None, "--upstream", "-u", help="Upstream registry base URL."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Upstream timeout in seconds (default: none)."
    ),
    no_single_flight: bool = typer.Option(
        False,
        "--no-single-flight",
        help="Let concurrent misses for one module fetch independently.",
    ),
) -> None:
    """Run the caching proxy until interrupted.

    Flags override ``FLUXCACHE_*`` environment variables, which override
    ``./fluxcache.json``, which overrides the user config.

    Example::

        fluxcache serve --port 3000 --upstream https://proxy.golang.org
        GOPROXY=http://localhost:3000 go mod download
    """
    from fluxcache.cache import CacheStore
    from fluxcache.client import UpstreamClient
    from fluxcache.config import cache_root, resolve_config
    from fluxcache.coordinator import FetchCoordinator
    from fluxcache.output import get_output, info
    from fluxcache.server import ProxyServer

    verbose = ctx.obj.get("verbose", False) if ctx.obj else False
    config = resolve_config(
        cli_cache_dir=cache_dir,
        cli_host=host,
        cli_port=port,
        cli_upstream=upstream,
        cli_verbose=True if verbose else None,
        cli_timeout=timeout,
        cli_single_flight=False if no_single_flight else None,
    )
    get_output().configure(verbose=config.verbose, timestamps=True)

    root = cache_root(config)
    store = CacheStore(root)

    with UpstreamClient(config) as upstream_client:
        coordinator = FetchCoordinator(config, store, upstream_client)
        server = ProxyServer(coordinator, config.host, config.port)
        info(
            f"fluxcache starting on {server.host}:{server.port} | "
            f"cache: {root} | upstream: {config.upstream}"
        )
        try:
            server.serve_forever()
        finally:
            server.shutdown()
