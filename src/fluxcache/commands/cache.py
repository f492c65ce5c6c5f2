"""Cache commands -- inspect the artifact store without running the proxy."""

from __future__ import annotations

from typing import Optional

import typer

from fluxcache.output import info, print_data, print_table


cache_app = typer.Typer(no_args_is_help=True)


def _open_store(cache_dir: Optional[str]):
    from fluxcache.cache import CacheStore
    from fluxcache.config import cache_root, resolve_config

    config = resolve_config(cli_cache_dir=cache_dir)
    return CacheStore(cache_root(config))


@cache_app.command("locate")
def cache_locate(
    module_path: str = typer.Argument(help="Module path, e.g. 'github.com/foo/bar/@v/list'."),
    encoded: bool = typer.Option(
        False, "--encoded", "-e", help="Percent-decode MODULE_PATH first, as the proxy does."
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", "-c", help="Cache root directory."
    ),
) -> None:
    """Print where the artifact for a module path is (or would be) stored.

    The location goes to stdout; whether it is cached goes to stderr.

    Example::

        fluxcache cache locate 'github.com/foo/bar/@v/v1.0.0.info'
        fluxcache cache locate --encoded 'github.com/%21foo/bar/@v/list'
    """
    from fluxcache.coordinator import decode_module_path

    store = _open_store(cache_dir)
    path = decode_module_path(module_path) if encoded else module_path
    location = store.locate(path)
    print_data(str(location))
    info("cached" if store.exists(path) else "not cached")


@cache_app.command("stats")
def cache_stats(
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", "-c", help="Cache root directory."
    ),
) -> None:
    """Show the number and total size of cached artifacts.

    Example::

        fluxcache cache stats
        fluxcache --json cache stats
    """
    stats = _open_store(cache_dir).stats()
    print_table(
        ["directory", "entries", "size_bytes"],
        [[stats["directory"], str(stats["entries"]), str(stats["size_bytes"])]],
        title="Cache",
    )
