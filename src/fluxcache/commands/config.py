"""Config commands -- view and modify the user configuration.

Provides the ``fluxcache config`` sub-command group for reading, updating,
and resetting the user's config file
(:class:`~fluxcache.models.ProxyConfig`). Settings stored here are the
lowest-precedence layer: ``./fluxcache.json``, ``FLUXCACHE_*`` environment
variables and CLI flags all override them.
"""

from __future__ import annotations

import typer

from fluxcache.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_NULL_VALUES = ("", "null", "none")


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Prints the config directory path to stderr, then the configuration
    resolved through the full precedence chain to stdout.

    Example::

        fluxcache config show
        fluxcache --json config show
    """
    from fluxcache.config import get_config_dir, resolve_config

    config = resolve_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key, e.g. 'upstream' or 'port'."),
    value: str = typer.Argument(help="Value to set; 'null' clears optional keys."),
) -> None:
    """Set a user configuration value.

    The value is coerced to match the existing field's type (bool or int);
    ``null`` clears optional settings such as ``cache_dir``. The result is
    validated against :class:`~fluxcache.models.ProxyConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key is unknown, the value cannot be
            coerced, or validation fails.

    Example::

        fluxcache config set upstream https://goproxy.io
        fluxcache config set port 3000
        fluxcache config set upstream_timeout 30
    """
    from pydantic import ValidationError

    from fluxcache.config import load_user_config, save_user_config
    from fluxcache.models import ProxyConfig

    config = load_user_config()
    data = config.model_dump(mode="json")

    if key not in ProxyConfig.model_fields:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = data[key]
    coerced: object
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int) and not isinstance(current, bool):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif value.lower() in _NULL_VALUES and ProxyConfig.model_fields[key].default is None:
        coerced = None
    else:
        coerced = value

    data[key] = coerced

    try:
        new_config = ProxyConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_user_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the user configuration to defaults.

    Asks for confirmation unless ``--force`` is given.

    Example::

        fluxcache config reset --force
    """
    from fluxcache.config import save_user_config
    from fluxcache.models import ProxyConfig

    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_user_config(ProxyConfig())
    success("Configuration reset to defaults.")
