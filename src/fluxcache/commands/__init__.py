"""Built-in CLI commands.

Each module defines one Typer sub-application or command that
:mod:`fluxcache.app` registers on the root application:

* :mod:`~fluxcache.commands.serve` -- ``fluxcache serve``
* :mod:`~fluxcache.commands.cache` -- ``fluxcache cache locate|stats``
* :mod:`~fluxcache.commands.config` -- ``fluxcache config show|set|reset``
"""
