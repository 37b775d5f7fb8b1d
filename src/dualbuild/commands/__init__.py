"""Built-in CLI sub-commands for dualbuild.

This package groups the Typer command modules that form the CLI's
top-level command tree:

* :mod:`~dualbuild.commands.build` -- ``build`` and ``watch``, the two
  pipelines.
* :mod:`~dualbuild.commands.inspect` -- look at module classification and
  generated manifests without building.
* :mod:`~dualbuild.commands.config` -- print the effective configuration.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``inspect``) or plain callback functions
registered directly on the root app (``build``, ``watch``).
"""
