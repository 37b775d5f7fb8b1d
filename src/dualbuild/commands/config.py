"""Config command -- print the effective build configuration.

Provides ``dualbuild config show``, which resolves the configuration exactly
as ``dualbuild build`` would (CLI flags, ``NODE_ENV``, ``dualbuild.json``,
``package.json``) and prints it as data.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from dualbuild.output import error, format_data, info


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    project: Optional[Path] = typer.Option(
        None, "--project", "-C", help="Project directory containing package.json."
    ),
) -> None:
    """Show the configuration a build in this project would use.

    Example::

        dualbuild config show
        dualbuild config show --json
    """
    from dualbuild.config import resolve_config
    from dualbuild.exceptions import DualbuildError

    try:
        config = resolve_config(project_root=project)
    except DualbuildError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Project: {config.project_root}")
    format_data(config.model_dump(mode="json"))
