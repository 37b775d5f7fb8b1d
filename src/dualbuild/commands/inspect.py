"""Inspect commands -- examine classification and manifests without building.

Provides the ``dualbuild inspect`` sub-command group:

* ``modules`` -- every file under the source root with its eligibility,
  public module name, and exclusion reason.
* ``manifest`` -- the mapping stored in a generated path-mapping module.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from dualbuild.exceptions import DualbuildError, InvalidUsageError
from dualbuild.models import BuildConfig, BuildMode
from dualbuild.output import error, get_output, info, suggest


inspect_app = typer.Typer(no_args_is_help=True)


def _fail(exc: DualbuildError) -> typer.Exit:
    error(str(exc))
    return typer.Exit(code=exc.exit_code)


def _config(project: Optional[Path], dev: bool) -> BuildConfig:
    from dualbuild.config import resolve_config

    mode = BuildMode.DEVELOPMENT if dev else None
    try:
        return resolve_config(project_root=project, cli_mode=mode)
    except DualbuildError as exc:
        raise _fail(exc) from None


@inspect_app.command("modules")
def inspect_modules(
    project: Optional[Path] = typer.Option(
        None, "--project", "-C", help="Project directory containing package.json."
    ),
    all_files: bool = typer.Option(
        False, "--all", "-a", help="Include files that are not built."
    ),
) -> None:
    """List source files and the module names they map to.

    Example::

        dualbuild inspect modules
        dualbuild inspect modules --all --json
    """
    from dualbuild.classifier import PathClassifier, discover

    config = _config(project, dev=False)
    files = discover(PathClassifier.from_config(config))

    rows: list[list[str]] = []
    for source in files:
        if not source.eligible and not all_files:
            continue
        rows.append([
            source.relative_path,
            "yes" if source.eligible else "no",
            source.module_name or "-",
            source.excluded_by or "",
        ])

    eligible = sum(1 for source in files if source.eligible)
    get_output().print_table(
        ["Path", "Built", "Module", "Excluded by"],
        rows,
        title=f"{config.package_name} -- Modules ({eligible})",
    )


@inspect_app.command("manifest")
def inspect_manifest(
    format_name: str = typer.Option(
        "cjs", "--format", "-f", help="Output format: esm or cjs."
    ),
    project: Optional[Path] = typer.Option(
        None, "--project", "-C", help="Project directory containing package.json."
    ),
    dev: bool = typer.Option(
        False, "--dev", help="Read the development manifest instead of dist/."
    ),
) -> None:
    """Show the module-name -> location mapping of a generated manifest.

    Example::

        dualbuild inspect manifest --format esm
        dualbuild inspect manifest --dev --json
    """
    from dualbuild.manifest import manifest_path, read_manifest
    from dualbuild.models import OutputFormat

    try:
        output_format = OutputFormat(format_name.lower())
    except ValueError:
        raise _fail(
            InvalidUsageError(f"Unknown format '{format_name}'. Choose one of: esm, cjs")
        ) from None

    config = _config(project, dev=dev)
    path = manifest_path(config, output_format)
    if not path.is_file():
        error(f"No manifest at {path}")
        suggest("Run: dualbuild build" + (" --dev" if dev else ""))
        raise typer.Exit(code=1)

    mapping = read_manifest(path)
    info(f"Manifest: {path}")
    get_output().print_table(
        ["Module", "Location"],
        [[name, location] for name, location in mapping.items()],
        title=f"{output_format.value} manifest ({len(mapping)})",
    )
