"""Build commands -- run the production or development pipeline.

Implements the ``dualbuild build`` and ``dualbuild watch`` top-level
commands. ``build`` honours ``NODE_ENV`` (``development`` selects the watch
pipeline) unless ``--dev`` or ``--prod`` is given; ``watch`` always runs
the development pipeline.

Usage::

    dualbuild build
    NODE_ENV=development dualbuild build
    dualbuild watch --project ../my-lib
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Optional

import typer

from dualbuild.exceptions import BundlerNotFoundError, DualbuildError
from dualbuild.models import BuildConfig, BuildMode
from dualbuild.output import debug, error, suggest


def _load_config(
    project: Optional[Path],
    mode: Optional[BuildMode],
    jobs: Optional[int],
) -> BuildConfig:
    """Resolve the build config, turning failures into a clean exit."""
    from dualbuild.config import resolve_config

    try:
        config = resolve_config(project_root=project, cli_mode=mode, overrides={"max_jobs": jobs})
    except DualbuildError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    debug(f"Mode: {config.mode.value}, project: {config.project_root}")
    return config


def _run(coro: Coroutine[Any, Any, Any]) -> None:
    """Run a pipeline coroutine and map dualbuild errors to exit codes."""
    try:
        asyncio.run(coro)
    except BundlerNotFoundError as exc:
        error(str(exc))
        suggest("Install rollup in the project: npm install --save-dev rollup")
        raise typer.Exit(code=exc.exit_code) from None
    except DualbuildError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def build_command(
    dev: Optional[bool] = typer.Option(
        None, "--dev/--prod",
        help="Force the development or production pipeline. [default: from NODE_ENV]",
    ),
    project: Optional[Path] = typer.Option(
        None, "--project", "-C",
        help="Project directory containing package.json. [default: nearest to cwd]",
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1,
        help="Maximum concurrent compiles. [default: CPU count]",
    ),
) -> None:
    """Build the library into dist/ (or dev/ in development mode).

    Production builds clean ``dist/``, write both path-mapping manifests,
    the distributable ``package.json`` and static assets, then compile
    every module to ESM and afterwards to CommonJS.

    Example::

        dualbuild build
        dualbuild build --dev
    """
    from dualbuild.pipeline import run_pipeline

    mode = None
    if dev is not None:
        mode = BuildMode.DEVELOPMENT if dev else BuildMode.PRODUCTION
    config = _load_config(project, mode, jobs)
    _run(run_pipeline(config))


def watch_command(
    project: Optional[Path] = typer.Option(
        None, "--project", "-C",
        help="Project directory containing package.json. [default: nearest to cwd]",
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1,
        help="Maximum concurrent compiles. [default: CPU count]",
    ),
) -> None:
    """Build into dev/ and rebuild changed files until interrupted.

    Example::

        dualbuild watch
    """
    from dualbuild.pipeline import DevelopmentPipeline

    config = _load_config(project, BuildMode.DEVELOPMENT, jobs)
    _run(DevelopmentPipeline(config).run())
