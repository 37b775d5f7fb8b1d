"""Shared test fixtures for dualbuild.

Provides a throw-away library project on disk, a fake bundler that writes
output files in-process instead of spawning rollup, output-state
management, and a CLI runner. These fixtures are automatically discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Sequence

import pytest

from dualbuild.compiler import CompiledUnit
from dualbuild.exceptions import CompileError
from dualbuild.models import BuildConfig, BuildMode, OutputFormat
from dualbuild.output import OutputFormat as DisplayFormat
from dualbuild.output import OutputManager, reset_output, set_output


SAMPLE_PACKAGE: dict[str, Any] = {
    "name": "lib",
    "version": "1.2.0",
    "main": "src/index.js",
    "scripts": {"build": "dualbuild build", "test": "jest"},
    "dependencies": {"invariant": "^2.2.4"},
    "peerDependencies": {"react": ">=17"},
}

SAMPLE_SOURCES: dict[str, str] = {
    "index.js": "export { default as Foo } from 'lib/Foo'\n",
    "Foo/index.js": "export default function Foo() {}\n",
    "Foo/bar.js": "import Foo from 'lib/Foo'\nexport const bar = Foo\n",
    "Foo/__tests__/bar.test.js": "test('bar', () => {})\n",
    "Foo/notes.md": "# notes\n",
}


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Project fixtures
# ---------------------------------------------------------------------------


def write_tree(root: Path, files: dict[str, str]) -> None:
    """Create every ``relative path -> content`` pair under *root*."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A small library project: ``package.json``, ``LICENSE`` and a ``src/`` tree.

    ``NODE_ENV`` is cleared and XDG_DATA_HOME points into tmp_path so no
    test touches the real environment.
    """
    root = tmp_path / "lib"
    root.mkdir()
    (root / "package.json").write_text(json.dumps(SAMPLE_PACKAGE, indent=2))
    (root / "LICENSE").write_text("MIT\n")
    write_tree(root / "src", SAMPLE_SOURCES)

    monkeypatch.delenv("NODE_ENV", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return root


@pytest.fixture
def prod_config(project_dir: Path) -> BuildConfig:
    """Production config for :func:`project_dir`, limited to two jobs."""
    return BuildConfig(project_root=project_dir, package_name="lib", max_jobs=2)


@pytest.fixture
def dev_config(project_dir: Path) -> BuildConfig:
    """Development config for :func:`project_dir`."""
    return BuildConfig(
        project_root=project_dir,
        package_name="lib",
        mode=BuildMode.DEVELOPMENT,
        max_jobs=2,
    )


# ---------------------------------------------------------------------------
# Fake bundler
# ---------------------------------------------------------------------------


class FakeBundler:
    """In-process :class:`~dualbuild.compiler.Bundler` that records every call.

    ``emit`` writes a one-line stand-in for the compiled module. Inputs whose
    name ends with any of *fail_on* raise :class:`CompileError` instead.
    """

    def __init__(self, fail_on: Sequence[str] = ()) -> None:
        self.fail_on = tuple(fail_on)
        self.analyzed: list[tuple[Path, tuple[str, ...]]] = []
        self.emitted: list[tuple[OutputFormat, Path, Path]] = []
        self.exports: list[str] = []

    async def analyze(self, input_path: Path, external: Sequence[str]) -> CompiledUnit:
        self.analyzed.append((input_path, tuple(external)))
        return CompiledUnit(input_path=input_path, external=tuple(external))

    async def emit(
        self,
        unit: CompiledUnit,
        output_format: OutputFormat,
        output_path: Path,
        exports: str = "named",
    ) -> None:
        self.emitted.append((output_format, unit.input_path, output_path))
        self.exports.append(exports)
        # yield so that concurrent compiles interleave like real subprocesses
        await asyncio.sleep(0)
        if any(unit.input_path.as_posix().endswith(suffix) for suffix in self.fail_on):
            raise CompileError(
                f"cannot compile {unit.input_path.name}",
                source=str(unit.input_path),
                details=["SyntaxError: Unexpected token (1:4)"],
            )
        output_path.write_text(f"// {output_format.value} build of {unit.input_path.name}\n")

    def formats_for(self, suffix: str) -> list[OutputFormat]:
        return [fmt for fmt, source, _ in self.emitted if source.as_posix().endswith(suffix)]


@pytest.fixture
def fake_bundler() -> FakeBundler:
    return FakeBundler()


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Set up a quiet output manager for tests that don't care about output.

    Installs a PLAIN-format, quiet OutputManager as the global output
    and resets it after the test completes.
    """
    output = OutputManager(format=DisplayFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def plain_output() -> OutputManager:
    """Set up a plain, colourless output manager whose stderr capfd can read."""
    output = OutputManager(format=DisplayFormat.PLAIN, no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()


