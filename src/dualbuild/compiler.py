"""Per-file compilation through an external bundler.

Each eligible source file is compiled on its own into exactly one output
file per format. To keep it that way, every other library module -- the
whole external name set -- is declared external on every compile, so a
``require('lib/Foo')`` inside ``Foo/bar.js`` stays a reference instead of
being inlined.

The bundler is reached through the two-phase :class:`Bundler` protocol:

* ``analyze(input_path, external)`` -- resolve options for one input and
  return a :class:`CompiledUnit`.
* ``emit(unit, format, output_path, exports="named")`` -- write the output.

:class:`RollupBundler` implements the protocol with the rollup CLI run as a
subprocess. Tests substitute an in-process fake.
"""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Sequence

from dualbuild.exceptions import BundlerNotFoundError, CompileError
from dualbuild.models import BuildConfig, BuildTarget, OutputFormat, SourceFile
from dualbuild.output import debug

_STDERR_TAIL = 20


@dataclass(frozen=True)
class CompiledUnit:
    """Resolved input options for one source file.

    Attributes:
        input_path: Absolute path of the source file.
        external: Module ids left as references in the output.
        options: Bundler-specific extras (e.g. a base config file).
    """

    input_path: Path
    external: tuple[str, ...]
    options: dict[str, str] = field(default_factory=dict)


class Bundler(Protocol):
    """The external bundling engine, one input and one output at a time."""

    async def analyze(self, input_path: Path, external: Sequence[str]) -> CompiledUnit: ...

    async def emit(
        self,
        unit: CompiledUnit,
        output_format: OutputFormat,
        output_path: Path,
        exports: str = "named",
    ) -> None: ...


class RollupBundler:
    """Drive the rollup CLI as a subprocess.

    The analyze phase checks the input exists and freezes the options; the
    emit phase runs ``rollup --input ... --file ... --format ...`` and waits
    for it. There is no timeout: a compile runs until rollup exits.

    Args:
        command: Executable and leading arguments
            (default ``npx --no-install rollup``).
        config_file: Optional base rollup config passed with ``--config``.
        cwd: Working directory for the subprocess (the project root).
    """

    def __init__(
        self,
        command: Sequence[str] = ("npx", "--no-install", "rollup"),
        config_file: Optional[Path] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        self._command = list(command)
        self._config_file = config_file
        self._cwd = cwd

    @classmethod
    def from_config(cls, config: BuildConfig) -> RollupBundler:
        config_file = None
        if config.bundler.config_file:
            config_file = config.project_root / config.bundler.config_file
        return cls(config.bundler.command, config_file=config_file, cwd=config.project_root)

    async def analyze(self, input_path: Path, external: Sequence[str]) -> CompiledUnit:
        if not input_path.is_file():
            raise CompileError(f"Source file not found: {input_path}", source=str(input_path))
        options: dict[str, str] = {}
        if self._config_file is not None:
            options["config"] = str(self._config_file)
        return CompiledUnit(input_path=input_path, external=tuple(external), options=options)

    def build_args(
        self,
        unit: CompiledUnit,
        output_format: OutputFormat,
        output_path: Path,
        exports: str = "named",
    ) -> list[str]:
        """Return the full argument vector for one rollup invocation."""
        args = list(self._command)
        if "config" in unit.options:
            args.extend(["--config", unit.options["config"]])
        args.extend([
            "--input", str(unit.input_path),
            "--file", str(output_path),
            "--format", output_format.value,
            "--exports", exports,
            "--silent",
        ])
        if unit.external:
            args.extend(["--external", ",".join(unit.external)])
        return args

    async def emit(
        self,
        unit: CompiledUnit,
        output_format: OutputFormat,
        output_path: Path,
        exports: str = "named",
    ) -> None:
        args = self.build_args(unit, output_format, output_path, exports)
        debug(f"Running: {shlex.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(self._cwd) if self._cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise BundlerNotFoundError(
                f"Bundler executable not found: {self._command[0]}",
                source=str(unit.input_path),
            ) from exc

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            lines = stderr.decode("utf-8", errors="replace").splitlines()
            if not lines:
                lines = stdout.decode("utf-8", errors="replace").splitlines()
            raise CompileError(
                f"rollup exited with status {process.returncode} for {unit.input_path}",
                source=str(unit.input_path),
                details=lines[-_STDERR_TAIL:],
            )


class ModuleCompiler:
    """Compile one source file into one output file in one format.

    Args:
        bundler: The bundling engine.
        output_root: Root of the output tree (``dist/`` or ``dev/``).
        base_external: Module ids that are external for every file
            (package dependencies, configured extras).
        module_names: The external name set -- every library module name.
        source_extension: Extension replaced with ``.js`` in output paths.
    """

    def __init__(
        self,
        bundler: Bundler,
        output_root: Path,
        base_external: Sequence[str],
        module_names: Sequence[str],
        source_extension: str = ".js",
    ) -> None:
        self._bundler = bundler
        self._output_root = output_root
        self._source_extension = source_extension
        self._external = tuple(dict.fromkeys([*base_external, *module_names]))

    @property
    def external(self) -> tuple[str, ...]:
        """Base external ids followed by every library module name."""
        return self._external

    def target(self, output_format: OutputFormat, source: SourceFile) -> BuildTarget:
        return BuildTarget(
            format=output_format,
            source=source,
            output_root=self._output_root,
            source_extension=self._source_extension,
        )

    async def compile(self, output_format: OutputFormat, source: SourceFile) -> Path:
        """Compile *source* to *output_format* and return the output path.

        Raises:
            CompileError: Propagated unchanged from the bundler.
        """
        output_path = self.target(output_format, source).output_path
        output_path.parent.mkdir(parents=True, exist_ok=True)
        unit = await self._bundler.analyze(source.path, self._external)
        await self._bundler.emit(unit, output_format, output_path, exports="named")
        debug(f"{output_format.value}: {source.relative_path} -> {output_path}")
        return output_path
