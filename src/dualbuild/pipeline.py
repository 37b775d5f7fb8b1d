"""Production and development build pipelines.

Both pipelines take an explicit :class:`~dualbuild.models.BuildConfig`;
neither reads the environment. :func:`run_pipeline` picks one by
``config.mode``.

**Production** (terminates)::

    clean dist/ -> discover -> write esm + cjs manifests -> write package.json
    -> copy static assets -> compile every file to esm -> compile every file to cjs

Each format is a fan-out/fan-in batch: one task per file, at most
``max_jobs`` running at once. After the first failure no queued compile
starts; the ones already running are awaited, then the first failure is
raised and the next format never starts.

**Development** (runs until interrupted)::

    clean dev/ -> discover -> write esm + cjs manifests -> watch src/

Every ``add`` or ``change`` event for an eligible file dispatches one
compile per format without waiting for it. Other events are ignored.
Manifests and the external name set reflect the tree as discovered at
startup; they are not refreshed by watch events.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import shutil
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from dualbuild.classifier import (
    PathClassifier,
    discover,
    eligible_files,
    ensure_unique,
    module_names,
)
from dualbuild.compiler import Bundler, ModuleCompiler, RollupBundler
from dualbuild.config import base_externals, load_package_manifest
from dualbuild.descriptor import write_descriptor
from dualbuild.dispatch import TaskDispatcher
from dualbuild.exceptions import CompileError, ConfigError
from dualbuild.manifest import ManifestGenerator
from dualbuild.models import (
    BUILD_FORMATS,
    BuildConfig,
    BuildMode,
    OutputFormat,
    SourceFile,
    WatchEvent,
    WatchEventKind,
)
from dualbuild.output import built, debug, error, info, success, warning
from dualbuild.watcher import SourceWatcher, Watcher


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"


@dataclass
class BuildResult:
    """What a pipeline run produced.

    Attributes:
        output_root: The cleaned and rebuilt output directory.
        files: Eligible source files, in discovery order.
        manifests: Manifest paths that were written successfully.
        descriptor: Path of the distributable ``package.json`` (production only).
        outputs: Compiled output paths per format (production only).
    """

    output_root: Path
    files: list[SourceFile]
    manifests: list[Path] = field(default_factory=list)
    descriptor: Optional[Path] = None
    outputs: dict[OutputFormat, list[Path]] = field(default_factory=dict)


def clean_output(config: BuildConfig, root: Path) -> None:
    """Delete and recreate *root*, refusing to touch the project or source tree."""
    resolved = root.resolve()
    protected = {config.project_root.resolve(), config.source_root.resolve()}
    if resolved in protected or any(resolved in p.parents for p in protected):
        raise ConfigError(f"Refusing to clean {root}: it contains the project sources")
    if root.exists():
        shutil.rmtree(root)
    root.mkdir(parents=True, exist_ok=True)


def copy_static_assets(config: BuildConfig, destination: Path) -> list[Path]:
    """Copy files and directories listed in ``config.static_assets``.

    Missing assets are reported as warnings and skipped.
    """
    copied: list[Path] = []
    for name in config.static_assets:
        source = config.project_root / name
        target = destination / name
        if not source.exists():
            warning(f"Static asset not found, skipping: {name}")
            continue
        if source.is_dir():
            shutil.copytree(source, target, dirs_exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        copied.append(target)
    return copied


class _Pipeline:
    """Steps shared by both pipelines: clean, discover, write manifests."""

    def __init__(
        self,
        config: BuildConfig,
        bundler: Optional[Bundler] = None,
        package: Optional[dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.classifier = PathClassifier.from_config(config)
        self._bundler = bundler or RollupBundler.from_config(config)
        self._package = package

    @property
    def package(self) -> dict[str, Any]:
        if self._package is None:
            self._package = load_package_manifest(self.config.project_root)
        return self._package

    def prepare(self, root: Path) -> BuildResult:
        clean_output(self.config, root)

        files = discover(self.classifier)
        ensure_unique(files)
        eligible = eligible_files(files)
        info(f"Found {len(eligible)} module(s) in {self.config.source_root} "
             f"({len(files) - len(eligible)} skipped)")

        result = BuildResult(output_root=root, files=eligible)
        generator = ManifestGenerator(self.config)
        for output_format in BUILD_FORMATS:
            path = generator.generate(output_format, eligible)
            if path is not None:
                result.manifests.append(path)
        return result

    def make_compiler(self, root: Path, files: Sequence[SourceFile]) -> ModuleCompiler:
        return ModuleCompiler(
            self._bundler,
            root,
            base_externals(self.package, self.config),
            module_names(files),
            source_extension=self.config.source_extension,
        )


class ProductionPipeline(_Pipeline):
    """One-shot build of ``dist/``.

    Args:
        config: Effective build configuration.
        bundler: Bundling engine; defaults to :class:`RollupBundler`.
        package: Parsed ``package.json``; loaded from the project root
            when omitted.
    """

    async def run(self) -> BuildResult:
        root = self.config.dist_root
        result = self.prepare(root)

        result.descriptor = write_descriptor(
            root, self.package, index_file=f"{self.config.index_name}.js"
        )
        copy_static_assets(self.config, root)

        compiler = self.make_compiler(root, result.files)
        for output_format in BUILD_FORMATS:
            result.outputs[output_format] = await self.compile_batch(
                compiler, output_format, result.files
            )

        success(f"Built {len(result.files)} module(s) into {root}")
        return result

    async def compile_batch(
        self,
        compiler: ModuleCompiler,
        output_format: OutputFormat,
        files: Sequence[SourceFile],
    ) -> list[Path]:
        """Compile *files* to one format concurrently.

        The first failure aborts the batch: compiles already running are
        awaited, compiles still queued behind ``max_jobs`` never start.

        Raises:
            CompileError: The first failure observed, after every started
                task in the batch has finished.
        """
        semaphore = asyncio.Semaphore(self.config.max_jobs)
        aborted = asyncio.Event()
        failures: list[tuple[SourceFile, BaseException]] = []
        skipped: list[SourceFile] = []

        async def _one(source: SourceFile) -> Optional[Path]:
            async with semaphore:
                if aborted.is_set():
                    skipped.append(source)
                    return None
                try:
                    return await compiler.compile(output_format, source)
                except Exception as exc:
                    failures.append((source, exc))
                    aborted.set()
                    raise

        info(f"Compiling {len(files)} module(s) to {output_format.value}...")
        results = await asyncio.gather(*(_one(source) for source in files), return_exceptions=True)

        if failures:
            for source, exc in failures:
                error(f"{output_format.value}: {source.relative_path}: {exc}")
                if isinstance(exc, CompileError):
                    for line in exc.details:
                        error(f"  {line}")
            error(f"{len(failures)} of {len(files)} {output_format.value} compile(s) failed")
            if skipped:
                warning(f"Skipped {len(skipped)} queued {output_format.value} compile(s)")
            raise failures[0][1]

        return [path for path in results if isinstance(path, Path)]


class DevelopmentPipeline(_Pipeline):
    """Incremental build of ``dev/`` driven by file-system events.

    Args:
        config: Effective build configuration.
        bundler: Bundling engine; defaults to :class:`RollupBundler`.
        watcher: Event source; defaults to :class:`SourceWatcher`.
        package: Parsed ``package.json``; loaded from the project root
            when omitted.
    """

    def __init__(
        self,
        config: BuildConfig,
        bundler: Optional[Bundler] = None,
        watcher: Optional[Watcher] = None,
        package: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(config, bundler=bundler, package=package)
        self._watcher = watcher or SourceWatcher()
        self.dispatcher = TaskDispatcher(limit=config.max_jobs)
        self.state = PipelineState.IDLE
        self._compiler: Optional[ModuleCompiler] = None

    async def run(self) -> BuildResult:
        """Prepare ``dev/`` and process watch events until the stream ends."""
        root = self.config.dev_root
        result = self.prepare(root)
        self._compiler = self.make_compiler(root, result.files)

        self.state = PipelineState.WATCHING
        info(f"Watching {self.config.source_root} (Ctrl-C to stop)")
        async with aclosing(
            self._watcher.subscribe(self.config.source_root, self.config.exclude)
        ) as events:
            async for event in events:
                self.handle_event(event)

        await self.dispatcher.drain()
        return result

    def handle_event(self, event: WatchEvent) -> int:
        """Dispatch compiles for one event and return how many were started."""
        if self._compiler is None:
            raise RuntimeError("handle_event() called before run()")
        if event.kind not in (WatchEventKind.ADD, WatchEventKind.CHANGE):
            return 0

        source = self.classifier.classify(event.path)
        if not source.eligible:
            debug(f"Ignoring {event.kind.value} for {source.relative_path or event.path}: "
                  f"{source.excluded_by}")
            return 0

        built(source.relative_path)
        for output_format in BUILD_FORMATS:
            self.dispatcher.dispatch(
                functools.partial(self._compiler.compile, output_format, source),
                label=f"{output_format.value} {source.relative_path}",
            )
        return len(BUILD_FORMATS)


async def run_pipeline(
    config: BuildConfig,
    bundler: Optional[Bundler] = None,
    watcher: Optional[Watcher] = None,
) -> BuildResult:
    """Run the pipeline selected by ``config.mode``."""
    if config.mode == BuildMode.DEVELOPMENT:
        return await DevelopmentPipeline(config, bundler=bundler, watcher=watcher).run()
    return await ProductionPipeline(config, bundler=bundler).run()
