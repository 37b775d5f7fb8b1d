"""Canonical Pydantic models shared across all dualbuild modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- loaded from ``dualbuild.json`` and CLI flags:
    :class:`ExclusionRule`, :class:`BundlerConfig`, and :class:`BuildConfig`.

**Build models** -- produced while a pipeline runs and discarded afterwards:
    :class:`OutputFormat`, :class:`BuildMode`, :class:`SourceFile`,
    :class:`BuildTarget`, :class:`ManifestEntry`, :class:`WatchEventKind`,
    and :class:`WatchEvent`.

All models use Pydantic v2. Build models are frozen: a :class:`SourceFile`
is recreated for every pass (or every watch event) rather than updated.
"""

from __future__ import annotations

import enum
import os
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Enumerations ---


class OutputFormat(str, enum.Enum):
    """Module formats every eligible source file is compiled into.

    The value doubles as the output sub-directory name and as the format
    name handed to the bundler.
    """

    ESM = "esm"
    CJS = "cjs"


BUILD_FORMATS: tuple[OutputFormat, ...] = (OutputFormat.ESM, OutputFormat.CJS)
"""Formats in build order. ESM is fully compiled before CJS starts."""


class BuildMode(str, enum.Enum):
    """Which pipeline a run uses. Chosen once at startup, never switched."""

    PRODUCTION = "production"
    DEVELOPMENT = "development"


# --- Configuration models ---


class ExclusionRule(BaseModel):
    """One row of the exclusion table consulted by the path classifier.

    ``pattern`` is a regular expression searched (not anchored) in the
    root-relative POSIX path of a candidate file. ``reason`` is shown by
    ``dualbuild inspect modules`` next to every file the rule excludes.
    """

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(description="Regular expression searched in the root-relative path")
    reason: str = Field(default="excluded", description="Why matching files are not built")

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid exclusion pattern {value!r}: {exc}") from exc
        return value

    def matches(self, relative_path: str) -> bool:
        """Return ``True`` if *relative_path* contains a match for the pattern."""
        return re.search(self.pattern, relative_path) is not None


DEFAULT_EXCLUSIONS: tuple[ExclusionRule, ...] = (
    ExclusionRule(pattern=r"__tests__/", reason="test directory"),
    ExclusionRule(pattern=r"test\.js", reason="test file"),
    ExclusionRule(pattern=r"type\.js", reason="type declaration file"),
    ExclusionRule(pattern=r"integrationTest\.js", reason="integration test file"),
    ExclusionRule(pattern=r"__mocks__", reason="mock directory"),
    ExclusionRule(pattern=r"Collection/RecordCache\.js", reason="legacy cache module"),
    ExclusionRule(pattern=r"\.DS_Store", reason="OS metadata file"),
)

DEFAULT_STATIC_ASSETS: tuple[str, ...] = (
    "LICENSE",
    "README.md",
    "yarn.lock",
    "docs",
    "src",
    "native",
)


class BundlerConfig(BaseModel):
    """How to invoke the external bundler."""

    model_config = ConfigDict(extra="forbid")

    command: list[str] = Field(
        default_factory=lambda: ["npx", "--no-install", "rollup"],
        description="Executable and leading arguments used to run rollup",
    )
    config_file: Optional[str] = Field(
        default=None,
        description="Base rollup config file, relative to the project root",
    )

    @field_validator("command")
    @classmethod
    def _check_command(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("bundler command must not be empty")
        return value


class BuildConfig(BaseModel):
    """Effective configuration for one pipeline run.

    Created by :func:`~dualbuild.config.resolve_config` from CLI flags,
    ``NODE_ENV``, the project-local ``dualbuild.json``, and ``package.json``,
    then passed explicitly into
    :class:`~dualbuild.pipeline.ProductionPipeline` or
    :class:`~dualbuild.pipeline.DevelopmentPipeline`.

    Directory fields are relative to :attr:`project_root`.
    """

    model_config = ConfigDict(extra="forbid")

    project_root: Path
    package_name: str
    mode: BuildMode = BuildMode.PRODUCTION
    source_dir: str = "src"
    dist_dir: str = "dist"
    dev_dir: str = "dev"
    source_extension: str = ".js"
    index_name: str = "index"
    manifest_filename: str = "path-mapping.js"
    exclude: list[ExclusionRule] = Field(default_factory=lambda: list(DEFAULT_EXCLUSIONS))
    static_assets: list[str] = Field(default_factory=lambda: list(DEFAULT_STATIC_ASSETS))
    external: list[str] = Field(
        default_factory=list,
        description="Extra module ids that are never inlined",
    )
    bundler: BundlerConfig = Field(default_factory=BundlerConfig)
    max_jobs: int = Field(
        default_factory=lambda: os.cpu_count() or 4,
        ge=1,
        description="Upper bound on concurrently running compile tasks",
    )

    @field_validator("source_extension")
    @classmethod
    def _check_extension(cls, value: str) -> str:
        if not value.startswith(".") or len(value) < 2:
            raise ValueError("source_extension must look like '.js'")
        return value

    @property
    def is_development(self) -> bool:
        return self.mode == BuildMode.DEVELOPMENT

    @property
    def source_root(self) -> Path:
        return self.project_root / self.source_dir

    @property
    def dist_root(self) -> Path:
        return self.project_root / self.dist_dir

    @property
    def dev_root(self) -> Path:
        return self.project_root / self.dev_dir

    @property
    def output_root(self) -> Path:
        """Output tree for the configured mode (``dev/`` or ``dist/``)."""
        return self.dev_root if self.is_development else self.dist_root


# --- Build models ---


class SourceFile(BaseModel):
    """A candidate input file together with its classification.

    Produced by :meth:`~dualbuild.classifier.PathClassifier.classify`.
    ``module_name`` and ``derived_name`` are only set for eligible files;
    ``excluded_by`` names the rule (or reason) that rejected an ineligible
    one.

    Attributes:
        path: Absolute path of the file.
        relative_path: POSIX path relative to the source root.
        eligible: Whether the file takes part in the build.
        derived_name: Root-relative name without extension, with directory
            index files collapsed to their directory (``""`` for the root
            index).
        module_name: Public module name, e.g. ``lib/Foo/bar``.
        excluded_by: Reason the file was rejected, if it was.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    relative_path: str
    eligible: bool
    derived_name: Optional[str] = None
    module_name: Optional[str] = None
    excluded_by: Optional[str] = None


class BuildTarget(BaseModel):
    """One (format, source file) pair and the single file it compiles to."""

    model_config = ConfigDict(frozen=True)

    format: OutputFormat
    source: SourceFile
    output_root: Path
    source_extension: str = ".js"

    @property
    def output_path(self) -> Path:
        """``<output_root>/<format>/<relative path>`` with a ``.js`` extension."""
        relative = self.source.relative_path
        if relative.endswith(self.source_extension):
            relative = relative[: -len(self.source_extension)]
        return self.output_root / self.format.value / f"{relative}.js"


class ManifestEntry(BaseModel):
    """A public module name and the location a resolver should load it from."""

    model_config = ConfigDict(frozen=True)

    module_name: str
    location: str


class WatchEventKind(str, enum.Enum):
    """Kinds of events emitted by :class:`~dualbuild.watcher.SourceWatcher`."""

    ADD = "add"
    CHANGE = "change"
    REMOVE = "remove"
    READY = "ready"


class WatchEvent(BaseModel):
    """A single file-system notification for a path under the source root."""

    model_config = ConfigDict(frozen=True)

    kind: WatchEventKind
    path: Path
