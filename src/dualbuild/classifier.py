"""Path classification: build eligibility and public module names.

Everything here is a pure function of a path string plus two tables held by
:class:`PathClassifier`: the exclusion rules and the source-root prefix. No
file contents are read.

A path goes through three steps:

1. **Root stripping** -- the source-root prefix is removed to get a
   root-relative POSIX path ``R`` (``Foo/bar.js``). Relative inputs are
   taken as already root-relative; absolute paths outside the root are
   ineligible.
2. **Eligibility** -- ``R`` must end in the source extension and must not
   match any :class:`~dualbuild.models.ExclusionRule`.
3. **Naming** -- a directory index file (``Foo/index.js``) takes its
   directory's name (``Foo``); any other file drops its extension
   (``Foo/bar``). The public module name is the package name for the root
   index and ``<package>/<derived>`` for everything else.

:func:`discover` walks a source tree and classifies every file in walk
order; :func:`ensure_unique` rejects trees where two files collapse to the
same module name.
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from dualbuild.exceptions import DuplicateModuleError
from dualbuild.models import BuildConfig, ExclusionRule, SourceFile

OUTSIDE_ROOT = "outside source root"
WRONG_EXTENSION = "not a source file"


def match_exclusion(relative_path: str, rules: Sequence[ExclusionRule]) -> Optional[ExclusionRule]:
    """Return the first rule matching *relative_path*, or ``None``."""
    for rule in rules:
        if rule.matches(relative_path):
            return rule
    return None


class PathClassifier:
    """Decide, from a path alone, whether it is built and what it is called.

    Args:
        source_root: Absolute source directory (``<project>/src``).
        package_name: Public name of the library (``package.json`` name).
        rules: Exclusion table.
        extension: Source file extension, including the dot.
        index_name: Basename (without extension) of directory index files.

    Example::

        classifier = PathClassifier(Path("/work/lib/src"), "lib", DEFAULT_EXCLUSIONS)
        classifier.classify("/work/lib/src/Foo/index.js").module_name  # "lib/Foo"
    """

    def __init__(
        self,
        source_root: Path,
        package_name: str,
        rules: Sequence[ExclusionRule],
        extension: str = ".js",
        index_name: str = "index",
    ) -> None:
        self._root = Path(source_root)
        self._package_name = package_name
        self._rules = tuple(rules)
        self._extension = extension
        self._index_file = f"{index_name}{extension}"

    @classmethod
    def from_config(cls, config: BuildConfig) -> PathClassifier:
        return cls(
            config.source_root,
            config.package_name,
            config.exclude,
            extension=config.source_extension,
            index_name=config.index_name,
        )

    @property
    def source_root(self) -> Path:
        return self._root

    @property
    def rules(self) -> tuple[ExclusionRule, ...]:
        return self._rules

    def relative_path(self, path: str | Path) -> Optional[str]:
        """Return *path* relative to the source root as POSIX, or ``None`` if outside it."""
        candidate = Path(path)
        if not candidate.is_absolute():
            return posixpath.normpath(candidate.as_posix())
        try:
            relative = candidate.relative_to(self._root).as_posix()
        except ValueError:
            return None
        return posixpath.normpath(relative)

    def derive_name(self, relative_path: str) -> str:
        """Root-relative module name: index files collapse to their directory.

        ``index.js`` -> ``""``, ``Foo/index.js`` -> ``Foo``,
        ``Foo/bar.js`` -> ``Foo/bar``.
        """
        if posixpath.basename(relative_path) == self._index_file:
            return posixpath.dirname(relative_path)
        return relative_path[: -len(self._extension)]

    def module_name(self, derived_name: str) -> str:
        if not derived_name:
            return self._package_name
        return f"{self._package_name}/{derived_name}"

    def classify(self, path: str | Path) -> SourceFile:
        """Classify one path. Never raises; ineligible paths carry ``excluded_by``."""
        relative = self.relative_path(path)
        absolute = Path(path) if Path(path).is_absolute() else self._root / Path(path)
        if relative is None or relative in ("", ".", "..") or relative.startswith("../"):
            return SourceFile(
                path=absolute,
                relative_path=relative or "",
                eligible=False,
                excluded_by=OUTSIDE_ROOT,
            )

        if not relative.endswith(self._extension):
            return SourceFile(
                path=absolute, relative_path=relative, eligible=False, excluded_by=WRONG_EXTENSION
            )

        rule = match_exclusion(relative, self._rules)
        if rule is not None:
            return SourceFile(
                path=absolute, relative_path=relative, eligible=False, excluded_by=rule.reason
            )

        derived = self.derive_name(relative)
        return SourceFile(
            path=absolute,
            relative_path=relative,
            eligible=True,
            derived_name=derived,
            module_name=self.module_name(derived),
        )

    def is_ignored(self, path: str | Path) -> bool:
        """Whether the watch service should drop events for *path* entirely."""
        relative = self.relative_path(path)
        if relative is None:
            return True
        return match_exclusion(relative, self._rules) is not None


def walk_tree(root: Path) -> Iterator[Path]:
    """Yield every file under *root* depth-first, entries in name order.

    A directory's children are visited right where the directory sits in
    its parent's listing (pre-order), so ``a.js`` comes before ``b/x.js``
    which comes before ``c.js``.
    """
    try:
        entries = sorted(root.iterdir(), key=lambda entry: entry.name)
    except FileNotFoundError:
        return
    for entry in entries:
        if entry.is_dir():
            yield from walk_tree(entry)
        elif entry.is_file():
            yield entry


def discover(classifier: PathClassifier) -> list[SourceFile]:
    """Classify every file under the classifier's source root, in walk order."""
    return [classifier.classify(path) for path in walk_tree(classifier.source_root)]


def eligible_files(files: Iterable[SourceFile]) -> list[SourceFile]:
    return [source for source in files if source.eligible]


def ensure_unique(files: Iterable[SourceFile]) -> None:
    """Reject eligible files that share a module name.

    Raises:
        DuplicateModuleError: Naming the module and every file producing it.
    """
    seen: dict[str, list[str]] = {}
    for source in files:
        if source.eligible and source.module_name is not None:
            seen.setdefault(source.module_name, []).append(source.relative_path)
    for module_name, paths in seen.items():
        if len(paths) > 1:
            raise DuplicateModuleError(module_name, paths)


def module_names(files: Iterable[SourceFile]) -> list[str]:
    """Module names of all eligible files, in order (the external name set)."""
    return [source.module_name for source in files if source.eligible and source.module_name]
