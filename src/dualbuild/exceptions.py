"""Exception hierarchy for dualbuild.

All exceptions inherit from :class:`DualbuildError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`dualbuild.exit_codes`.
The top-level error handler in :func:`dualbuild.app.main` catches
``DualbuildError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    DualbuildError (exit 1)
    +-- InvalidUsageError     (exit 2)
    +-- ConfigError           (exit 3)
    +-- CompileError          (exit 4)
    +-- DuplicateModuleError  (exit 5)
    +-- BundlerNotFoundError  (exit 6)
"""

from __future__ import annotations

from dualbuild.exit_codes import (
    EXIT_BUNDLER_NOT_FOUND,
    EXIT_COMPILE_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_DUPLICATE_MODULE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class DualbuildError(Exception):
    """Base exception for all dualbuild errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`dualbuild.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(DualbuildError):
    """Raised for invalid CLI arguments (unknown format name, conflicting flags)."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(DualbuildError):
    """Raised for configuration problems (missing ``package.json``, invalid ``dualbuild.json``)."""

    exit_code = EXIT_CONFIG_ERROR


class CompileError(DualbuildError):
    """Raised when the bundler fails to compile a source file.

    Args:
        message: Human-readable error description.
        source: Path of the source file that failed, when known.
        details: Trailing bundler diagnostics (stderr lines).
    """

    exit_code = EXIT_COMPILE_FAILURE

    def __init__(
        self,
        message: str,
        source: str | None = None,
        details: list[str] | None = None,
    ):
        super().__init__(message)
        self.source = source
        self.details = list(details or [])


class DuplicateModuleError(DualbuildError):
    """Raised when two eligible source files collapse to one public module name.

    The classic case is ``Foo.js`` next to ``Foo/index.js``: both map to
    ``<package>/Foo`` and one manifest entry would silently shadow the other.
    """

    exit_code = EXIT_DUPLICATE_MODULE

    def __init__(self, module_name: str, paths: list[str]):
        joined = ", ".join(paths)
        super().__init__(f"Module name '{module_name}' is produced by more than one file: {joined}")
        self.module_name = module_name
        self.paths = list(paths)


class BundlerNotFoundError(CompileError):
    """Raised when the bundler executable cannot be launched at all."""

    exit_code = EXIT_BUNDLER_NOT_FOUND
