"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~dualbuild.exceptions.DualbuildError` subclass.
CI scripts can inspect the exit code to tell a broken source file apart
from a broken project setup without parsing stderr.

Example::

    $ dualbuild build
    $ echo $?
    4   # EXIT_COMPILE_FAILURE -- the bundler rejected a source file
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_CONFIG_ERROR = 3
"""``package.json`` or ``dualbuild.json`` is missing, unreadable, or invalid."""

EXIT_COMPILE_FAILURE = 4
"""At least one source file failed to compile."""

EXIT_DUPLICATE_MODULE = 5
"""Two source files map to the same public module name."""

EXIT_BUNDLER_NOT_FOUND = 6
"""The bundler executable could not be started."""

EXIT_INTERRUPTED = 130
"""The process was interrupted with Ctrl-C."""
