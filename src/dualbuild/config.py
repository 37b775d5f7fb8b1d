"""Configuration resolution with precedence rules and atomic writes.

This module turns the ambient state of a project into an explicit
:class:`~dualbuild.models.BuildConfig` that pipelines receive as a
constructor argument:

* **Package manifest** -- ``package.json`` at the project root supplies the
  library's public name and its ``dependencies`` / ``peerDependencies``
  (which the bundler must never inline). See :func:`load_package_manifest`.
* **Project config** -- an optional ``dualbuild.json`` next to
  ``package.json`` overrides directory names, the exclusion table, the
  bundler command, and so on. See :func:`load_project_config`.
* **Mode** -- ``NODE_ENV=development`` selects the development pipeline;
  every other value means production. See :func:`resolve_mode`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and defaults.

Generated artefacts (manifests, the distributable ``package.json``) are
written with :func:`atomic_write` so a crash never leaves a half-written
file for a resolver to trip over.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from dualbuild.exceptions import ConfigError
from dualbuild.models import BuildConfig, BuildMode

_APP_NAME = "dualbuild"
_PACKAGE_FILENAME = "package.json"
_PROJECT_CONFIG_FILENAME = "dualbuild.json"
_MODE_ENV_VAR = "NODE_ENV"


# --- Data directory ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/dualbuild/`` (default ``~/.local/share/dualbuild/``).
    On macOS/Windows: ``~/.dualbuild/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_DATA_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".local" / "share"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up and the error propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Project files ---


def find_project_root(start: Optional[Path] = None) -> Path:
    """Return the nearest directory at or above *start* holding ``package.json``.

    Args:
        start: Directory to start from. Defaults to the current directory.

    Raises:
        ConfigError: If no ancestor contains a ``package.json``.
    """
    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / _PACKAGE_FILENAME).is_file():
            return candidate
    raise ConfigError(f"No {_PACKAGE_FILENAME} found in {current} or any parent directory")


def load_package_manifest(project_root: Path) -> dict[str, Any]:
    """Load ``package.json`` from *project_root*.

    Raises:
        ConfigError: If the file is missing, is not valid JSON, or is not
            a JSON object.
    """
    path = project_root / _PACKAGE_FILENAME
    if not path.is_file():
        raise ConfigError(f"{_PACKAGE_FILENAME} not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid {_PACKAGE_FILENAME} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{_PACKAGE_FILENAME} at {path} must contain a JSON object")
    return data


def load_project_config(project_root: Path) -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``dualbuild.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = project_root / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must contain a JSON object")
    return data


def base_externals(package: Mapping[str, Any], config: BuildConfig) -> list[str]:
    """Return module ids the bundler must treat as external for every file.

    Combines ``config.external`` with the keys of ``dependencies`` and
    ``peerDependencies`` in the package manifest, first occurrence wins.
    """
    names: list[str] = list(config.external)
    for field in ("dependencies", "peerDependencies"):
        section = package.get(field)
        if isinstance(section, dict):
            names.extend(str(key) for key in section)
    return list(dict.fromkeys(names))


# --- Precedence resolution ---


def resolve_mode(env: Optional[Mapping[str, str]] = None) -> BuildMode:
    """Map ``NODE_ENV`` to a :class:`~dualbuild.models.BuildMode`.

    Only the exact value ``development`` selects development mode.
    """
    environ = os.environ if env is None else env
    if environ.get(_MODE_ENV_VAR) == BuildMode.DEVELOPMENT.value:
        return BuildMode.DEVELOPMENT
    return BuildMode.PRODUCTION


def resolve_config(
    project_root: Optional[Path] = None,
    cli_mode: Optional[BuildMode] = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> BuildConfig:
    """Resolve the effective build configuration.

    Precedence (high to low):
        1. CLI flags (``cli_mode`` and ``overrides``)
        2. Environment (``NODE_ENV``)
        3. Project config (``./dualbuild.json``)
        4. Defaults

    ``package_name`` always comes from ``package.json`` unless the project
    config sets it explicitly.

    Args:
        project_root: Directory holding ``package.json``. When ``None`` the
            nearest one above the current directory is used.
        cli_mode: Mode forced on the command line.
        env: Environment mapping; defaults to ``os.environ``.
        overrides: Extra field values from CLI flags.

    Raises:
        ConfigError: If ``package.json`` is missing or nameless, or the
            merged values fail validation.
    """
    root = (project_root or find_project_root()).resolve()
    package = load_package_manifest(root)

    data: dict[str, Any] = {}
    project = load_project_config(root)
    if project is not None:
        data.update(project)

    if not data.get("package_name"):
        name = package.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigError(f"package.json at {root} has no 'name' field")
        data["package_name"] = name

    environ = os.environ if env is None else env
    if _MODE_ENV_VAR in environ or "mode" not in data:
        data["mode"] = resolve_mode(environ)
    if cli_mode is not None:
        data["mode"] = cli_mode

    if overrides:
        data.update({key: value for key, value in overrides.items() if value is not None})

    data["project_root"] = root
    try:
        return BuildConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid build configuration for {root}: {exc}") from exc
