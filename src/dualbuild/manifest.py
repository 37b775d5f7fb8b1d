"""Generated path-mapping modules.

For each output format a tiny CommonJS module is written to
``<output_root>/<format>/path-mapping.js``. A custom module resolver loads it
and calls the exported function to learn where each public module name
lives::

    "use strict"

    module.exports = function() {
      return {
        "lib": "lib/cjs/",
        "lib/Foo": "lib/cjs/Foo",
        "lib/Foo/bar": "lib/cjs/Foo/bar",
      }
    }

Locations are ``<base>/<format>/<derived name>``. In production ``base`` is
the package name, because the manifest is consumed after installation; in
development it is the absolute dev directory, because the manifest is
consumed in place.

Entries keep discovery order. Keys and values are written as JSON string
literals, which are valid JavaScript, so :func:`read_manifest` can parse a
manifest back without a JavaScript runtime.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Iterable, Optional

from dualbuild.config import atomic_write
from dualbuild.models import BuildConfig, ManifestEntry, OutputFormat, SourceFile
from dualbuild.output import debug, error

_MANIFEST_TEMPLATE = '''\
"use strict"

module.exports = function() {{
  return {{
{entries}
  }}
}}
'''

_ENTRY_RE = re.compile(r'^\s*("(?:[^"\\]|\\.)*")\s*:\s*("(?:[^"\\]|\\.)*"),\s*$')


def location_base(config: BuildConfig) -> str:
    """Prefix of every manifest location for the configured mode."""
    if config.is_development:
        return config.dev_root.resolve().as_posix()
    return config.package_name


def build_entries(
    output_format: OutputFormat,
    files: Iterable[SourceFile],
    base: str,
) -> list[ManifestEntry]:
    """Map each eligible file to a :class:`~dualbuild.models.ManifestEntry`.

    Ineligible files are skipped. Order follows *files*.
    """
    entries: list[ManifestEntry] = []
    for source in files:
        if not source.eligible or source.module_name is None or source.derived_name is None:
            continue
        entries.append(
            ManifestEntry(
                module_name=source.module_name,
                location=f"{base}/{output_format.value}/{source.derived_name}",
            )
        )
    return entries


def render_manifest(entries: Iterable[ManifestEntry]) -> str:
    """Return the JavaScript source of a manifest module."""
    lines = [
        f"    {json.dumps(entry.module_name)}: {json.dumps(entry.location)},"
        for entry in entries
    ]
    return _MANIFEST_TEMPLATE.format(entries="\n".join(lines))


def manifest_path(config: BuildConfig, output_format: OutputFormat) -> Path:
    return config.output_root / output_format.value / config.manifest_filename


class ManifestGenerator:
    """Writes one manifest module per output format.

    Write failures are reported through :func:`~dualbuild.output.error` and
    swallowed: a missing manifest is a visible, degraded state that should
    not stop the rest of the pipeline.

    Args:
        config: Effective build configuration; decides the output root and
            the location base.
    """

    def __init__(self, config: BuildConfig) -> None:
        self._config = config
        self._base = location_base(config)

    def generate(self, output_format: OutputFormat, files: Iterable[SourceFile]) -> Optional[Path]:
        """Write the manifest for *output_format*.

        Returns:
            The manifest path, or ``None`` if the write failed.
        """
        entries = build_entries(output_format, files, self._base)
        target = manifest_path(self._config, output_format)
        try:
            atomic_write(target, render_manifest(entries))
        except OSError as exc:
            error(f"Could not write {output_format.value} manifest to {target}: {exc}")
            return None
        debug(f"Wrote {len(entries)} {output_format.value} manifest entries to {target}")
        return target


def parse_manifest(text: str) -> dict[str, str]:
    """Parse manifest source produced by :func:`render_manifest`.

    Lines that are not ``"key": "value",`` entries are ignored.
    """
    mapping: dict[str, str] = {}
    for line in text.splitlines():
        match = _ENTRY_RE.match(line)
        if match:
            mapping[json.loads(match.group(1))] = json.loads(match.group(2))
    return mapping


def read_manifest(path: Path) -> dict[str, str]:
    """Load a generated manifest from disk into an ordered mapping."""
    return parse_manifest(path.read_text(encoding="utf-8"))
