"""Distributable ``package.json`` derived from the project's own manifest.

The published package has no build step, so ``scripts`` is dropped, and its
entry points are pinned to the two generated trees:

* ``main`` -> ``./cjs/index.js`` (CommonJS consumers)
* ``module`` -> ``./esm/index.js`` (bundlers that understand ES modules)
* ``sideEffects: false`` so bundlers may tree-shake unused modules.

The fixed keys always win over values already present in the source
manifest.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from dualbuild.config import atomic_write
from dualbuild.models import OutputFormat

DESCRIPTOR_FILENAME = "package.json"
_DROPPED_FIELDS = ("scripts",)


def entry_points(index_file: str = "index.js") -> dict[str, Any]:
    return {
        "main": f"./{OutputFormat.CJS.value}/{index_file}",
        "module": f"./{OutputFormat.ESM.value}/{index_file}",
        "sideEffects": False,
    }


def transform_descriptor(manifest: Mapping[str, Any], index_file: str = "index.js") -> dict[str, Any]:
    """Return the distributable manifest for *manifest*. The input is not modified."""
    result = {key: value for key, value in manifest.items() if key not in _DROPPED_FIELDS}
    result.update(entry_points(index_file))
    return result


def render_descriptor(descriptor: Mapping[str, Any]) -> str:
    return json.dumps(descriptor, indent=2, ensure_ascii=False) + "\n"


def write_descriptor(output_root: Path, manifest: Mapping[str, Any], index_file: str = "index.js") -> Path:
    """Transform *manifest* and write it to ``<output_root>/package.json``."""
    path = output_root / DESCRIPTOR_FILENAME
    atomic_write(path, render_descriptor(transform_descriptor(manifest, index_file)))
    return path
