"""Tests for the distributable package.json transform."""

from __future__ import annotations

import json
from pathlib import Path

from dualbuild.descriptor import (
    entry_points,
    render_descriptor,
    transform_descriptor,
    write_descriptor,
)

from conftest import SAMPLE_PACKAGE


class TestTransform:
    def test_scripts_dropped_and_entries_injected(self) -> None:
        result = transform_descriptor(SAMPLE_PACKAGE)
        assert "scripts" not in result
        assert result["main"] == "./cjs/index.js"
        assert result["module"] == "./esm/index.js"
        assert result["sideEffects"] is False

    def test_other_fields_preserved(self) -> None:
        result = transform_descriptor(SAMPLE_PACKAGE)
        assert result["name"] == "lib"
        assert result["version"] == "1.2.0"
        assert result["peerDependencies"] == {"react": ">=17"}

    def test_fixed_keys_override_source(self) -> None:
        # the source manifest points main at src/, which is not shipped as code
        assert SAMPLE_PACKAGE["main"] == "src/index.js"
        assert transform_descriptor(SAMPLE_PACKAGE)["main"] == "./cjs/index.js"
        result = transform_descriptor({"name": "lib", "sideEffects": ["*.css"]})
        assert result["sideEffects"] is False

    def test_input_not_modified(self) -> None:
        source = {"name": "lib", "scripts": {"x": "y"}}
        transform_descriptor(source)
        assert source == {"name": "lib", "scripts": {"x": "y"}}

    def test_key_order_kept(self) -> None:
        result = transform_descriptor({"name": "lib", "version": "1.0.0"})
        assert list(result) == ["name", "version", "main", "module", "sideEffects"]

    def test_custom_index_file(self) -> None:
        assert entry_points("main.js")["module"] == "./esm/main.js"


class TestWrite:
    def test_write_descriptor(self, tmp_path: Path) -> None:
        path = write_descriptor(tmp_path / "dist", SAMPLE_PACKAGE)
        assert path == tmp_path / "dist" / "package.json"
        assert json.loads(path.read_text()) == transform_descriptor(SAMPLE_PACKAGE)

    def test_render_is_indented_with_trailing_newline(self) -> None:
        text = render_descriptor({"name": "lib"})
        assert text == '{\n  "name": "lib"\n}\n'
