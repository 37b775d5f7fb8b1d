"""Tests for path-mapping manifest generation."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from dualbuild.classifier import PathClassifier, discover, eligible_files
from dualbuild.manifest import (
    ManifestGenerator,
    build_entries,
    location_base,
    manifest_path,
    parse_manifest,
    read_manifest,
    render_manifest,
)
from dualbuild.models import BuildConfig, ManifestEntry, OutputFormat


def _files(config: BuildConfig):
    return eligible_files(discover(PathClassifier.from_config(config)))


class TestLocations:
    def test_production_base_is_package_name(self, prod_config: BuildConfig) -> None:
        assert location_base(prod_config) == "lib"

    def test_development_base_is_absolute_dev_root(self, dev_config: BuildConfig) -> None:
        base = location_base(dev_config)
        assert Path(base).is_absolute()
        assert base.endswith("/lib/dev")

    def test_production_entries(self, prod_config: BuildConfig) -> None:
        entries = build_entries(OutputFormat.CJS, _files(prod_config), "lib")
        assert entries == [
            ManifestEntry(module_name="lib/Foo/bar", location="lib/cjs/Foo/bar"),
            ManifestEntry(module_name="lib/Foo", location="lib/cjs/Foo"),
            ManifestEntry(module_name="lib", location="lib/cjs/"),
        ]

    def test_ineligible_files_are_skipped(self, prod_config: BuildConfig) -> None:
        files = discover(PathClassifier.from_config(prod_config))
        entries = build_entries(OutputFormat.ESM, files, "lib")
        assert [entry.module_name for entry in entries] == ["lib/Foo/bar", "lib/Foo", "lib"]


class TestRendering:
    def test_render_shape(self) -> None:
        text = render_manifest([ManifestEntry(module_name="lib", location="lib/esm/")])
        assert text == (
            '"use strict"\n'
            "\n"
            "module.exports = function() {\n"
            "  return {\n"
            '    "lib": "lib/esm/",\n'
            "  }\n"
            "}\n"
        )

    def test_empty_manifest_is_still_a_module(self) -> None:
        text = render_manifest([])
        assert "module.exports = function()" in text
        assert parse_manifest(text) == {}

    def test_quotes_are_escaped(self) -> None:
        entry = ManifestEntry(module_name='lib/we"ird', location="C:\\dev\\cjs")
        assert parse_manifest(render_manifest([entry])) == {'lib/we"ird': "C:\\dev\\cjs"}


class TestGenerator:
    def test_writes_one_manifest_per_format(self, prod_config: BuildConfig, quiet_output) -> None:
        generator = ManifestGenerator(prod_config)
        files = _files(prod_config)
        for fmt in OutputFormat:
            path = generator.generate(fmt, files)
            assert path == prod_config.project_root / "dist" / fmt.value / "path-mapping.js"

        assert list(read_manifest(manifest_path(prod_config, OutputFormat.ESM)).items()) == [
            ("lib/Foo/bar", "lib/esm/Foo/bar"),
            ("lib/Foo", "lib/esm/Foo"),
            ("lib", "lib/esm/"),
        ]

    def test_development_manifest_points_into_dev(self, dev_config: BuildConfig, quiet_output) -> None:
        path = ManifestGenerator(dev_config).generate(OutputFormat.CJS, _files(dev_config))
        mapping = read_manifest(path)
        dev_root = dev_config.dev_root.resolve().as_posix()
        assert mapping["lib/Foo"] == f"{dev_root}/cjs/Foo"
        assert path.parent == dev_config.dev_root / "cjs"

    def test_overwrites_existing_manifest(self, prod_config: BuildConfig, quiet_output) -> None:
        target = manifest_path(prod_config, OutputFormat.ESM)
        target.parent.mkdir(parents=True)
        target.write_text("stale")
        ManifestGenerator(prod_config).generate(OutputFormat.ESM, _files(prod_config))
        assert "stale" not in target.read_text()

    def test_write_failure_is_reported_not_raised(
        self, prod_config: BuildConfig, plain_output, capfd
    ) -> None:
        with patch("dualbuild.manifest.atomic_write", side_effect=PermissionError("denied")):
            result = ManifestGenerator(prod_config).generate(OutputFormat.CJS, _files(prod_config))
        assert result is None
        assert "Could not write cjs manifest" in capfd.readouterr().err
