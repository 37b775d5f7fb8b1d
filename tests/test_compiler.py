"""Tests for the module compiler and the rollup subprocess adapter."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dualbuild.classifier import PathClassifier
from dualbuild.compiler import CompiledUnit, ModuleCompiler, RollupBundler
from dualbuild.exceptions import BundlerNotFoundError, CompileError
from dualbuild.models import BuildConfig, BundlerConfig, OutputFormat

from conftest import FakeBundler


def _process(returncode: int, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    return process


# ------------------------------------------------------------------ #
# ModuleCompiler
# ------------------------------------------------------------------ #


class TestModuleCompiler:
    def test_external_set_is_base_plus_module_names(self, tmp_path: Path) -> None:
        compiler = ModuleCompiler(
            FakeBundler(), tmp_path, ["react", "lib"], ["lib", "lib/Foo"]
        )
        assert compiler.external == ("react", "lib", "lib/Foo")

    def test_compile_writes_one_file(self, prod_config: BuildConfig, quiet_output) -> None:
        bundler = FakeBundler()
        source = PathClassifier.from_config(prod_config).classify("Foo/bar.js")
        compiler = ModuleCompiler(bundler, prod_config.dist_root, ["react"], ["lib", "lib/Foo/bar"])

        output = asyncio.run(compiler.compile(OutputFormat.ESM, source))

        assert output == prod_config.dist_root / "esm" / "Foo" / "bar.js"
        assert output.read_text().startswith("// esm build of bar.js")
        assert bundler.analyzed == [(source.path, ("react", "lib", "lib/Foo/bar"))]
        assert bundler.exports == ["named"]

    def test_output_extension_normalised(self, tmp_path: Path) -> None:
        classifier = PathClassifier(tmp_path / "src", "lib", (), extension=".mjs")
        compiler = ModuleCompiler(FakeBundler(), tmp_path / "dist", [], [], source_extension=".mjs")
        target = compiler.target(OutputFormat.CJS, classifier.classify("a/b.mjs"))
        assert target.output_path == tmp_path / "dist" / "cjs" / "a" / "b.js"

    def test_failure_propagates(self, prod_config: BuildConfig, quiet_output) -> None:
        bundler = FakeBundler(fail_on=["Foo/bar.js"])
        source = PathClassifier.from_config(prod_config).classify("Foo/bar.js")
        compiler = ModuleCompiler(bundler, prod_config.dist_root, [], [])
        with pytest.raises(CompileError, match="cannot compile bar.js"):
            asyncio.run(compiler.compile(OutputFormat.CJS, source))


# ------------------------------------------------------------------ #
# RollupBundler
# ------------------------------------------------------------------ #


class TestRollupArgs:
    def test_build_args(self, tmp_path: Path) -> None:
        bundler = RollupBundler(["rollup"])
        unit = CompiledUnit(input_path=tmp_path / "a.js", external=("react", "lib/a"))
        args = bundler.build_args(unit, OutputFormat.CJS, tmp_path / "out.js")
        assert args == [
            "rollup",
            "--input", str(tmp_path / "a.js"),
            "--file", str(tmp_path / "out.js"),
            "--format", "cjs",
            "--exports", "named",
            "--silent",
            "--external", "react,lib/a",
        ]

    def test_config_file_passed_first(self, tmp_path: Path) -> None:
        bundler = RollupBundler(["rollup"])
        unit = CompiledUnit(input_path=tmp_path / "a.js", external=(), options={"config": "base.mjs"})
        args = bundler.build_args(unit, OutputFormat.ESM, tmp_path / "out.js")
        assert args[1:3] == ["--config", "base.mjs"]
        assert "--external" not in args

    def test_from_config(self, project_dir: Path) -> None:
        config = BuildConfig(
            project_root=project_dir,
            package_name="lib",
            bundler=BundlerConfig(command=["node", "rollup.js"], config_file="rollup.base.mjs"),
        )
        bundler = RollupBundler.from_config(config)
        (project_dir / "src" / "index.js").touch()
        unit = asyncio.run(bundler.analyze(project_dir / "src" / "index.js", ["react"]))
        assert unit.options == {"config": str(project_dir / "rollup.base.mjs")}
        assert bundler.build_args(unit, OutputFormat.ESM, project_dir / "o.js")[:2] == ["node", "rollup.js"]


class TestRollupEmit:
    def test_analyze_missing_input(self, tmp_path: Path) -> None:
        with pytest.raises(CompileError, match="Source file not found"):
            asyncio.run(RollupBundler().analyze(tmp_path / "gone.js", []))

    def test_emit_success(self, tmp_path: Path, quiet_output) -> None:
        unit = CompiledUnit(input_path=tmp_path / "a.js", external=())
        with patch(
            "dualbuild.compiler.asyncio.create_subprocess_exec",
            AsyncMock(return_value=_process(0)),
        ) as spawn:
            asyncio.run(RollupBundler(["rollup"], cwd=tmp_path).emit(unit, OutputFormat.ESM, tmp_path / "o.js"))
        assert spawn.call_args.args[0] == "rollup"
        assert spawn.call_args.kwargs["cwd"] == str(tmp_path)

    def test_emit_nonzero_exit_keeps_stderr_tail(self, tmp_path: Path, quiet_output) -> None:
        stderr = "\n".join(f"line {i}" for i in range(30)).encode()
        unit = CompiledUnit(input_path=tmp_path / "a.js", external=())
        with patch(
            "dualbuild.compiler.asyncio.create_subprocess_exec",
            AsyncMock(return_value=_process(1, stderr=stderr)),
        ):
            with pytest.raises(CompileError) as exc_info:
                asyncio.run(RollupBundler().emit(unit, OutputFormat.CJS, tmp_path / "o.js"))
        assert exc_info.value.exit_code == 4
        assert exc_info.value.source == str(tmp_path / "a.js")
        assert exc_info.value.details[0] == "line 10"
        assert exc_info.value.details[-1] == "line 29"

    def test_emit_falls_back_to_stdout(self, tmp_path: Path, quiet_output) -> None:
        unit = CompiledUnit(input_path=tmp_path / "a.js", external=())
        with patch(
            "dualbuild.compiler.asyncio.create_subprocess_exec",
            AsyncMock(return_value=_process(2, stdout=b"Error: bad config")),
        ):
            with pytest.raises(CompileError) as exc_info:
                asyncio.run(RollupBundler().emit(unit, OutputFormat.CJS, tmp_path / "o.js"))
        assert exc_info.value.details == ["Error: bad config"]

    def test_missing_executable(self, tmp_path: Path, quiet_output) -> None:
        unit = CompiledUnit(input_path=tmp_path / "a.js", external=())
        with patch(
            "dualbuild.compiler.asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("npx")),
        ):
            with pytest.raises(BundlerNotFoundError, match="Bundler executable not found: npx"):
                asyncio.run(RollupBundler().emit(unit, OutputFormat.ESM, tmp_path / "o.js"))
