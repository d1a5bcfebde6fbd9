"""Tests for the convoy CLI."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from convoy.cli import LAZY_COMMANDS, cli

CONFIG = """
[targets."app.js"]
type = "legacy_javascript"
main = "./app/main"

[targets."assets"]
type = "copy"
root = "public"
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def project(write_tree) -> Path:
    root = write_tree({
        "app/util.js": "var util;",
        "app/main.js": "//= require ./util\nvar main;",
        "public/logo.png": "png",
    })
    (root / "convoy.toml").write_text(CONFIG)
    return root


class TestCLIHelp:
    """Tests for help output and command registration."""

    def test_main_help(self, runner: CliRunner) -> None:
        """Test convoy --help lists the commands."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in LAZY_COMMANDS:
            assert name in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "convoy" in result.output

    @pytest.mark.parametrize("command", sorted(LAZY_COMMANDS))
    def test_command_help(self, runner: CliRunner, command: str) -> None:
        """Test every lazy command loads and shows help."""
        result = runner.invoke(cli, [command, "--help"])
        assert result.exit_code == 0
        assert "Usage:" in result.output


class TestBuildCommand:
    """Tests for convoy build."""

    def test_build_all(self, runner: CliRunner, project: Path, tmp_path: Path) -> None:
        """Test building every target from convoy.toml."""
        out = tmp_path / "dist"
        result = runner.invoke(cli, ["--config", str(project / "convoy.toml"), "build", str(out)])

        assert result.exit_code == 0, result.output
        assert "Wrote 2 file(s)" in result.output
        assert (out / "app.js").read_text() == "var util;\n//= require ./util\nvar main;"
        assert (out / "assets" / "logo.png").read_text() == "png"

    def test_build_selected_paths(
        self, runner: CliRunner, project: Path, tmp_path: Path, monkeypatch
    ) -> None:
        """Test that convoy.toml is found in the working directory."""
        monkeypatch.chdir(project)
        out = tmp_path / "dist"
        result = runner.invoke(cli, ["build", str(out), "app.js"])

        assert result.exit_code == 0, result.output
        assert (out / "app.js").exists()
        assert not (out / "assets").exists()

    def test_build_json(self, runner: CliRunner, project: Path, tmp_path: Path) -> None:
        out = tmp_path / "dist"
        result = runner.invoke(
            cli, ["-q", "--config", str(project / "convoy.toml"), "build", str(out), "--json"]
        )

        data = json.loads(result.output)
        assert data["success"] is True
        assert len(data["written"]) == 2

    def test_build_failure(self, runner: CliRunner, project: Path, tmp_path: Path) -> None:
        """Test that a failing target sets the build error exit code."""
        config = project / "convoy.toml"
        config.write_text(CONFIG + '\n[targets."broken.js"]\ntype = "css"\nmain = "./nope"\n')

        result = runner.invoke(cli, ["--config", str(config), "build", str(tmp_path / "dist")])

        assert result.exit_code == 2
        assert "1 target(s) failed" in result.output
        assert (tmp_path / "dist" / "app.js").exists()

    def test_build_failure_hints_debug(
        self, runner: CliRunner, project: Path, tmp_path: Path
    ) -> None:
        config = project / "convoy.toml"
        config.write_text(CONFIG + '\n[targets."broken.js"]\ntype = "css"\nmain = "./nope"\n')

        result = runner.invoke(cli, ["--config", str(config), "build", str(tmp_path / "dist")])

        assert "Run with --debug" in result.output
        assert "Traceback" not in result.output

    def test_build_failure_debug_traceback(
        self, runner: CliRunner, project: Path, tmp_path: Path
    ) -> None:
        config = project / "convoy.toml"
        config.write_text(CONFIG + '\n[targets."broken.js"]\ntype = "css"\nmain = "./nope"\n')

        result = runner.invoke(
            cli, ["--debug", "--config", str(config), "build", str(tmp_path / "dist")]
        )

        assert result.exit_code == 2
        assert "Traceback (most recent call last)" in result.output
        assert "UnresolvedModuleError" in result.output

    def test_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "convoy.toml"
        config.write_text("[targets\n")
        result = runner.invoke(cli, ["--config", str(config), "build", str(tmp_path / "dist")])
        assert result.exit_code == 1
        assert "Invalid TOML" in result.output

    def test_unknown_type(self, runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "convoy.toml"
        config.write_text('[targets."x.js"]\ntype = "fortran"\n')
        result = runner.invoke(cli, ["--config", str(config), "build", str(tmp_path / "dist")])
        assert result.exit_code == 1
        assert "Unknown asset type" in result.output


class TestLsCommand:
    """Tests for convoy ls."""

    def test_lists_outputs(self, runner: CliRunner, project: Path) -> None:
        result = runner.invoke(cli, ["--config", str(project / "convoy.toml"), "ls"])
        assert result.exit_code == 0, result.output
        assert "app.js" in result.output
        assert "assets/logo.png" in result.output

    def test_no_targets(self, runner: CliRunner, tmp_path: Path) -> None:
        config = tmp_path / "convoy.toml"
        config.write_text("")
        result = runner.invoke(cli, ["--config", str(config), "ls"])
        assert result.exit_code == 0
        assert "No targets configured" in result.output


class TestServeCommand:
    """Tests for convoy serve (uvicorn is not started)."""

    def test_serve_options(self, runner: CliRunner, project: Path) -> None:
        with patch("uvicorn.run") as run:
            result = runner.invoke(
                cli,
                ["--config", str(project / "convoy.toml"), "serve", "-p", "5001", "--no-watch"],
            )

        assert result.exit_code == 0, result.output
        run.assert_called_once()
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 5001
        pipeline = run.call_args.args[0].state.pipeline
        assert all(not t.config.watch for t in pipeline.targets)

    def test_server_section(self, runner: CliRunner, project: Path) -> None:
        config = project / "convoy.toml"
        config.write_text(CONFIG + "\n[server]\nport = 7000\nhost = '0.0.0.0'\n")
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["--config", str(config), "serve"])

        assert result.exit_code == 0, result.output
        assert run.call_args.kwargs["port"] == 7000
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        pipeline = run.call_args.args[0].state.pipeline
        assert all(t.config.watch for t in pipeline.targets)

    def test_invalid_max_age(self, runner: CliRunner, project: Path) -> None:
        with patch("uvicorn.run") as run:
            result = runner.invoke(
                cli, ["--config", str(project / "convoy.toml"), "serve", "--max-age", "forever"]
            )
        assert result.exit_code == 2
        run.assert_not_called()
