"""Smoke tests for the CLI.

These tests verify CLI behaviour without requiring docker or helm; the
build orchestrator and the development loop are patched where needed.
"""

from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from chartdev import __version__
from chartdev.builds.service import BuildError, BuildReport
from chartdev.cli import app
from chartdev.types import BuildStep, LoopState

runner = CliRunner()


def make_chart(root: Path) -> Path:
    chart = root / "mychart"
    chart.mkdir()
    (chart / "Chart.yaml").write_text("name: mychart\n")
    (chart / "images.yaml").write_text(
        "app:\n  reference: x/app:dev\n  sourcePath: ./app\n"
    )
    return chart


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "chartdev" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self) -> None:
        """CLI config should show all sections."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Layout:" in result.stdout
        assert "Tools:" in result.stdout
        assert "Operational:" in result.stdout
        assert "Timeouts (seconds):" in result.stdout
        assert "Container tool" in result.stdout

    def test_config_json(self) -> None:
        """CLI config --json should output JSON."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        assert '"container_tool"' in result.stdout


class TestCLIBuild:
    """Test CLI build command."""

    def test_requires_name(self) -> None:
        """build without a chart name should fail."""
        result = runner.invoke(app, ["build"])
        assert result.exit_code == 1

    def test_missing_chart_file(self, tmp_path) -> None:
        """build on a directory without Chart.yaml should fail."""
        result = runner.invoke(app, ["build", str(tmp_path)])
        assert result.exit_code == 1

    def test_missing_manifest(self, tmp_path) -> None:
        """build on a chart without images.yaml should fail."""
        chart = make_chart(tmp_path)
        (chart / "images.yaml").unlink()
        result = runner.invoke(app, ["build", str(chart)])
        assert result.exit_code == 1

    def test_success(self, tmp_path) -> None:
        """build should build every image and exit 0."""
        chart = make_chart(tmp_path)
        with patch(
            "chartdev.builds.service.BuildOrchestrator.build_all",
            return_value=BuildReport(succeeded=["app"]),
        ) as build_all:
            result = runner.invoke(app, ["build", str(chart)])
        assert result.exit_code == 0
        (targets,) = build_all.call_args.args
        assert [t.name for t in targets] == ["app"]

    def test_build_failure(self, tmp_path) -> None:
        """A failing image should exit 1."""
        chart = make_chart(tmp_path)
        report = BuildReport(
            errors=[BuildError("app", BuildStep.PUBLISH, "exit code 1", 1)]
        )
        with patch(
            "chartdev.builds.service.BuildOrchestrator.build_all",
            return_value=report,
        ):
            result = runner.invoke(app, ["build", str(chart)])
        assert result.exit_code == 1


class TestCLIUp:
    """Test CLI up command."""

    def test_no_chart(self, tmp_path, monkeypatch) -> None:
        """up without ./helm/Chart.yaml should exit 1."""
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["up"])
        assert result.exit_code == 1

    def test_runs_loop_with_options(self, tmp_path, monkeypatch) -> None:
        """up should pass CLI options through settings to the loop."""
        monkeypatch.chdir(tmp_path)
        seen = {}

        def fake_run(self, cancel=None) -> None:
            seen["settings"] = self.settings
            seen["release"] = self.release_name

        with patch("chartdev.devloop.LoopCoordinator.run", fake_run):
            result = runner.invoke(app, ["up", "--debounce", "0.5", "--dry-run"])

        assert result.exit_code == 0
        assert seen["settings"].debounce_seconds == 0.5
        assert seen["settings"].dry_run is True
        assert seen["release"] == tmp_path.resolve().name

    def test_interrupt_stops_cleanly(self, tmp_path, monkeypatch) -> None:
        """Ctrl-C while watching should exit 0."""
        monkeypatch.chdir(tmp_path)

        def interrupted(self, cancel=None) -> None:
            self.state = LoopState.WATCHING
            raise KeyboardInterrupt

        with patch("chartdev.devloop.LoopCoordinator.run", interrupted):
            result = runner.invoke(app, ["up"])
        assert result.exit_code == 0
        assert "stopped watching" in result.output

    def test_interrupt_before_watching(self, tmp_path, monkeypatch) -> None:
        """Ctrl-C during the initial deploy should name the phase and exit 130."""
        monkeypatch.chdir(tmp_path)

        def interrupted(self, cancel=None) -> None:
            self.state = LoopState.INITIAL_DEPLOYING
            raise KeyboardInterrupt

        with patch("chartdev.devloop.LoopCoordinator.run", interrupted):
            result = runner.invoke(app, ["up"])
        assert result.exit_code == 130
        assert "initial_deploying" in result.output
        assert "stopped watching" not in result.output

    def test_out_of_range_jobs_rejected(self, tmp_path, monkeypatch) -> None:
        """--jobs above the configured maximum should exit 1 before running."""
        monkeypatch.chdir(tmp_path)
        with patch("chartdev.devloop.LoopCoordinator.run") as run:
            result = runner.invoke(app, ["up", "--jobs", "50"])
        assert result.exit_code == 1
        run.assert_not_called()

    def test_debounce_above_limit_rejected(self, tmp_path, monkeypatch) -> None:
        """--debounce above the configured maximum should exit 1."""
        monkeypatch.chdir(tmp_path)
        with patch("chartdev.devloop.LoopCoordinator.run") as run:
            result = runner.invoke(app, ["up", "--debounce", "120"])
        assert result.exit_code == 1
        run.assert_not_called()


class TestCLIBuildOptions:
    """Test option validation for the build command."""

    def test_out_of_range_jobs_rejected(self, tmp_path) -> None:
        """build --jobs 50 should exit 1 without building."""
        chart = make_chart(tmp_path)
        with patch(
            "chartdev.builds.service.BuildOrchestrator.build_all"
        ) as build_all:
            result = runner.invoke(app, ["build", str(chart), "--jobs", "50"])
        assert result.exit_code == 1
        build_all.assert_not_called()
