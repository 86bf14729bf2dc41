"""Tests for the helmcourse command line."""

from pathlib import Path
from textwrap import dedent
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from helmcourse import __version__
from helmcourse.cli import app
from helmcourse.diff import DiffKind, DiffResult
from helmcourse.errors import FetchError, HelmNotFoundError
from helmcourse.plot import (
    ManifestResult,
    PlotOptions,
    PlotSummary,
    ReleaseOutcome,
    ReleaseStatus,
)
from helmcourse.shell.types import HelmRelease

COURSE = dedent(
    """\
    schema: v2
    namespace: apps
    releases:
      web:
        chart: stable/web
      off:
        chart: stable/off
        enabled: false
    """
)

V1_COURSE = dedent(
    """\
    charts:
      grafana:
        repository: stable
        version: 6.1.0
    """
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def course_file(tmp_path: Path) -> Path:
    path = tmp_path / "course.yml"
    path.write_text(COURSE)
    return path


@pytest.fixture
def orchestrator():
    with patch("helmcourse.cli.context.PlotOrchestrator.from_settings") as from_settings:
        yield from_settings.return_value


class TestRoot:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_environment_setting(
        self, runner: CliRunner, course_file: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("HELMCOURSE_WORKERS", "many")

        result = runner.invoke(app, ["lint", str(course_file)])

        assert result.exit_code == 2
        assert "HELMCOURSE_WORKERS" in result.output

    def test_missing_course_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["lint", str(tmp_path / "nope.yml")])

        assert result.exit_code != 0


class TestLint:
    def test_valid_course(self, runner: CliRunner, course_file: Path) -> None:
        result = runner.invoke(app, ["lint", str(course_file)])

        assert result.exit_code == 0
        assert "2 releases (1 enabled)" in result.output

    def test_invalid_course(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("schema: v2\nreleases:\n  web: {chart: stable/web, replicas: 2}\n")

        result = runner.invoke(app, ["lint", str(path)])

        assert result.exit_code == 2
        assert "Invalid course" in result.output
        assert "replicas" in result.output


class TestConvert:
    def test_prints_v2(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "old.yml"
        path.write_text(V1_COURSE)

        result = runner.invoke(app, ["convert", str(path)])

        assert result.exit_code == 0
        assert "schema: v2" in result.output
        assert path.read_text() == V1_COURSE

    def test_in_place(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "old.yml"
        path.write_text(V1_COURSE)

        result = runner.invoke(app, ["convert", str(path), "--in-place"])

        assert result.exit_code == 0
        assert path.read_text().startswith("schema: v2\n")

    def test_already_v2(self, runner: CliRunner, course_file: Path) -> None:
        result = runner.invoke(app, ["convert", str(course_file)])

        assert result.exit_code == 2
        assert "already in the v2 format" in result.output


class TestPlot:
    def test_success(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.plot.return_value = PlotSummary(
            outcomes=[ReleaseOutcome("web", "apps", ReleaseStatus.APPLIED)]
        )

        result = runner.invoke(
            app,
            ["plot", str(course_file), "--workers", "2", "--fail-fast", "--retries", "1"],
        )

        assert result.exit_code == 0
        course, options = orchestrator.plot.call_args.args
        assert course.release_names == ("web", "off")
        assert options == PlotOptions(workers=2, fail_fast=True, update=False, retries=1)

    def test_failure_exit_code(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        error = FetchError("Chart directory does not exist")
        orchestrator.plot.return_value = PlotSummary(
            outcomes=[
                ReleaseOutcome(
                    "web", "apps", ReleaseStatus.FAILED, reason=error.message, error=error
                )
            ]
        )

        result = runner.invoke(app, ["plot", str(course_file)])

        assert result.exit_code == 1
        assert "1 failed" in result.output

    def test_only_selects_releases(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.plot.return_value = PlotSummary()

        runner.invoke(app, ["plot", str(course_file), "--only", "web"])

        course, _ = orchestrator.plot.call_args.args
        assert course.release_names == ("web",)

    def test_update_sets_update_mode(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.plot.return_value = PlotSummary()

        result = runner.invoke(app, ["update", str(course_file)])

        assert result.exit_code == 0
        assert orchestrator.plot.call_args.args[1].update is True

    def test_helm_missing(self, runner: CliRunner, course_file: Path) -> None:
        with patch(
            "helmcourse.cli.context.PlotOrchestrator.from_settings",
            side_effect=HelmNotFoundError("helm"),
        ):
            result = runner.invoke(app, ["plot", str(course_file)])

        assert result.exit_code == 3


class TestReadOnlyCommands:
    def test_template(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.template.return_value = [
            ManifestResult("web", "apps", "kind: ConfigMap\n")
        ]

        result = runner.invoke(app, ["template", str(course_file)])

        assert result.exit_code == 0
        assert "# Release: web (apps)" in result.output
        assert "kind: ConfigMap" in result.output

    def test_get_manifests_error(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.get_manifests.return_value = [
            ManifestResult(
                "web",
                "apps",
                error=FetchError("Release 'web' is not installed in apps"),
            )
        ]

        result = runner.invoke(app, ["get-manifests", str(course_file)])

        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_diff(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.diff.return_value = [
            DiffResult("web", "apps", DiffKind.CHANGED, delta="-a: 1\n+a: 2"),
            DiffResult("db", "apps", DiffKind.NO_CHANGE),
        ]

        result = runner.invoke(app, ["diff", str(course_file)])

        assert result.exit_code == 0
        assert "web (apps): changed" in result.output
        assert "db (apps): no changes" in result.output

    def test_diff_error(
        self, runner: CliRunner, course_file: Path, orchestrator: MagicMock
    ) -> None:
        orchestrator.diff.return_value = [
            DiffResult("web", "apps", DiffKind.ERROR, error="render failed")
        ]

        result = runner.invoke(app, ["diff", str(course_file)])

        assert result.exit_code == 1


class TestImport:
    @patch("helmcourse.cli.context.CLIContext.release_client")
    def test_prints_release_block(self, mock_release_client, runner: CliRunner) -> None:
        client = mock_release_client.return_value
        client.find_release.return_value = HelmRelease(
            "grafana", "monitoring", "deployed", "3", chart="grafana-6.1.0"
        )
        client.get_values.return_value = {"replicas": 2}

        result = runner.invoke(
            app,
            ["import", "-r", "grafana", "-n", "monitoring", "--repository", "stable"],
        )

        assert result.exit_code == 0
        assert "releases:" in result.output
        assert "chart: grafana" in result.output
        assert "version: 6.1.0" in result.output
        mock_release_client.assert_called_once_with(None)

    @patch("helmcourse.cli.context.CLIContext.release_client")
    def test_missing_release(self, mock_release_client, runner: CliRunner) -> None:
        mock_release_client.return_value.find_release.return_value = None

        result = runner.invoke(app, ["import", "-r", "grafana", "-n", "monitoring"])

        assert result.exit_code == 1
        assert "was not found" in result.output
