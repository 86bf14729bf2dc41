"""Data types for shell command results.

This module contains the dataclasses shared by the shell command modules.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        success: Whether the command exited with code 0
        stdout: Captured standard output
        stderr: Captured standard error (empty when merged into stdout)
        returncode: Process exit code, -1 when the command timed out
        timed_out: Whether the command was stopped by its timeout
    """

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    timed_out: bool = False

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for diagnostics."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class HelmRelease:
    """Information about a deployed Helm release.

    Attributes:
        name: Release name
        namespace: Kubernetes namespace
        status: Release status (deployed, failed, pending-install, ...)
        revision: Release revision number
        chart: Chart name and version as reported by helm (e.g. "grafana-6.1.0")
        app_version: Application version of the chart
    """

    name: str
    namespace: str
    status: str
    revision: str
    chart: str = ""
    app_version: str = ""

    @property
    def chart_name(self) -> str:
        """Chart name without its version suffix."""
        return split_chart_version(self.chart)[0]

    @property
    def chart_version(self) -> str | None:
        """Chart version parsed from the helm chart column."""
        return split_chart_version(self.chart)[1]


def split_chart_version(chart: str) -> tuple[str, str | None]:
    """Split helm's "name-version" chart column into its parts.

    Chart names may contain dashes, so the version starts at the last dash
    followed by a digit.

    Example:
        >>> split_chart_version("kube-prometheus-stack-45.7.1")
        ('kube-prometheus-stack', '45.7.1')
    """
    for index in range(len(chart) - 1, 0, -1):
        if chart[index] == "-" and chart[index + 1 : index + 2].isdigit():
            return chart[:index], chart[index + 1 :]
    return chart, None
