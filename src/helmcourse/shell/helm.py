"""Helm command abstractions.

This module provides commands for Helm release management: rendering,
installing or upgrading releases, reading deployed manifests and values,
and repository and dependency handling.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult, HelmRelease

if TYPE_CHECKING:
    from .runner import CommandRunner


class HelmCommands:
    """Helm-related shell commands.

    Provides operations for:
    - Release management (upgrade --install, template)
    - Release inspection (get manifest, get values, list)
    - Chart sources (repo add, dependency build)
    """

    def __init__(
        self,
        runner: CommandRunner,
        binary: str = "helm",
        *,
        timeout: float | None = None,
    ) -> None:
        """Initialize Helm commands.

        Args:
            runner: Command runner for executing shell commands
            binary: Path or name of the helm executable
            timeout: Seconds before any helm process is killed
        """
        self._runner = runner
        self.binary = binary
        self.timeout = timeout

    # =========================================================================
    # Release Management
    # =========================================================================

    def upgrade_install(
        self,
        release_name: str,
        chart: str,
        namespace: str,
        *,
        version: str | None = None,
        value_files: Sequence[Path] = (),
        set_values: Sequence[tuple[str, str]] = (),
        set_string_values: Sequence[tuple[str, str]] = (),
        kube_context: str | None = None,
        extra_args: Sequence[str] = (),
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Deploy or upgrade a Helm release.

        Uses `helm upgrade --install` to idempotently deploy a chart.
        If the release doesn't exist, it will be installed. If it exists,
        it will be upgraded. The namespace is never created by helm; that
        is the namespace manager's job.

        Args:
            release_name: Name for the Helm release
            chart: Local chart directory or repository locator ("repo/chart")
            namespace: Kubernetes namespace for deployment
            version: Chart version constraint (repository charts only)
            value_files: Values files, in override order
            set_values: Pairs passed as --set
            set_string_values: Pairs passed as --set-string
            kube_context: Kubeconfig context to use
            extra_args: Additional raw helm arguments
            on_output: Optional callback for real-time output streaming.

        Returns:
            CommandResult with deployment status

        Example:
            >>> helm.upgrade_install(
            ...     "grafana",
            ...     "stable/grafana",
            ...     "monitoring",
            ...     version="6.1.0",
            ...     value_files=[Path("./grafana.yaml")],
            ... )
        """
        cmd = [self.binary, "upgrade", "--install", release_name, chart]
        cmd.extend(
            self._chart_args(
                namespace,
                version=version,
                value_files=value_files,
                set_values=set_values,
                set_string_values=set_string_values,
                kube_context=kube_context,
                extra_args=extra_args,
            )
        )

        # Use streaming if callback provided, otherwise capture output
        if on_output:
            return self._runner.run_streaming(
                cmd, timeout=self.timeout, on_output=on_output
            )
        return self._runner.run(cmd, timeout=self.timeout)

    def template(
        self,
        release_name: str,
        chart: str,
        namespace: str,
        *,
        version: str | None = None,
        value_files: Sequence[Path] = (),
        set_values: Sequence[tuple[str, str]] = (),
        set_string_values: Sequence[tuple[str, str]] = (),
        kube_context: str | None = None,
        extra_args: Sequence[str] = (),
        hooks: bool = True,
    ) -> CommandResult:
        """Render a chart locally with `helm template`.

        Takes the same arguments as upgrade_install so the rendered manifest
        matches what an install would apply. With hooks=False, hook and test
        manifests are left out, matching what `helm get manifest` returns.

        Returns:
            CommandResult whose stdout is the rendered multi-document YAML
        """
        cmd = [self.binary, "template", release_name, chart]
        cmd.extend(
            self._chart_args(
                namespace,
                version=version,
                value_files=value_files,
                set_values=set_values,
                set_string_values=set_string_values,
                kube_context=kube_context,
                extra_args=extra_args,
            )
        )
        if not hooks:
            cmd.append("--no-hooks")
        return self._runner.run(cmd, timeout=self.timeout)

    # =========================================================================
    # Release Inspection
    # =========================================================================

    def get_manifest(
        self,
        release_name: str,
        namespace: str,
        *,
        kube_context: str | None = None,
    ) -> CommandResult:
        """Get the manifest of the currently deployed release revision."""
        cmd = [self.binary, "get", "manifest", release_name, "-n", namespace]
        cmd.extend(self._context_args(kube_context))
        return self._runner.run(cmd, timeout=self.timeout)

    def get_values(
        self,
        release_name: str,
        namespace: str,
        *,
        all_values: bool = False,
        kube_context: str | None = None,
    ) -> CommandResult:
        """Get the user-supplied (or all, with all_values) values as YAML."""
        cmd = [self.binary, "get", "values", release_name, "-n", namespace]
        cmd.extend(["-o", "yaml"])
        if all_values:
            cmd.append("--all")
        cmd.extend(self._context_args(kube_context))
        return self._runner.run(cmd, timeout=self.timeout)

    def list_releases(
        self,
        namespace: str | None = None,
        *,
        filter_pattern: str | None = None,
        kube_context: str | None = None,
    ) -> list[HelmRelease]:
        """List Helm releases.

        Args:
            namespace: Kubernetes namespace to query (all namespaces if None)
            filter_pattern: Regular expression applied to release names
            kube_context: Kubeconfig context to use

        Returns:
            List of HelmRelease objects; empty when helm fails or prints
            something that is not JSON
        """
        cmd = [self.binary, "list", "-o", "json"]
        if namespace:
            cmd.extend(["-n", namespace])
        else:
            cmd.append("--all-namespaces")
        if filter_pattern:
            cmd.extend(["--filter", filter_pattern])
        cmd.extend(self._context_args(kube_context))

        result = self._runner.run(cmd, timeout=self.timeout)
        if not result.success or not result.stdout:
            return []

        try:
            releases_data = json.loads(result.stdout)
        except json.JSONDecodeError:
            return []
        return [
            HelmRelease(
                name=r.get("name", ""),
                namespace=r.get("namespace", ""),
                status=r.get("status", ""),
                revision=str(r.get("revision", "")),
                chart=r.get("chart", ""),
                app_version=r.get("app_version", ""),
            )
            for r in releases_data
        ]

    def version(self) -> CommandResult:
        """Get the helm client version (e.g. "v3.14.2+gc309b6f")."""
        return self._runner.run(
            [self.binary, "version", "--short"], timeout=self.timeout
        )

    # =========================================================================
    # Chart Sources
    # =========================================================================

    def repo_add(self, name: str, url: str) -> CommandResult:
        """Add (or refresh) a chart repository.

        `--force-update` makes re-adding an existing name with a new URL
        succeed instead of failing.
        """
        cmd = [self.binary, "repo", "add", name, url, "--force-update"]
        return self._runner.run(cmd, timeout=self.timeout)

    def dependency_build(self, chart_path: Path) -> CommandResult:
        """Build a chart's charts/ directory from its dependency lock."""
        cmd = [self.binary, "dependency", "build", str(chart_path)]
        return self._runner.run(cmd, cwd=chart_path, timeout=self.timeout)

    # =========================================================================
    # Argument Helpers
    # =========================================================================

    def _chart_args(
        self,
        namespace: str,
        *,
        version: str | None,
        value_files: Sequence[Path],
        set_values: Sequence[tuple[str, str]],
        set_string_values: Sequence[tuple[str, str]],
        kube_context: str | None,
        extra_args: Sequence[str],
    ) -> list[str]:
        args = ["--namespace", namespace]
        if version:
            args.extend(["--version", version])
        for vf in value_files:
            args.extend(["-f", str(vf)])
        for key, value in set_values:
            args.extend(["--set", f"{key}={value}"])
        for key, value in set_string_values:
            args.extend(["--set-string", f"{key}={value}"])
        args.extend(self._context_args(kube_context))
        args.extend(extra_args)
        return args

    @staticmethod
    def _context_args(kube_context: str | None) -> list[str]:
        return ["--kube-context", kube_context] if kube_context else []
