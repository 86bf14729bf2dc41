"""Release client: the engine's view of the helm executable.

Every operation shells out to helm through HelmCommands and maps a failed
call into a ReleaseClientError whose ``kind`` tells user-input problems
(bad chart, values, flags) from cluster-communication problems (API
unreachable, credentials, RBAC). Nothing is retried here.
"""

from __future__ import annotations

import dataclasses
import shutil
import tempfile
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from loguru import logger

from .errors import ErrorKind, HelmNotFoundError, ReleaseClientError
from .shell.helm import HelmCommands
from .shell.types import CommandResult, HelmRelease

if TYPE_CHECKING:
    from .course.model import Course, Release, ValuesSource
    from .sources import ResolvedSource

# Checked first: a cluster problem often also mentions "not found" or "invalid"
_CLUSTER_MARKERS = (
    "kubernetes cluster unreachable",
    "connection refused",
    "dial tcp",
    "i/o timeout",
    "no such host",
    "tls handshake timeout",
    "context deadline exceeded",
    "unauthorized",
    "forbidden",
    "provide credentials",
    "server is currently unable",
    "etcdserver",
)
_USER_INPUT_MARKERS = (
    "parse error",
    "yaml:",
    "template:",
    "execution error",
    "not found",
    "no such file",
    "invalid",
    "required",
    "unknown flag",
    "unknown command",
    "failed to download",
    "values don't meet the specifications",
    "cannot re-use a name",
    "has no deployed releases",
    "chart requires",
)

RELEASE_NOT_FOUND = "release: not found"


def classify_failure(stderr: str) -> ErrorKind:
    """Map helm's error output to a failure kind."""
    text = stderr.lower()
    if any(marker in text for marker in _CLUSTER_MARKERS):
        return ErrorKind.CLUSTER
    if any(marker in text for marker in _USER_INPUT_MARKERS):
        return ErrorKind.USER_INPUT
    return ErrorKind.UNKNOWN


@dataclasses.dataclass(frozen=True)
class CourseDefaults:
    """Course-wide settings applied to every release operation."""

    context: str | None = None
    helm_args: tuple[str, ...] = ()
    values: tuple[ValuesSource, ...] = ()


class ReleaseClient:
    """Capability set over the helm executable.

    Operations:
    - template / install_or_upgrade: render or apply a release
    - get_manifest / get_values / list_releases: inspect deployed state
    - repo_add / dependency_build: prepare chart sources
    - version: report the helm client version
    """

    def __init__(self, helm: HelmCommands, defaults: CourseDefaults | None = None) -> None:
        """Initialize the release client.

        Args:
            helm: helm command wrapper (its binary must already be located)
            defaults: Course-wide context, arguments and global values
        """
        self.helm = helm
        self.defaults = defaults or CourseDefaults()

    @staticmethod
    def locate(binary: str) -> str:
        """Resolve the helm executable on PATH, once, at startup.

        Raises:
            HelmNotFoundError: If the executable cannot be found
        """
        path = shutil.which(binary)
        if path is None:
            raise HelmNotFoundError(binary)
        logger.debug(f"Using helm at {path}")
        return path

    def for_course(self, course: Course) -> ReleaseClient:
        """A client applying the course's context, helm_args and global values."""
        return ReleaseClient(
            self.helm,
            CourseDefaults(
                context=course.context,
                helm_args=course.helm_args,
                values=course.values,
            ),
        )

    # =========================================================================
    # Render / Apply
    # =========================================================================

    def template(
        self, release: Release, source: ResolvedSource, *, hooks: bool = True
    ) -> str:
        """Render a release's manifests without touching the cluster.

        hooks=False drops hook manifests so the output compares against the
        deployed manifest.

        Raises:
            ReleaseClientError: If helm cannot render the chart
        """
        with self._values_files(release) as value_files:
            result = self.helm.template(
                release.name,
                source.chart,
                release.namespace,
                version=source.version,
                value_files=value_files,
                set_values=release.set_values,
                set_string_values=release.set_string_values,
                kube_context=self.defaults.context,
                extra_args=self._extra_args(release),
                hooks=hooks,
            )
        self._check(result, f"Rendering release '{release.name}' failed")
        return result.stdout

    def install_or_upgrade(
        self,
        release: Release,
        source: ResolvedSource,
        *,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Install the release, or upgrade it when it already exists.

        Raises:
            ReleaseClientError: If helm reports a failure
        """
        with self._values_files(release) as value_files:
            result = self.helm.upgrade_install(
                release.name,
                source.chart,
                release.namespace,
                version=source.version,
                value_files=value_files,
                set_values=release.set_values,
                set_string_values=release.set_string_values,
                kube_context=self.defaults.context,
                extra_args=self._extra_args(release),
                on_output=on_output,
            )
        self._check(result, f"Installing release '{release.name}' failed")
        return result

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_manifest(self, release: Release) -> str:
        """The manifest of the deployed release; empty when it is not installed.

        Raises:
            ReleaseClientError: For any failure other than "not installed"
        """
        result = self.helm.get_manifest(
            release.name, release.namespace, kube_context=self.defaults.context
        )
        if not result.success and RELEASE_NOT_FOUND in result.output.lower():
            return ""
        self._check(result, f"Reading manifest of release '{release.name}' failed")
        return result.stdout

    def get_values(self, release_name: str, namespace: str) -> dict[str, Any]:
        """User-supplied values of a deployed release.

        Raises:
            ReleaseClientError: If helm fails or prints something that is
                not a YAML mapping
        """
        result = self.helm.get_values(
            release_name, namespace, kube_context=self.defaults.context
        )
        self._check(result, f"Reading values of release '{release_name}' failed")
        try:
            values = yaml.safe_load(result.stdout)
        except yaml.YAMLError as e:
            raise ReleaseClientError(
                f"helm printed unparsable values for '{release_name}'",
                stderr=str(e),
            ) from e
        if values is None:
            return {}
        if not isinstance(values, dict):
            raise ReleaseClientError(
                f"helm printed values for '{release_name}' that are not a mapping"
            )
        return values

    def list_releases(self, namespace: str | None = None) -> list[HelmRelease]:
        """Releases deployed in a namespace (all namespaces when None)."""
        return self.helm.list_releases(namespace, kube_context=self.defaults.context)

    def find_release(self, release_name: str, namespace: str) -> HelmRelease | None:
        """A deployed release by exact name, or None."""
        for candidate in self.helm.list_releases(
            namespace,
            filter_pattern=f"^{release_name}$",
            kube_context=self.defaults.context,
        ):
            if candidate.name == release_name:
                return candidate
        return None

    def version(self) -> str:
        """The helm client version, e.g. "v3.14.2+gc309b6f".

        Raises:
            ReleaseClientError: If helm cannot report its version
        """
        result = self.helm.version()
        self._check(result, "Reading the helm version failed")
        return result.stdout.strip()

    # =========================================================================
    # Chart Sources
    # =========================================================================

    def repo_add(self, name: str, url: str) -> None:
        """Add a chart repository.

        Raises:
            ReleaseClientError: If helm cannot add the repository
        """
        result = self.helm.repo_add(name, url)
        self._check(result, f"Adding chart repository '{name}' ({url}) failed")

    def dependency_build(self, chart_path: Path) -> None:
        """Fetch a chart's dependencies into its charts/ directory.

        Raises:
            ReleaseClientError: If helm cannot build the dependencies
        """
        result = self.helm.dependency_build(chart_path)
        self._check(result, f"Building dependencies of {chart_path} failed")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _extra_args(self, release: Release) -> list[str]:
        return [*self.defaults.helm_args, *release.helm_args]

    @contextmanager
    def _values_files(self, release: Release) -> Iterator[Sequence[Path]]:
        """Values files in override order; inline values become temp files."""
        sources = (*self.defaults.values, *release.values)
        if not any(source.inline is not None for source in sources):
            yield [source.path for source in sources if source.path is not None]
            return

        with tempfile.TemporaryDirectory(prefix="helmcourse-values-") as tmp:
            paths: list[Path] = []
            for index, source in enumerate(sources):
                if source.path is not None:
                    paths.append(source.path)
                    continue
                path = Path(tmp) / f"{release.name}-{index}.yaml"
                path.write_text(
                    yaml.safe_dump(dict(source.inline or {}), default_flow_style=False)
                )
                paths.append(path)
            yield paths

    @staticmethod
    def _check(result: CommandResult, message: str) -> None:
        if result.success:
            return
        kind = classify_failure(result.output)
        raise ReleaseClientError(
            message,
            kind=kind,
            returncode=result.returncode,
            stderr=result.output,
        )
