"""In-memory representation of a validated course.

Everything here is immutable and already normalized to the v2 shape:
no consumer of these types needs to know which dialect the file used.
Order is meaningful wherever a tuple is used (releases, hooks, values
sources). Mappings built by the loader are read-only views.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class Hook:
    """A shell command run before or after a release (or the whole course)."""

    command: str
    description: str
    cwd: Path


@dataclass(frozen=True)
class HookSpec:
    """Ordered pre- and post-install hooks."""

    pre: tuple[Hook, ...] = ()
    post: tuple[Hook, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.pre or self.post)


@dataclass(frozen=True)
class Namespace:
    """A namespace and the metadata it must carry.

    Attributes:
        name: Namespace name (RFC 1123 label)
        labels: Labels that must be present
        annotations: Annotations that must be present
        create: Create the namespace when it does not exist
        overwrite: Update declared keys whose live value differs; when
                   False only missing keys are added
    """

    name: str
    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    annotations: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    create: bool = True
    overwrite: bool = True


@dataclass(frozen=True)
class LocalChart:
    """A chart directory on the local filesystem."""

    path: Path

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class RepositoryChart:
    """A chart served by a chart repository (or an OCI registry).

    Attributes:
        chart: Chart name, or a full ``oci://`` reference
        repository: Repository name as known to helm (None for OCI)
        url: Repository URL to add; None when the repository is expected
             to be configured already
        version: Chart version constraint
    """

    chart: str
    repository: str | None = None
    url: str | None = None
    version: str | None = None

    @property
    def locator(self) -> str:
        """The chart argument helm expects."""
        if self.repository is None:
            return self.chart
        return f"{self.repository}/{self.chart}"

    def __str__(self) -> str:
        suffix = f"@{self.version}" if self.version else ""
        return f"{self.locator}{suffix}"


@dataclass(frozen=True)
class GitChart:
    """A chart inside a git repository.

    Attributes:
        url: Remote URL
        path: Chart directory relative to the repository root
        ref: Commit SHA, branch or tag (None: the remote's default branch)
    """

    url: str
    path: str
    ref: str | None = None

    def __str__(self) -> str:
        ref = f"@{self.ref}" if self.ref else ""
        return f"{self.url}//{self.path}{ref}"


ChartRef = LocalChart | RepositoryChart | GitChart


@dataclass(frozen=True)
class ValuesSource:
    """One values source: a file or an inline mapping (exactly one is set)."""

    path: Path | None = None
    inline: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.inline is None):
            raise ValueError("ValuesSource needs exactly one of path or inline")


@dataclass(frozen=True)
class Release:
    """One chart release declared in the course.

    Attributes:
        name: Helm release name, unique within the course
        chart: Where the chart comes from
        namespace: Target namespace
        values: Values sources in override order (later wins)
        set_values: Pairs passed to helm as --set, in order
        set_string_values: Pairs passed to helm as --set-string, in order
        hooks: Release-level hooks
        enabled: Disabled releases are skipped by every operation
        helm_args: Extra raw helm arguments for this release
    """

    name: str
    chart: ChartRef
    namespace: str
    values: tuple[ValuesSource, ...] = ()
    set_values: tuple[tuple[str, str], ...] = ()
    set_string_values: tuple[tuple[str, str], ...] = ()
    hooks: HookSpec = HookSpec()
    enabled: bool = True
    helm_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class Course:
    """The whole desired state described by one course file.

    Attributes:
        default_namespace: Namespace for releases that do not name one
        releases: Releases in declared order
        namespaces: Explicitly managed namespaces in declared order
        hooks: Course-level hooks (around all releases)
        values: Global values sources applied before each release's own
        helm_args: Extra raw helm arguments for every release
        context: Kubeconfig context for every helm call
        minimum_helm_version: Oldest helm client the course accepts
        minimum_helmcourse_version: Oldest helmcourse the course accepts
        base_dir: Directory relative paths are resolved against
    """

    default_namespace: str
    releases: tuple[Release, ...]
    namespaces: tuple[Namespace, ...] = ()
    hooks: HookSpec = HookSpec()
    values: tuple[ValuesSource, ...] = ()
    helm_args: tuple[str, ...] = ()
    context: str | None = None
    minimum_helm_version: str | None = None
    minimum_helmcourse_version: str | None = None
    base_dir: Path = Path(".")

    @property
    def release_names(self) -> tuple[str, ...]:
        return tuple(r.name for r in self.releases)

    def release(self, name: str) -> Release:
        """Look up a release by name.

        Raises:
            KeyError: If no release has that name
        """
        for release in self.releases:
            if release.name == name:
                return release
        raise KeyError(name)

    def namespace_for(self, name: str) -> Namespace:
        """The declared namespace, or an implicit unmanaged one."""
        for namespace in self.namespaces:
            if namespace.name == name:
                return namespace
        return Namespace(name)

    def namespaces_in_use(self) -> tuple[Namespace, ...]:
        """Namespaces targeted by enabled releases, in first-use order."""
        seen: dict[str, Namespace] = {}
        for release in self.releases:
            if release.enabled and release.namespace not in seen:
                seen[release.namespace] = self.namespace_for(release.namespace)
        return tuple(seen.values())
