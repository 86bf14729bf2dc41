"""Plot orchestration: drive the cluster toward a course.

For each selected release, in declared order:

1. ensure its namespace
2. resolve its chart source
3. (update mode) diff, and skip the release when nothing changed
4. run its pre-install hooks
5. helm upgrade --install
6. run its post-install hooks

Releases run on a bounded thread pool. A failure is recorded on the
release's outcome and the run continues with the other releases, unless
fail-fast is set, in which case releases that have not started yet are
skipped. The returned PlotSummary is the authoritative result of the run.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeVar

from loguru import logger

from .course.model import Course, Release
from .diff import DiffEngine, DiffKind, DiffResult
from .errors import (
    ErrorKind,
    HelmCourseError,
    HookError,
    ReleaseClientError,
)
from .hooks import HookRunner
from .infra.k8s import KubernetesControllerSync, get_k8s_controller_sync
from .namespaces import NamespaceManager
from .release_client import ReleaseClient
from .settings import Settings
from .shell import ShellCommands
from .shell.git import GitCommands
from .sources import ResolvedSource, SourceFetcher
from .versions import satisfies_minimum

T = TypeVar("T")


class ReleaseStatus(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PlotOptions:
    """Caller-level options for one run.

    Attributes:
        workers: Releases processed concurrently (None: Settings.workers)
        fail_fast: Stop starting new releases after the first failure
        update: Only install releases whose diff reports a change
        retries: Extra install attempts after a cluster-communication error
        retry_delay: Seconds to wait before each retry
    """

    workers: int | None = None
    fail_fast: bool = False
    update: bool = False
    retries: int = 0
    retry_delay: float = 5.0


@dataclass
class ReleaseOutcome:
    """What happened to one release during a run."""

    release: str
    namespace: str
    status: ReleaseStatus
    reason: str = ""
    error: HelmCourseError | None = None
    post_hook_error: HookError | None = None
    diff: DiffResult | None = None

    @property
    def ok(self) -> bool:
        return self.status is not ReleaseStatus.FAILED and self.post_hook_error is None


@dataclass
class PlotSummary:
    """Per-release outcomes plus course-level hook failures."""

    outcomes: list[ReleaseOutcome] = field(default_factory=list)
    course_errors: list[HookError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        """True when every release succeeded and no course hook failed."""
        return not self.course_errors and all(o.ok for o in self.outcomes)

    @property
    def applied(self) -> list[ReleaseOutcome]:
        return [o for o in self.outcomes if o.status is ReleaseStatus.APPLIED]

    @property
    def skipped(self) -> list[ReleaseOutcome]:
        return [o for o in self.outcomes if o.status is ReleaseStatus.SKIPPED]

    @property
    def failed(self) -> list[ReleaseOutcome]:
        return [o for o in self.outcomes if o.status is ReleaseStatus.FAILED]

    def outcome(self, release: str) -> ReleaseOutcome:
        """Look up a release's outcome by name.

        Raises:
            KeyError: If the release was not part of the run
        """
        for outcome in self.outcomes:
            if outcome.release == release:
                return outcome
        raise KeyError(release)


@dataclass
class ManifestResult:
    """A rendered or deployed manifest for one release (or why there is none)."""

    release: str
    namespace: str
    manifest: str = ""
    error: HelmCourseError | None = None


class PlotOrchestrator:
    """Sequences namespaces, sources, hooks and helm across a course.

    The orchestrator is the only component that talks to all the others.
    Everything it caches (namespace outcomes, resolved sources, added
    repositories) lives for one call of plot/template/diff/get_manifests.
    """

    def __init__(
        self,
        client: ReleaseClient,
        git: GitCommands,
        hooks: HookRunner,
        controller: KubernetesControllerSync,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Release client (helm already located)
            git: Git commands for version-controlled chart sources
            hooks: Hook runner
            controller: Cluster API access for namespaces
            settings: Run settings (workers, fetch workers, version)
        """
        self.client = client
        self.git = git
        self.hooks = hooks
        self.controller = controller
        self.settings = settings or Settings()
        self._cancel = threading.Event()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        working_dir: Path,
        *,
        context: str | None = None,
    ) -> PlotOrchestrator:
        """Build an orchestrator wired to the real helm, git and cluster.

        Raises:
            HelmNotFoundError: If helm is not on PATH
        """
        helm_path = ReleaseClient.locate(settings.helm_binary)
        commands = ShellCommands(
            working_dir,
            helm_binary=helm_path,
            git_binary=settings.git_binary,
            helm_timeout=settings.helm_timeout,
            git_timeout=settings.git_timeout,
        )
        return cls(
            client=ReleaseClient(commands.helm),
            git=commands.git,
            hooks=HookRunner(commands.runner, timeout=settings.hook_timeout),
            controller=get_k8s_controller_sync(context),
            settings=settings,
        )

    def cancel(self) -> None:
        """Stop scheduling new releases; running ones finish normally."""
        logger.warning("Cancellation requested; no new releases will start")
        self._cancel.set()

    # =========================================================================
    # Plot / Update
    # =========================================================================

    def plot(self, course: Course, options: PlotOptions | None = None) -> PlotSummary:
        """Reconcile the cluster toward the course.

        Raises:
            HelmCourseError: If a minimum version requirement is not met
                (checked before anything is changed)
        """
        options = options or PlotOptions()
        client = self.client.for_course(course)
        self._check_versions(course, client)
        self._cancel = threading.Event()
        summary = PlotSummary()

        mode = "update" if options.update else "plot"
        logger.info(f"Starting {mode} of {len(course.releases)} releases")

        try:
            self.hooks.run(course.hooks.pre, "pre", scope="course", env=self._hook_env())
        except HookError as e:
            summary.course_errors.append(e)
            for release in course.releases:
                if release.enabled:
                    summary.outcomes.append(
                        ReleaseOutcome(
                            release.name,
                            release.namespace,
                            ReleaseStatus.FAILED,
                            reason="course pre-install hook failed",
                            error=e,
                        )
                    )
                else:
                    summary.outcomes.append(_disabled(release))
            return summary

        namespaces = NamespaceManager(self.controller)
        with self._fetcher(client) as fetcher:

            def pipeline(release: Release) -> ReleaseOutcome:
                return self._apply_release(
                    release, course, client, fetcher, namespaces, options
                )

            summary.outcomes = self._run_releases(
                course.releases,
                pipeline,
                workers=options.workers,
                fail_fast=options.fail_fast,
            )

        summary.cancelled = self._cancel.is_set()
        if summary.cancelled:
            logger.warning("Run cancelled; skipping course post-install hooks")
        else:
            try:
                self.hooks.run(
                    course.hooks.post, "post", scope="course", env=self._hook_env()
                )
            except HookError as e:
                summary.course_errors.append(e)

        logger.info(
            f"Finished {mode}: {len(summary.applied)} applied, "
            f"{len(summary.skipped)} skipped, {len(summary.failed)} failed"
        )
        return summary

    def update(self, course: Course, options: PlotOptions | None = None) -> PlotSummary:
        """Plot only the releases whose diff reports a change."""
        options = options or PlotOptions()
        return self.plot(
            course,
            PlotOptions(
                workers=options.workers,
                fail_fast=options.fail_fast,
                update=True,
                retries=options.retries,
                retry_delay=options.retry_delay,
            ),
        )

    def _apply_release(
        self,
        release: Release,
        course: Course,
        client: ReleaseClient,
        fetcher: SourceFetcher,
        namespaces: NamespaceManager,
        options: PlotOptions,
    ) -> ReleaseOutcome:
        log = logger.bind(scope=release.name)
        outcome = ReleaseOutcome(release.name, release.namespace, ReleaseStatus.FAILED)
        try:
            namespaces.ensure(course.namespace_for(release.namespace))
            source = fetcher.resolve(release)

            if options.update:
                outcome.diff = DiffEngine(client).diff(release, source)
                if outcome.diff.kind is DiffKind.NO_CHANGE:
                    log.info("No changes; skipping")
                    outcome.status = ReleaseStatus.SKIPPED
                    outcome.reason = "no changes"
                    return outcome
                if outcome.diff.kind is DiffKind.ERROR:
                    raise HelmCourseError(
                        f"Diff of release '{release.name}' failed",
                        details=outcome.diff.error,
                    )

            env = self._hook_env(release)
            self.hooks.run(release.hooks.pre, "pre", scope=release.name, env=env)
            log.info(f"Installing {release.chart} into {release.namespace}")
            self._install(client, release, source, options)
        except HelmCourseError as e:
            log.error(f"Failed: {e.message}")
            outcome.error = e
            outcome.reason = e.message
            return outcome

        outcome.status = ReleaseStatus.APPLIED
        try:
            self.hooks.run(release.hooks.post, "post", scope=release.name, env=env)
        except HookError as e:
            outcome.post_hook_error = e
            outcome.reason = e.message
        return outcome

    def _install(
        self,
        client: ReleaseClient,
        release: Release,
        source: ResolvedSource,
        options: PlotOptions,
    ) -> None:
        log = logger.bind(scope=release.name)
        attempt = 0
        while True:
            try:
                client.install_or_upgrade(
                    release,
                    source,
                    on_output=lambda line: log.debug(f"  | {line}"),
                )
                return
            except ReleaseClientError as e:
                if e.kind is not ErrorKind.CLUSTER or attempt >= options.retries:
                    raise
                attempt += 1
                log.warning(
                    f"Cluster error, retrying ({attempt}/{options.retries}): {e.message}"
                )
                time.sleep(options.retry_delay)

    # =========================================================================
    # Read-only operations
    # =========================================================================

    def template(
        self, course: Course, *, workers: int | None = None
    ) -> list[ManifestResult]:
        """Render every enabled release without touching the cluster."""
        client = self.client.for_course(course)
        self._cancel = threading.Event()
        with self._fetcher(client) as fetcher:

            def render(release: Release) -> ManifestResult:
                result = ManifestResult(release.name, release.namespace)
                try:
                    result.manifest = client.template(release, fetcher.resolve(release))
                except HelmCourseError as e:
                    result.error = e
                return result

            return self._run_read_only(course, render, workers)

    def diff(self, course: Course, *, workers: int | None = None) -> list[DiffResult]:
        """Compare every enabled release with what is deployed."""
        client = self.client.for_course(course)
        engine = DiffEngine(client)
        self._cancel = threading.Event()
        with self._fetcher(client) as fetcher:

            def compare(release: Release) -> DiffResult:
                try:
                    source = fetcher.resolve(release)
                except HelmCourseError as e:
                    return DiffResult(
                        release=release.name,
                        namespace=release.namespace,
                        kind=DiffKind.ERROR,
                        error=str(e),
                    )
                return engine.diff(release, source)

            return self._run_read_only(course, compare, workers)

    def get_manifests(
        self, course: Course, *, workers: int | None = None
    ) -> list[ManifestResult]:
        """Fetch the deployed manifest of every enabled release."""
        client = self.client.for_course(course)
        self._cancel = threading.Event()

        def fetch(release: Release) -> ManifestResult:
            result = ManifestResult(release.name, release.namespace)
            try:
                result.manifest = client.get_manifest(release)
            except HelmCourseError as e:
                result.error = e
                return result
            if not result.manifest:
                result.error = HelmCourseError(
                    f"Release '{release.name}' is not installed in {release.namespace}"
                )
            return result

        return self._run_read_only(course, fetch, workers)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _run_releases(
        self,
        releases: Sequence[Release],
        pipeline: Callable[[Release], ReleaseOutcome],
        *,
        workers: int | None,
        fail_fast: bool,
    ) -> list[ReleaseOutcome]:
        def guarded(release: Release) -> ReleaseOutcome:
            if not release.enabled:
                return _disabled(release)
            if self._cancel.is_set():
                return ReleaseOutcome(
                    release.name,
                    release.namespace,
                    ReleaseStatus.SKIPPED,
                    reason="cancelled",
                )
            try:
                outcome = pipeline(release)
            except Exception as e:
                logger.bind(scope=release.name).exception("Unexpected error")
                outcome = ReleaseOutcome(
                    release.name,
                    release.namespace,
                    ReleaseStatus.FAILED,
                    reason=f"unexpected error: {e}",
                    error=HelmCourseError(f"Unexpected error: {e}"),
                )
            if fail_fast and outcome.status is ReleaseStatus.FAILED:
                self.cancel()
            return outcome

        return self._map(releases, guarded, workers)

    def _run_read_only(
        self,
        course: Course,
        operation: Callable[[Release], T],
        workers: int | None,
    ) -> list[T]:
        releases = [r for r in course.releases if r.enabled]
        return self._map(releases, operation, workers)

    def _map(
        self,
        releases: Sequence[Release],
        operation: Callable[[Release], T],
        workers: int | None,
    ) -> list[T]:
        """Run operation per release on the pool; results in declared order."""
        max_workers = workers or self.settings.workers
        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="helmcourse"
        ) as pool:
            futures = [pool.submit(operation, release) for release in releases]
            return [future.result() for future in futures]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fetcher(self, client: ReleaseClient) -> SourceFetcher:
        return SourceFetcher(client, self.git, fetch_workers=self.settings.fetch_workers)

    def _hook_env(self, release: Release | None = None) -> dict[str, str]:
        env = {"HELMCOURSE_VERSION": self.settings.version}
        if release is not None:
            env["HELMCOURSE_RELEASE"] = release.name
            env["HELMCOURSE_NAMESPACE"] = release.namespace
        return env

    def _check_versions(self, course: Course, client: ReleaseClient) -> None:
        if course.minimum_helmcourse_version and not satisfies_minimum(
            self.settings.version, course.minimum_helmcourse_version
        ):
            raise HelmCourseError(
                f"This course requires helmcourse {course.minimum_helmcourse_version} "
                f"or newer (running {self.settings.version})"
            )
        if course.minimum_helm_version:
            actual = client.version()
            if not satisfies_minimum(actual, course.minimum_helm_version):
                raise HelmCourseError(
                    f"This course requires helm {course.minimum_helm_version} "
                    f"or newer (found {actual})"
                )


def _disabled(release: Release) -> ReleaseOutcome:
    return ReleaseOutcome(
        release.name, release.namespace, ReleaseStatus.SKIPPED, reason="disabled"
    )
