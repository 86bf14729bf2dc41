"""Chart source resolution.

Turns a release's chart reference into something helm can install:
- local chart directories are checked for existence and get their
  dependencies built
- repository charts get their repository added (once per run)
- git charts are cloned into a run-scoped workspace and checked out

All network work (git clone, helm repo add) is bounded by a semaphore
independent of the release worker count. Results are cached per key for
the run; the first caller for a key does the work while later callers
wait on that key's lock and reuse the result (or the error).
"""

from __future__ import annotations

import shutil
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any

import yaml
from loguru import logger

from .course.model import GitChart, LocalChart, Release, RepositoryChart
from .errors import FetchError, ReleaseClientError
from .release_client import ReleaseClient
from .shell.git import GitCommands


@dataclass(frozen=True)
class ResolvedSource:
    """A chart ready to hand to helm.

    Attributes:
        chart: Chart argument for helm (directory path or "repo/chart" locator)
        version: --version for repository charts, None otherwise
        local_path: Directory holding the chart when it is on disk
    """

    chart: str
    version: str | None = None
    local_path: Path | None = None


class _KeyedCache:
    """Write-once-per-key cache with one lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Any, threading.Lock] = {}
        self._values: dict[Any, Any] = {}

    def lock(self, key: Any) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def get(self, key: Any) -> Any:
        return self._values.get(key)

    def put(self, key: Any, value: Any) -> None:
        self._values[key] = value


class SourceFetcher:
    """Resolves chart references to concrete chart locations for one run.

    Use as a context manager (or call close()) so that git clones are
    removed when the run ends.
    """

    def __init__(
        self,
        client: ReleaseClient,
        git: GitCommands,
        *,
        fetch_workers: int = 4,
        workspace: Path | None = None,
    ) -> None:
        """Initialize the source fetcher.

        Args:
            client: Release client for repo add and dependency build
            git: Git commands for cloning version-controlled sources
            fetch_workers: Concurrent network fetches allowed
            workspace: Directory for clones (default: a new temp directory)
        """
        self.client = client
        self.git = git
        self._network = threading.BoundedSemaphore(fetch_workers)
        self._workspace = workspace
        self._owns_workspace = workspace is None
        self._workspace_lock = threading.Lock()
        self._clones = _KeyedCache()
        self._repositories = _KeyedCache()
        self._dependencies = _KeyedCache()
        self._clone_count = 0

    def __enter__(self) -> SourceFetcher:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Remove the clone workspace if this fetcher created it."""
        if self._workspace is not None and self._owns_workspace:
            shutil.rmtree(self._workspace, ignore_errors=True)
            logger.debug(f"Removed source workspace {self._workspace}")
            self._workspace = None

    @property
    def workspace(self) -> Path:
        with self._workspace_lock:
            if self._workspace is None:
                self._workspace = Path(tempfile.mkdtemp(prefix="helmcourse-sources-"))
                self._owns_workspace = True
            return self._workspace

    def resolve(self, release: Release) -> ResolvedSource:
        """Resolve a release's chart reference.

        Raises:
            FetchError: If the chart cannot be located, cloned, checked out
                or prepared
        """
        chart = release.chart
        if isinstance(chart, LocalChart):
            return self._resolve_local(chart)
        if isinstance(chart, RepositoryChart):
            return self._resolve_repository(chart)
        if isinstance(chart, GitChart):
            return self._resolve_git(chart)
        raise FetchError(f"Unsupported chart reference {chart!r}")

    # =========================================================================
    # Strategies
    # =========================================================================

    def _resolve_local(self, chart: LocalChart) -> ResolvedSource:
        if not chart.path.is_dir():
            raise FetchError(f"Chart directory {chart.path} does not exist")
        self._build_dependencies(chart.path)
        return ResolvedSource(chart=str(chart.path), local_path=chart.path)

    def _resolve_repository(self, chart: RepositoryChart) -> ResolvedSource:
        if chart.repository is not None and chart.url is not None:
            self._ensure_repository(chart.repository, chart.url)
        return ResolvedSource(chart=chart.locator, version=chart.version)

    def _ensure_repository(self, name: str, url: str) -> None:
        key = (name, url)
        with self._repositories.lock(key):
            cached = self._repositories.get(key)
            if isinstance(cached, FetchError):
                raise cached
            if cached is not None:
                return
            logger.info(f"Adding chart repository {name} ({url})")
            try:
                with self._network:
                    self.client.repo_add(name, url)
            except ReleaseClientError as e:
                error = FetchError(e.message, details=e.details)
                self._repositories.put(key, error)
                raise error from e
            self._repositories.put(key, True)

    def _resolve_git(self, chart: GitChart) -> ResolvedSource:
        checkout = self._checkout(chart.url, chart.ref)
        chart_dir = (checkout / chart.path).resolve()
        if not chart_dir.is_relative_to(checkout) or not chart_dir.is_dir():
            raise FetchError(
                f"Chart path '{chart.path}' does not exist in {chart.url}"
                + (f" at {chart.ref}" if chart.ref else "")
            )
        self._build_dependencies(chart_dir)
        return ResolvedSource(chart=str(chart_dir), local_path=chart_dir)

    def _checkout(self, url: str, ref: str | None) -> Path:
        key = (url, ref)
        with self._clones.lock(key):
            cached = self._clones.get(key)
            if isinstance(cached, FetchError):
                raise cached
            if cached is not None:
                return cached
            try:
                with self._network:
                    path = self._clone(url, ref)
            except FetchError as e:
                self._clones.put(key, e)
                raise
            self._clones.put(key, path)
            return path

    def _clone(self, url: str, ref: str | None) -> Path:
        with self._workspace_lock:
            self._clone_count += 1
            number = self._clone_count
        destination = self.workspace / f"clone-{number}"
        where = f"{url}" + (f" at {ref}" if ref else "")
        logger.info(f"Cloning {where}")

        # Shallow first: works for branches and tags
        result = self.git.clone(url, destination, ref=ref, shallow=True)
        if result.success:
            return destination.resolve()
        if ref is None:
            raise FetchError(f"Cannot clone {url}", details=result.output)

        # Commit SHAs need full history
        logger.debug(f"Shallow clone of {where} failed, retrying with full history")
        shutil.rmtree(destination, ignore_errors=True)
        result = self.git.clone(url, destination, shallow=False)
        if not result.success:
            raise FetchError(f"Cannot clone {url}", details=result.output)
        result = self.git.checkout(destination, ref)
        if not result.success:
            raise FetchError(
                f"Cannot check out '{ref}' in {url}", details=result.output
            )
        return destination.resolve()

    def _build_dependencies(self, chart_dir: Path) -> None:
        if not chart_has_dependencies(chart_dir):
            return
        with self._dependencies.lock(chart_dir):
            cached = self._dependencies.get(chart_dir)
            if isinstance(cached, FetchError):
                raise cached
            if cached is not None:
                return
            logger.info(f"Building chart dependencies for {chart_dir.name}")
            try:
                with self._network:
                    self.client.dependency_build(chart_dir)
            except ReleaseClientError as e:
                error = FetchError(e.message, details=e.details)
                self._dependencies.put(chart_dir, error)
                raise error from e
            self._dependencies.put(chart_dir, True)


def chart_has_dependencies(chart_dir: Path) -> bool:
    """Whether Chart.yaml (or a Helm 2 requirements.yaml) lists dependencies."""
    for name in ("Chart.yaml", "requirements.yaml"):
        path = chart_dir / name
        if not path.is_file():
            continue
        try:
            document = yaml.safe_load(path.read_text())
        except (OSError, yaml.YAMLError):
            # helm itself reports broken chart metadata with a better message
            continue
        if isinstance(document, dict) and document.get("dependencies"):
            return True
    return False
