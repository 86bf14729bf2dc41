"""Shared fixtures: an in-memory cluster and small course builders."""

import threading
from collections.abc import Mapping
from pathlib import Path

import pytest

from helmcourse.course.model import Course, LocalChart, Release
from helmcourse.infra.k8s.controller import (
    KubernetesController,
    KubernetesControllerSync,
    NamespaceState,
)


class FakeKubernetesController(KubernetesController):
    """In-memory namespaces with call counters."""

    def __init__(self, namespaces: Mapping[str, NamespaceState] | None = None) -> None:
        self.namespaces: dict[str, NamespaceState] = dict(namespaces or {})
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self._lock = threading.Lock()

    def _record(self, op: str, name: str) -> None:
        with self._lock:
            self.calls.append((op, name))
        if name in self.fail_on:
            raise RuntimeError(f"API error for {name}")

    def count(self, op: str, name: str | None = None) -> int:
        return sum(1 for o, n in self.calls if o == op and (name is None or n == name))

    async def get_current_context(self) -> str:
        return "fake"

    async def get_namespace(self, name: str) -> NamespaceState | None:
        self._record("get", name)
        return self.namespaces.get(name)

    async def create_namespace(self, name, *, labels, annotations) -> NamespaceState:
        self._record("create", name)
        state = NamespaceState(name, dict(labels), dict(annotations))
        self.namespaces[name] = state
        return state

    async def patch_namespace(self, name, *, labels, annotations) -> NamespaceState:
        self._record("patch", name)
        live = self.namespaces[name]
        state = NamespaceState(
            name,
            {**live.labels, **labels},
            {**live.annotations, **annotations},
        )
        self.namespaces[name] = state
        return state


@pytest.fixture
def fake_controller() -> FakeKubernetesController:
    return FakeKubernetesController()


@pytest.fixture
def controller_sync(fake_controller: FakeKubernetesController) -> KubernetesControllerSync:
    return KubernetesControllerSync(fake_controller)


@pytest.fixture
def chart_dir(tmp_path: Path) -> Path:
    """A minimal chart directory on disk."""
    path = tmp_path / "charts" / "app"
    path.mkdir(parents=True)
    (path / "Chart.yaml").write_text("apiVersion: v2\nname: app\nversion: 0.1.0\n")
    return path


def make_release(name: str, chart_path: Path, namespace: str = "default", **kwargs) -> Release:
    return Release(name=name, chart=LocalChart(chart_path), namespace=namespace, **kwargs)


def make_course(*releases: Release, **kwargs) -> Course:
    kwargs.setdefault("default_namespace", "default")
    return Course(releases=tuple(releases), **kwargs)
