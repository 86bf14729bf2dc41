"""Abstract Kubernetes controller interface.

Defines the small slice of the cluster API the engine needs (namespace
get/create/patch) so that it can be implemented by different backends
and replaced by an in-memory fake in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field

from .utils import run_sync

# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class NamespaceState:
    """Live metadata of a namespace."""

    name: str
    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)


# =============================================================================
# Abstract Controller
# =============================================================================


class KubernetesController(ABC):
    """Abstract base class for Kubernetes operations.

    All methods are async to match the kr8s API. Use KubernetesControllerSync
    (or `run_sync()`) to call them from worker threads.

    Implementations raise on API failures; a missing namespace is not a
    failure and is reported as None.
    """

    @abstractmethod
    async def get_current_context(self) -> str:
        """Get the active kubeconfig context name, or "unknown"."""
        ...

    @abstractmethod
    async def get_namespace(self, name: str) -> NamespaceState | None:
        """Read a namespace.

        Args:
            name: Namespace to read

        Returns:
            The namespace's current metadata, or None if it does not exist
        """
        ...

    @abstractmethod
    async def create_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str],
        annotations: Mapping[str, str],
    ) -> NamespaceState:
        """Create a namespace with the given metadata."""
        ...

    @abstractmethod
    async def patch_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str],
        annotations: Mapping[str, str],
    ) -> NamespaceState:
        """Merge labels and annotations into an existing namespace.

        Keys not mentioned are left untouched.
        """
        ...


class KubernetesControllerSync:
    """Blocking facade over a KubernetesController.

    Each call runs the coroutine to completion on its own event loop,
    which makes the facade safe to use from several worker threads.
    """

    def __init__(self, controller: KubernetesController) -> None:
        self.controller = controller

    def get_current_context(self) -> str:
        return run_sync(self.controller.get_current_context())

    def get_namespace(self, name: str) -> NamespaceState | None:
        return run_sync(self.controller.get_namespace(name))

    def create_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str],
        annotations: Mapping[str, str],
    ) -> NamespaceState:
        return run_sync(
            self.controller.create_namespace(
                name, labels=labels, annotations=annotations
            )
        )

    def patch_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str],
        annotations: Mapping[str, str],
    ) -> NamespaceState:
        return run_sync(
            self.controller.patch_namespace(name, labels=labels, annotations=annotations)
        )
