"""Kr8s-based implementation of KubernetesController.

Uses the kr8s library for native async Kubernetes operations.
Kubeconfig and in-cluster service account discovery are kr8s's own.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import kr8s
from kr8s.asyncio.objects import Namespace

from .controller import KubernetesController, NamespaceState


class Kr8sController(KubernetesController):
    """Kubernetes controller using kr8s library.

    All methods are natively async, leveraging kr8s's async API.

    Note: The kr8s API client is NOT cached because it's tied to the event loop
    that was running when created. run_sync() creates a new event loop per
    call, so a cached client would be unusable on the next call.
    """

    def __init__(self, context: str | None = None) -> None:
        """Initialize the kr8s controller.

        Args:
            context: Kubeconfig context to use (None: the current context)
        """
        self.context = context

    async def _get_api(self) -> Any:  # Returns kr8s._api.Api
        """Create a kr8s API client bound to the running event loop."""
        return await kr8s.asyncio.api(context=self.context)

    # =========================================================================
    # Cluster Context
    # =========================================================================

    async def get_current_context(self) -> str:
        """Get the active kubeconfig context name."""
        try:
            api = await self._get_api()
            return api.auth.active_context or "unknown"
        except Exception:
            return "unknown"

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    async def get_namespace(self, name: str) -> NamespaceState | None:
        """Read a namespace, returning None when it does not exist."""
        api = await self._get_api()
        try:
            ns = await Namespace.get(name, api=api)
        except kr8s.NotFoundError:
            return None
        return _state(ns)

    async def create_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str],
        annotations: Mapping[str, str],
    ) -> NamespaceState:
        """Create a namespace carrying the given labels and annotations."""
        api = await self._get_api()
        metadata: dict[str, Any] = {"name": name}
        if labels:
            metadata["labels"] = dict(labels)
        if annotations:
            metadata["annotations"] = dict(annotations)
        ns = await Namespace(
            {"apiVersion": "v1", "kind": "Namespace", "metadata": metadata},
            api=api,
        )
        await ns.create()
        return _state(ns)

    async def patch_namespace(
        self,
        name: str,
        *,
        labels: Mapping[str, str],
        annotations: Mapping[str, str],
    ) -> NamespaceState:
        """Merge labels and annotations into a namespace (strategic merge)."""
        api = await self._get_api()
        ns = await Namespace.get(name, api=api)
        metadata: dict[str, Any] = {}
        if labels:
            metadata["labels"] = dict(labels)
        if annotations:
            metadata["annotations"] = dict(annotations)
        if metadata:
            await ns.patch({"metadata": metadata})
        return _state(ns)


def _state(ns: Any) -> NamespaceState:
    return NamespaceState(
        name=ns.name,
        labels=dict(ns.labels or {}),
        annotations=dict(ns.annotations or {}),
    )
