"""Kubernetes infrastructure abstraction layer.

This module provides a clean abstraction over the cluster API operations
the engine performs (namespace get/create/patch).

Example:
    from helmcourse.infra.k8s import get_k8s_controller_sync

    controller = get_k8s_controller_sync("my-context")
    state = controller.get_namespace("monitoring")
"""

from .controller import KubernetesController, KubernetesControllerSync, NamespaceState
from .helpers import get_k8s_controller_sync
from .utils import run_sync

__all__ = [
    # Controller classes
    "KubernetesController",
    "KubernetesControllerSync",
    # Data classes
    "NamespaceState",
    # Factories and utilities
    "get_k8s_controller_sync",
    "run_sync",
]
