from __future__ import annotations

from cachetools.func import lru_cache  # type: ignore

from helmcourse.infra.k8s.controller import KubernetesControllerSync


@lru_cache(maxsize=8)
def get_k8s_controller_sync(context: str | None = None) -> KubernetesControllerSync:
    """Get a synchronous Kubernetes controller for a kubeconfig context.

    One controller per context is shared by the whole process; controllers
    hold no event-loop-bound state, so sharing across threads is safe.

    Returns:
        An instance of KubernetesControllerSync wrapping the kr8s controller
    """
    from helmcourse.infra.k8s.kr8s_controller import Kr8sController

    return KubernetesControllerSync(Kr8sController(context=context))
