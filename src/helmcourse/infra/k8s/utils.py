"""Utility functions for the Kubernetes infrastructure layer.

Provides helper functions for running async code in sync contexts.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a blocking sync context.

    This is useful for calling async KubernetesController methods
    from the synchronous release workers.

    Args:
        coro: The coroutine to execute

    Returns:
        The result of the coroutine

    Example:
        from helmcourse.infra.k8s import Kr8sController, run_sync

        controller = Kr8sController()
        state = run_sync(controller.get_namespace("monitoring"))
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop in this thread, create a new one
        return asyncio.run(coro)

    # Called from inside a running loop: run on a fresh loop in another thread
    # rather than blocking the caller's loop
    if loop.is_running():
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()
    return loop.run_until_complete(coro)
