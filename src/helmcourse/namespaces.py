"""Namespace lifecycle: make sure target namespaces exist with their metadata.

Work on one namespace is serialized by a per-namespace lock, and the
outcome of the first ``ensure`` is remembered for the rest of the run:
two releases racing on the same namespace cause exactly one create call,
and a namespace that failed once fails every release targeting it
without another round trip to the cluster.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from .course.model import Namespace
from .errors import NamespaceError
from .infra.k8s.controller import KubernetesControllerSync


class NamespaceAction(Enum):
    """What ensure() had to do to a namespace."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class NamespaceOutcome:
    name: str
    action: NamespaceAction


class NamespaceManager:
    """Ensures namespaces exist and carry their declared labels and annotations.

    Metadata is merged, never replaced: keys present on the live namespace
    but absent from the course are left alone.
    """

    def __init__(self, controller: KubernetesControllerSync) -> None:
        """Initialize the namespace manager.

        Args:
            controller: Cluster API access for namespace get/create/patch
        """
        self.controller = controller
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._outcomes: dict[str, NamespaceOutcome | NamespaceError] = {}

    def _lock_for(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())

    def ensure(self, namespace: Namespace) -> NamespaceOutcome:
        """Create or reconcile a namespace, once per run.

        Raises:
            NamespaceError: When the namespace is missing and may not be
                created, or the cluster API call fails. The same error is
                raised again for later calls on the same namespace.
        """
        with self._lock_for(namespace.name):
            cached = self._outcomes.get(namespace.name)
            if isinstance(cached, NamespaceError):
                raise cached
            if cached is not None:
                return cached

            try:
                outcome = self._reconcile(namespace)
            except NamespaceError as e:
                self._outcomes[namespace.name] = e
                raise
            self._outcomes[namespace.name] = outcome
            return outcome

    def _reconcile(self, namespace: Namespace) -> NamespaceOutcome:
        log = logger.bind(scope=namespace.name)
        try:
            live = self.controller.get_namespace(namespace.name)
        except Exception as e:
            raise NamespaceError(
                namespace.name,
                f"Cannot read namespace '{namespace.name}'",
                details=str(e),
            ) from e

        if live is None:
            if not namespace.create:
                raise NamespaceError(
                    namespace.name,
                    f"Namespace '{namespace.name}' does not exist and creation is disabled",
                )
            log.info(f"Creating namespace {namespace.name}")
            try:
                self.controller.create_namespace(
                    namespace.name,
                    labels=namespace.labels,
                    annotations=namespace.annotations,
                )
            except Exception as e:
                raise NamespaceError(
                    namespace.name,
                    f"Cannot create namespace '{namespace.name}'",
                    details=str(e),
                ) from e
            return NamespaceOutcome(namespace.name, NamespaceAction.CREATED)

        labels = missing_metadata(namespace.labels, live.labels, namespace.overwrite)
        annotations = missing_metadata(
            namespace.annotations, live.annotations, namespace.overwrite
        )
        if not labels and not annotations:
            log.debug(f"Namespace {namespace.name} is up to date")
            return NamespaceOutcome(namespace.name, NamespaceAction.UNCHANGED)

        log.info(
            f"Updating namespace {namespace.name}: "
            f"{len(labels)} labels, {len(annotations)} annotations"
        )
        try:
            self.controller.patch_namespace(
                namespace.name, labels=labels, annotations=annotations
            )
        except Exception as e:
            raise NamespaceError(
                namespace.name,
                f"Cannot update namespace '{namespace.name}'",
                details=str(e),
            ) from e
        return NamespaceOutcome(namespace.name, NamespaceAction.UPDATED)


def missing_metadata(
    declared: Mapping[str, str], live: Mapping[str, str], overwrite: bool
) -> dict[str, str]:
    """Declared entries the live metadata lacks (or, with overwrite, disagrees on)."""
    return {
        key: value
        for key, value in declared.items()
        if key not in live or (overwrite and live[key] != value)
    }
