"""Desired-vs-deployed manifest comparison.

Both sides are normalized before comparing: documents are parsed, empty
documents dropped, mapping keys sorted and documents put in a stable
order. Any remaining textual difference, metadata included, counts as a
change; reporting a change that is semantically a no-op is acceptable,
missing a real change is not.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import yaml
from loguru import logger

from .errors import HelmCourseError

if TYPE_CHECKING:
    from .course.model import Release
    from .release_client import ReleaseClient
    from .sources import ResolvedSource


class DiffKind(Enum):
    NO_CHANGE = "no-change"
    CHANGED = "changed"
    ERROR = "error"


@dataclass(frozen=True)
class DiffResult:
    """Comparison outcome for one release.

    Attributes:
        release: Release name
        namespace: Release namespace
        kind: no-change, changed or error
        delta: Unified diff from deployed to desired (empty unless changed)
        error: What went wrong, for kind == ERROR
    """

    release: str
    namespace: str
    kind: DiffKind
    delta: str = ""
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.kind is DiffKind.CHANGED


class DiffEngine:
    """Compares a release's rendered manifest with the deployed one."""

    def __init__(self, client: ReleaseClient) -> None:
        self.client = client

    def diff(self, release: Release, source: ResolvedSource) -> DiffResult:
        """Render the release and compare it with what is deployed.

        Never raises for engine errors; they are reported as kind ERROR.
        """
        try:
            desired = self.client.template(release, source, hooks=False)
            current = self.client.get_manifest(release)
        except HelmCourseError as e:
            logger.bind(scope=release.name).warning(f"Diff failed: {e.message}")
            return DiffResult(
                release=release.name,
                namespace=release.namespace,
                kind=DiffKind.ERROR,
                error=str(e),
            )
        return compare_manifests(release.name, release.namespace, current, desired)


def compare_manifests(
    release: str, namespace: str, current: str, desired: str
) -> DiffResult:
    """Compare deployed and desired manifest text after normalization."""
    before = normalize_manifest(current)
    after = normalize_manifest(desired)
    if before == after:
        return DiffResult(release=release, namespace=namespace, kind=DiffKind.NO_CHANGE)

    delta = "\n".join(
        difflib.unified_diff(
            before.splitlines(),
            after.splitlines(),
            fromfile=f"deployed/{namespace}/{release}",
            tofile=f"desired/{namespace}/{release}",
            lineterm="",
        )
    )
    return DiffResult(
        release=release, namespace=namespace, kind=DiffKind.CHANGED, delta=delta
    )


def normalize_manifest(text: str) -> str:
    """Canonical text for a multi-document manifest.

    Falls back to whitespace canonicalization when the text is not YAML.
    """
    try:
        documents = [doc for doc in yaml.safe_load_all(text) if doc is not None]
    except yaml.YAMLError:
        return _canonical_whitespace(text)

    rendered = [
        (_document_key(doc), yaml.safe_dump(doc, sort_keys=True, default_flow_style=False))
        for doc in documents
    ]
    rendered.sort()
    return "---\n".join(body for _, body in rendered)


def _document_key(doc: Any) -> tuple[str, str, str, str]:
    if not isinstance(doc, dict):
        return ("", "", "", "")
    metadata = doc.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    return (
        str(doc.get("apiVersion", "")),
        str(doc.get("kind", "")),
        str(metadata.get("namespace", "")),
        str(metadata.get("name", "")),
    )


def _canonical_whitespace(text: str) -> str:
    lines = (line.rstrip() for line in text.replace("\r\n", "\n").split("\n"))
    return "\n".join(line for line in lines if line)
