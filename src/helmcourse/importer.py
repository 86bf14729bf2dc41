"""Generate a course release block from a release already in the cluster."""

from __future__ import annotations

from typing import Any

import yaml
from loguru import logger

from .errors import HelmCourseError
from .release_client import ReleaseClient


def import_release(
    client: ReleaseClient,
    release_name: str,
    namespace: str,
    *,
    repository: str | None = None,
) -> dict[str, Any]:
    """Describe a deployed release as a v2 ``releases`` entry.

    The chart name and version come from helm's release listing and the
    values are the user-supplied values of the deployed revision.

    Args:
        client: Release client to query the cluster with
        release_name: Deployed release name
        namespace: Namespace the release is deployed in
        repository: Repository name to record for the chart

    Returns:
        ``{release_name: {...}}``, ready to paste under ``releases:``

    Raises:
        HelmCourseError: If the release is not deployed
        ReleaseClientError: If helm fails
    """
    deployed = client.find_release(release_name, namespace)
    if deployed is None:
        raise HelmCourseError(
            f"Release '{release_name}' was not found in namespace '{namespace}'"
        )
    logger.bind(scope=release_name).info(
        f"Importing {deployed.chart} (revision {deployed.revision})"
    )

    block: dict[str, Any] = {"chart": deployed.chart_name}
    if repository:
        block["repository"] = repository
    if deployed.chart_version:
        block["version"] = deployed.chart_version
    block["namespace"] = namespace

    values = client.get_values(release_name, namespace)
    if values:
        block["values"] = values
    return {release_name: block}


def render_release_block(block: dict[str, Any]) -> str:
    """YAML text for an imported block, nested under ``releases:``."""
    return yaml.safe_dump(
        {"releases": block}, sort_keys=False, default_flow_style=False
    )
