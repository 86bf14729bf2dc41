"""v1 course dialect detection and upgrade to the v2 shape.

The v1 dialect differs from v2 in three places:
- releases live under ``charts:`` and ``chart:`` defaults to the release key
- a chart's ``repository`` may be an inline mapping (``{name, url}`` or
  ``{git, path}``) instead of a name
- top-level ``namespace_management`` may name namespaces directly next to
  ``default`` instead of under ``namespaces``

The upgrade preserves meaning, not text: comments are lost and inline
repositories are hoisted under ``repositories`` with their ``name`` (git
repositories without one are named ``<release>-git``). Chart-level
``namespace_management`` blocks stay on their release, where the loader
merges them like any v2 release block.
"""

from __future__ import annotations

import copy
from typing import Any, Literal

import yaml

Dialect = Literal["v1", "v2"]


def detect_dialect(document: dict[str, Any]) -> Dialect:
    """Tell which dialect a parsed course document uses.

    ``schema: v2`` wins; otherwise ``schema: v1`` or a ``charts:`` key
    means v1. Anything else is treated as v2 and left to schema validation.
    """
    schema = document.get("schema")
    if schema == "v2":
        return "v2"
    if schema == "v1" or "charts" in document:
        return "v1"
    return "v2"


def upgrade_v1_document(document: dict[str, Any]) -> dict[str, Any]:
    """Return a v2-shaped copy of a v1 document.

    Malformed parts are copied through unchanged so that schema
    validation reports them against the v2 shape.
    """
    source = copy.deepcopy(document)
    upgraded: dict[str, Any] = {"schema": "v2"}

    charts = source.pop("charts", None)
    source.pop("schema", None)
    repositories: dict[str, Any] = dict(source.pop("repositories", None) or {})
    management = _upgrade_namespace_management(source.pop("namespace_management", None))

    # Remaining top-level keys are shared between both dialects
    upgraded.update(source)

    releases: Any = charts
    if isinstance(charts, dict):
        releases = {}
        for release_name, chart in charts.items():
            if not isinstance(chart, dict):
                releases[release_name] = chart
                continue
            chart = dict(chart)
            chart.setdefault("chart", release_name)

            repository = chart.get("repository")
            if isinstance(repository, dict):
                chart["repository"] = _hoist_repository(
                    str(release_name), repository, repositories
                )

            releases[release_name] = chart

    if repositories:
        upgraded["repositories"] = repositories
    if management is not None:
        upgraded["namespace_management"] = management
    upgraded["releases"] = releases if releases is not None else {}
    return upgraded


def convert_v1_to_v2(raw: str) -> str:
    """Convert v1 course text to v2 course text.

    Placeholders such as ``${TOKEN}`` are not expanded, so secrets are
    never written into the converted file.

    Raises:
        ValueError: If the text is not a YAML mapping or is already v2
    """
    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e
    if not isinstance(document, dict):
        raise ValueError("Course document must be a mapping")
    if detect_dialect(document) == "v2":
        raise ValueError("Course is already in the v2 format")
    upgraded = upgrade_v1_document(document)
    return yaml.safe_dump(upgraded, sort_keys=False, default_flow_style=False)


def _hoist_repository(
    release_name: str, repository: dict[str, Any], repositories: dict[str, Any]
) -> Any:
    definition = {k: v for k, v in repository.items() if k != "name"}
    name = repository.get("name")
    if name is None:
        if "git" in repository:
            name = f"{release_name}-git"
        else:
            # Let schema validation flag the unnamed url repository
            return repository
    if not definition:
        # {name: stable} is just a reference
        return name

    existing = repositories.get(name)
    if existing is not None and existing != definition:
        suffix = 2
        while f"{name}-{suffix}" in repositories and repositories[f"{name}-{suffix}"] != definition:
            suffix += 1
        name = f"{name}-{suffix}"
    repositories[name] = definition
    return name


def _upgrade_namespace_management(management: Any) -> Any:
    if not isinstance(management, dict):
        return management
    if set(management) <= {"default", "namespaces"}:
        return dict(management)
    upgraded: dict[str, Any] = {}
    namespaces = dict(management.get("namespaces") or {})
    for key, value in management.items():
        if key == "default":
            upgraded["default"] = value
        elif key != "namespaces":
            namespaces[key] = value
    upgraded["namespaces"] = namespaces
    return upgraded
