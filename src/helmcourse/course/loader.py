"""Course loading: placeholder expansion, dialect upgrade, validation, construction."""

from __future__ import annotations

import posixpath
import re
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from loguru import logger
from pydantic import ValidationError

from ..errors import CourseValidationError
from .convert import detect_dialect, upgrade_v1_document
from .env import MissingVariablesError, substitute_env_vars
from .model import (
    ChartRef,
    Course,
    GitChart,
    Hook,
    HookSpec,
    LocalChart,
    Namespace,
    Release,
    RepositoryChart,
    ValuesSource,
)
from .schema import (
    CourseDocument,
    HookDefinition,
    HooksDocument,
    NamespaceDocument,
    ReleaseDocument,
    ScalarValue,
)

# RFC 1123 label, as required for namespace names
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
NAMESPACE_MAX_LENGTH = 63

# Helm release names: lowercase RFC 1123 subdomain, at most 53 characters
RELEASE_PATTERN = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)
RELEASE_MAX_LENGTH = 53


def load_course(path: Path, *, environ: Mapping[str, str] | None = None) -> Course:
    """Load and validate a course file.

    Relative paths inside the course (values files, local charts, hook
    working directories) are resolved against the file's directory.

    Raises:
        CourseValidationError: If the file is unreadable or does not conform
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise CourseValidationError([f"Cannot read course file: {e}"], source=str(path)) from e
    return parse_course(
        raw, base_dir=path.resolve().parent, environ=environ, source=str(path)
    )


def parse_course(
    raw: bytes | str,
    *,
    base_dir: Path = Path("."),
    environ: Mapping[str, str] | None = None,
    source: str | None = None,
) -> Course:
    """Parse course text into a validated Course.

    Steps, in order: ``${VAR}`` expansion over the raw text, YAML parsing,
    dialect detection and v1 upgrade, schema validation, cross-field
    validation, construction.

    Args:
        raw: Course file contents
        base_dir: Directory relative paths are resolved against
        environ: Variables for placeholder expansion (default: os.environ)
        source: Name of the input, used in error messages

    Raises:
        CourseValidationError: Listing every violation found
    """
    document = read_document(raw, environ=environ, source=source)
    course_doc = validate_document(document, source=source)
    errors: list[str] = []
    course = _build_course(course_doc, base_dir, errors)
    if errors:
        raise CourseValidationError(errors, source=source)
    logger.debug(
        f"Loaded course with {len(course.releases)} releases "
        f"and {len(course.namespaces)} managed namespaces"
    )
    return course


def read_document(
    raw: bytes | str,
    *,
    environ: Mapping[str, str] | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    """Expand placeholders and parse YAML into a v2-shaped mapping.

    Raises:
        CourseValidationError: On missing variables, YAML errors or a
            document that is not a mapping
    """
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    try:
        text = substitute_env_vars(text, environ)
    except MissingVariablesError as e:
        raise CourseValidationError(e.problems, source=source) from e

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CourseValidationError([f"Error parsing YAML: {e}"], source=source) from e
    if not isinstance(document, dict):
        raise CourseValidationError(
            ["Course document must be a mapping"], source=source
        )

    if detect_dialect(document) == "v1":
        logger.info("Course uses the v1 format; upgrading to v2 in memory")
        document = upgrade_v1_document(document)
    return document


def validate_document(
    document: dict[str, Any], *, source: str | None = None
) -> CourseDocument:
    """Validate a v2-shaped mapping against the schema.

    Releases given as a mapping keyed by name are turned into a list with
    the key as ``name`` so that order and names are both kept.

    Raises:
        CourseValidationError: Listing every schema violation
    """
    document = dict(document)
    releases = document.get("releases")
    release_labels: list[str] = []
    if isinstance(releases, dict):
        normalized = []
        for name, body in releases.items():
            release_labels.append(str(name))
            if isinstance(body, dict):
                body = {"name": name, **body}
            normalized.append(body)
        document["releases"] = normalized
    elif isinstance(releases, list):
        for index, body in enumerate(releases):
            name = body.get("name") if isinstance(body, dict) else None
            release_labels.append(str(name) if name else f"[{index}]")

    try:
        return CourseDocument.model_validate(document)
    except ValidationError as e:
        errors = [_format_error(err, release_labels) for err in e.errors()]
        raise CourseValidationError(errors, source=source) from e


def _format_error(error: Mapping[str, Any], release_labels: list[str]) -> str:
    parts: list[str] = []
    loc = list(error.get("loc", ()))
    # Name releases instead of indexing them
    if len(loc) >= 2 and loc[0] == "releases" and isinstance(loc[1], int):
        index = loc[1]
        label = release_labels[index] if index < len(release_labels) else f"[{index}]"
        parts.append(f"releases.{label}")
        loc = loc[2:]
    for item in loc:
        parts.append(f"[{item}]" if isinstance(item, int) else str(item))
    where = ".".join(parts).replace(".[", "[") or "<root>"
    return f"{where}: {error.get('msg', 'invalid')}"


# =============================================================================
# Construction
# =============================================================================


def _build_course(doc: CourseDocument, base_dir: Path, errors: list[str]) -> Course:
    _check_namespace_name(doc.namespace, "namespace", errors)

    seen: set[str] = set()
    releases: list[Release] = []
    for release_doc in doc.releases:
        where = f"releases.{release_doc.name}"
        if release_doc.name in seen:
            errors.append(f"{where}: duplicate release name")
            continue
        seen.add(release_doc.name)
        release = _build_release(release_doc, doc, base_dir, errors)
        if release is not None:
            releases.append(release)

    if doc.repository is not None and doc.repository not in doc.repositories:
        logger.debug(
            f"Default repository '{doc.repository}' is not declared; "
            "assuming it is configured in helm"
        )

    minimum = doc.minimum_versions
    return Course(
        default_namespace=doc.namespace,
        releases=tuple(releases),
        namespaces=_build_namespaces(doc, errors),
        hooks=_build_hooks(doc.hooks, base_dir, "hooks", errors),
        values=_build_values(doc.files, doc.values, base_dir),
        helm_args=tuple(doc.helm_args),
        context=doc.context,
        minimum_helm_version=minimum.helm if minimum else None,
        minimum_helmcourse_version=minimum.helmcourse if minimum else None,
        base_dir=base_dir,
    )


def _build_release(
    doc: ReleaseDocument, course: CourseDocument, base_dir: Path, errors: list[str]
) -> Release | None:
    where = f"releases.{doc.name}"
    if len(doc.name) > RELEASE_MAX_LENGTH or not RELEASE_PATTERN.match(doc.name):
        errors.append(
            f"{where}: '{doc.name}' is not a valid release name "
            f"(lowercase alphanumerics, '-' and '.', at most {RELEASE_MAX_LENGTH} characters)"
        )

    namespace = doc.namespace or course.namespace
    _check_namespace_name(namespace, f"{where}.namespace", errors)

    chart = _resolve_chart(doc, course, base_dir, errors)
    hooks = _build_hooks(doc.hooks, base_dir, f"{where}.hooks", errors)
    if chart is None:
        return None

    return Release(
        name=doc.name,
        chart=chart,
        namespace=namespace,
        values=_build_values(doc.files, doc.values, base_dir),
        set_values=_pairs(doc.set_values),
        set_string_values=_pairs(doc.values_strings),
        hooks=hooks,
        enabled=doc.enabled,
        helm_args=tuple(doc.helm_args),
    )


def _resolve_chart(
    doc: ReleaseDocument, course: CourseDocument, base_dir: Path, errors: list[str]
) -> ChartRef | None:
    """Pick exactly one retrieval strategy for a release's chart."""
    chart = doc.chart
    where = f"releases.{doc.name}.chart"

    if chart.startswith("oci://"):
        return RepositoryChart(chart=chart, version=doc.version)

    if doc.repository is None and chart.startswith((".", "/", "~")):
        return LocalChart(path=(base_dir / Path(chart).expanduser()).resolve())

    repository_name = doc.repository or course.repository
    if repository_name is not None:
        repository = course.repositories.get(repository_name)
        if repository is None:
            # Not declared here; must already be known to helm
            return RepositoryChart(
                chart=chart, repository=repository_name, version=doc.version
            )
        if repository.git is not None:
            path = posixpath.normpath(posixpath.join(repository.path or "", chart))
            if path.startswith(".."):
                errors.append(f"{where}: chart path '{path}' escapes the repository")
                return None
            return GitChart(url=repository.git, path=path, ref=doc.version)
        return RepositoryChart(
            chart=chart,
            repository=repository_name,
            url=repository.url,
            version=doc.version,
        )

    if "/" in chart:
        repo, name = chart.split("/", 1)
        return RepositoryChart(chart=name, repository=repo, version=doc.version)

    errors.append(
        f"{where}: cannot tell where chart '{chart}' comes from; "
        "set 'repository', a default repository, or use a path or repo/chart"
    )
    return None


def _build_hooks(
    doc: HooksDocument, base_dir: Path, where: str, errors: list[str]
) -> HookSpec:
    def build(entries: list[str | HookDefinition], phase: str) -> tuple[Hook, ...]:
        hooks = []
        for index, entry in enumerate(entries):
            if isinstance(entry, str):
                command, description, cwd = entry, entry, None
            else:
                command, description, cwd = entry.command, entry.description, entry.cwd
            if not command.strip():
                errors.append(f"{where}.{phase}[{index}]: hook command is empty")
                continue
            hooks.append(
                Hook(
                    command=command,
                    description=description or command,
                    cwd=(base_dir / cwd).resolve() if cwd else base_dir,
                )
            )
        return tuple(hooks)

    return HookSpec(
        pre=build(doc.pre_install, "pre_install"),
        post=build(doc.post_install, "post_install"),
    )


def _build_values(
    files: list[str], values: dict[str, Any], base_dir: Path
) -> tuple[ValuesSource, ...]:
    sources = [
        ValuesSource(path=(base_dir / Path(f).expanduser()).resolve()) for f in files
    ]
    if values:
        sources.append(ValuesSource(inline=MappingProxyType(dict(values))))
    return tuple(sources)


def _build_namespaces(doc: CourseDocument, errors: list[str]) -> tuple[Namespace, ...]:
    """Merge course-level and release-level namespace management blocks.

    ``namespace_management.default`` applies to every namespace targeted by
    a release; explicit blocks override it key by key.
    """
    management = doc.namespace_management
    default = management.default if management else None

    blocks: dict[str, list[NamespaceDocument]] = {}
    if management:
        for name, block in management.namespaces.items():
            _check_namespace_name(name, f"namespace_management.namespaces.{name}", errors)
            blocks.setdefault(name, []).append(block)
    for release in doc.releases:
        if release.namespace_management is not None and release.enabled:
            name = release.namespace or doc.namespace
            blocks.setdefault(name, []).append(release.namespace_management)
    if default is not None:
        for release in doc.releases:
            if release.enabled:
                blocks.setdefault(release.namespace or doc.namespace, [])

    return tuple(
        _merge_namespace(name, default, declared, errors)
        for name, declared in blocks.items()
    )


def _merge_namespace(
    name: str,
    default: NamespaceDocument | None,
    declared: list[NamespaceDocument],
    errors: list[str],
) -> Namespace:
    # Declared blocks override the default block but must agree with each other
    labels: dict[str, str] = {}
    annotations: dict[str, str] = {}
    for layer in declared:
        for target, source, kind in (
            (labels, layer.metadata.labels, "label"),
            (annotations, layer.metadata.annotations, "annotation"),
        ):
            for key, value in source.items():
                if key in target and target[key] != value:
                    errors.append(
                        f"namespace_management.{name}: conflicting values for {kind} '{key}'"
                    )
                target[key] = value

    settings: dict[str, bool] = {}
    for layer in ([default] if default else []) + declared:
        for field_name in layer.settings.model_fields_set:
            settings[field_name] = getattr(layer.settings, field_name)

    return Namespace(
        name=name,
        labels=MappingProxyType({**(default.metadata.labels if default else {}), **labels}),
        annotations=MappingProxyType(
            {**(default.metadata.annotations if default else {}), **annotations}
        ),
        create=settings.get("create", True),
        overwrite=settings.get("overwrite", True),
    )


def _check_namespace_name(name: str, where: str, errors: list[str]) -> None:
    if len(name) > NAMESPACE_MAX_LENGTH or not NAMESPACE_PATTERN.match(name):
        errors.append(
            f"{where}: '{name}' is not a valid namespace name "
            f"(lowercase alphanumerics and '-', at most {NAMESPACE_MAX_LENGTH} characters)"
        )


def _pairs(mapping: dict[str, ScalarValue]) -> tuple[tuple[str, str], ...]:
    return tuple((key, _scalar(value)) for key, value in mapping.items())


def _scalar(value: ScalarValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
