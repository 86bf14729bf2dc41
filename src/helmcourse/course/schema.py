"""Structural schema of a v2 course document.

These pydantic models only describe shape and types. Cross-field rules
(repository references, name syntax, chart retrieval strategy) live in the
loader, which reports them together with the violations found here.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ScalarValue = str | bool | int | float


class _Strict(BaseModel):
    """Base model rejecting unknown keys so typos surface as violations."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class HookDefinition(_Strict):
    command: str
    description: str | None = None
    cwd: str | None = None


HookEntry = str | HookDefinition


class HooksDocument(_Strict):
    pre_install: list[HookEntry] = Field(default_factory=list)
    post_install: list[HookEntry] = Field(default_factory=list)


class RepositoryDocument(_Strict):
    """A chart repository (``url``) or a git repository (``git`` + ``path``)."""

    url: str | None = None
    git: str | None = None
    path: str | None = None

    @model_validator(mode="after")
    def _one_kind(self) -> RepositoryDocument:
        if (self.url is None) == (self.git is None):
            raise ValueError("repository needs exactly one of 'url' or 'git'")
        if self.path is not None and self.git is None:
            raise ValueError("'path' is only valid for git repositories")
        return self


class NamespaceMetadata(_Strict):
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class NamespaceSettings(_Strict):
    create: bool = True
    overwrite: bool = True


class NamespaceDocument(_Strict):
    metadata: NamespaceMetadata = Field(default_factory=NamespaceMetadata)
    settings: NamespaceSettings = Field(default_factory=NamespaceSettings)


class NamespaceManagementDocument(_Strict):
    default: NamespaceDocument | None = None
    namespaces: dict[str, NamespaceDocument] = Field(default_factory=dict)


class MinimumVersions(_Strict):
    helm: str | None = None
    helmcourse: str | None = None


class ReleaseDocument(_Strict):
    name: str
    chart: str
    repository: str | None = None
    version: str | None = None
    namespace: str | None = None
    enabled: bool = True
    files: list[str] = Field(default_factory=list)
    values: dict[str, Any] = Field(default_factory=dict)
    set_values: dict[str, ScalarValue] = Field(default_factory=dict, alias="set-values")
    values_strings: dict[str, ScalarValue] = Field(
        default_factory=dict, alias="values-strings"
    )
    helm_args: list[str] = Field(default_factory=list)
    hooks: HooksDocument = Field(default_factory=HooksDocument)
    namespace_management: NamespaceDocument | None = None


class CourseDocument(_Strict):
    schema_version: Literal["v2"] = Field(alias="schema")
    namespace: str = "default"
    context: str | None = None
    repository: str | None = None
    repositories: dict[str, RepositoryDocument] = Field(default_factory=dict)
    minimum_versions: MinimumVersions | None = None
    helm_args: list[str] = Field(default_factory=list)
    namespace_management: NamespaceManagementDocument | None = None
    files: list[str] = Field(default_factory=list)
    values: dict[str, Any] = Field(default_factory=dict)
    hooks: HooksDocument = Field(default_factory=HooksDocument)
    releases: list[ReleaseDocument]
