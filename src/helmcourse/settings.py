"""Run configuration.

This module centralizes the tunables of one helmcourse invocation. Values
come from defaults, then ``HELMCOURSE_*`` environment variables, then CLI
flags (applied by the CLI with ``dataclasses.replace``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields

from . import __version__

ENV_PREFIX = "HELMCOURSE_"


@dataclass(frozen=True)
class Settings:
    """Settings for a single run.

    Attributes:
        version: Program version reported by the CLI and hooks
        helm_binary: Name or path of the helm executable
        git_binary: Name or path of the git executable
        workers: Releases processed concurrently
        fetch_workers: Concurrent network fetches (git clone, repo add)
        helm_timeout: Seconds before a helm process is killed (None: never)
        git_timeout: Seconds before a git process is killed (None: never)
        hook_timeout: Seconds before a hook is killed (None: never)
        log_level: loguru level name for the stderr sink
    """

    version: str = __version__
    helm_binary: str = "helm"
    git_binary: str = "git"
    workers: int = 1
    fetch_workers: int = 4
    helm_timeout: float | None = None
    git_timeout: float | None = 600.0
    hook_timeout: float | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        if self.fetch_workers < 1:
            raise ValueError(
                f"fetch_workers must be at least 1, got {self.fetch_workers}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``HELMCOURSE_*`` variables.

        Example:
            HELMCOURSE_WORKERS=4 HELMCOURSE_HOOK_TIMEOUT=300 helmcourse plot course.yml

        Raises:
            ValueError: If a variable cannot be converted to its field type
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for field in fields(cls):
            if field.name == "version":
                continue
            raw = env.get(f"{ENV_PREFIX}{field.name.upper()}")
            if raw is None or raw == "":
                continue
            overrides[field.name] = _convert(field.name, raw)
        return cls(**overrides)  # type: ignore[arg-type]


_INT_FIELDS = {"workers", "fetch_workers"}
_TIMEOUT_FIELDS = {"helm_timeout", "git_timeout", "hook_timeout"}


def _convert(name: str, raw: str) -> object:
    try:
        if name in _INT_FIELDS:
            return int(raw)
        if name in _TIMEOUT_FIELDS:
            # 0 or "none" disables the timeout
            if raw.lower() in ("0", "none"):
                return None
            return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from exc
    return raw
