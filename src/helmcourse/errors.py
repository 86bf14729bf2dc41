"""Exception hierarchy for the reconciliation engine.

Every error carries a short ``message`` and optional multi-line ``details``
so the CLI can print a headline and a diagnostic panel without re-running
in verbose mode.

Scope of each error:
- CourseValidationError: the whole run, raised before any cluster mutation
- FetchError: one release
- NamespaceError: every release targeting that namespace
- HookError: one release (or every release, for course-level pre hooks)
- ReleaseClientError: one release
"""

from __future__ import annotations

from enum import Enum


class HelmCourseError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n{self.details}"
        return self.message


class CourseValidationError(HelmCourseError):
    """Raised when a course document is malformed or does not conform.

    Attributes:
        errors: Every violation found, one human-readable line each
    """

    def __init__(self, errors: list[str], source: str | None = None):
        self.errors = list(errors)
        self.source = source
        where = f" in {source}" if source else ""
        count = len(self.errors)
        noun = "violation" if count == 1 else "violations"
        super().__init__(
            f"Invalid course{where}: {count} {noun}",
            details="\n".join(f"  • {e}" for e in self.errors),
        )


class FetchError(HelmCourseError):
    """Raised when a chart source cannot be resolved to a usable chart."""


class NamespaceError(HelmCourseError):
    """Raised when a namespace cannot be read, created or reconciled."""

    def __init__(self, namespace: str, message: str, details: str | None = None):
        self.namespace = namespace
        super().__init__(message, details)


class HookError(HelmCourseError):
    """Raised when a hook exits non-zero (or times out).

    Attributes:
        phase: "pre" or "post"
        index: Zero-based position of the failing hook in its phase
        description: The hook's description
        exit_code: Process exit code, -1 on timeout
        output: Captured (possibly partial) output
        scope: Release name, or "course" for course-level hooks
    """

    def __init__(
        self,
        *,
        phase: str,
        index: int,
        description: str,
        exit_code: int,
        output: str,
        scope: str,
        timed_out: bool = False,
    ):
        self.phase = phase
        self.index = index
        self.description = description
        self.exit_code = exit_code
        self.output = output
        self.scope = scope
        self.timed_out = timed_out
        reason = "timed out" if timed_out else f"exited with code {exit_code}"
        super().__init__(
            f"{phase}-install hook #{index} ({description}) for {scope} {reason}",
            details=output or None,
        )


class ErrorKind(Enum):
    """Classification of external release tool failures."""

    USER_INPUT = "user-input"  # Bad chart, values or arguments; retrying won't help
    CLUSTER = "cluster"  # Could not talk to the cluster; may be transient
    UNKNOWN = "unknown"


class ReleaseClientError(HelmCourseError):
    """Raised when the release-management executable fails.

    Attributes:
        kind: Failure classification
        returncode: Exit code of the external tool
        stderr: Error output of the external tool
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.kind = kind
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, details=stderr.strip() or None)


class HelmNotFoundError(ReleaseClientError):
    """Raised at startup when the helm executable is not on the search path."""

    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(
            f"Required executable '{binary}' was not found on PATH",
            kind=ErrorKind.USER_INPUT,
        )
