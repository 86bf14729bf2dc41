"""Version string comparison for minimum_versions checks."""

from __future__ import annotations

import re

_NUMBERS = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def version_tuple(version: str) -> tuple[int, int, int]:
    """Parse "v3.14.2+gc309b6f" style strings into (3, 14, 2).

    Missing minor/patch parts count as 0.

    Raises:
        ValueError: If the string holds no version number
    """
    match = _NUMBERS.search(version)
    if match is None:
        raise ValueError(f"Not a version: {version!r}")
    return tuple(int(part or 0) for part in match.groups())  # type: ignore[return-value]


def satisfies_minimum(actual: str, minimum: str) -> bool:
    """Whether ``actual`` is at least ``minimum``."""
    return version_tuple(actual) >= version_tuple(minimum)
