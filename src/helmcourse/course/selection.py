"""Restricting a course to selected releases."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable

from loguru import logger

from .model import Course


def filter_course(
    course: Course,
    names: Iterable[str] = (),
    namespaces: Iterable[str] = (),
) -> Course:
    """Return a course holding only the selected releases.

    A release is kept when its name is in ``names`` (if any are given) and
    its namespace is in ``namespaces`` (if any are given). Declared order,
    course-level namespaces, hooks and global values are kept as they are.
    Selecting nothing is not an error.
    """
    wanted_names = set(names)
    wanted_namespaces = set(namespaces)
    if not wanted_names and not wanted_namespaces:
        return course

    unknown = wanted_names - set(course.release_names)
    if unknown:
        logger.warning(f"No release named {', '.join(sorted(unknown))} in course")

    releases = tuple(
        release
        for release in course.releases
        if (not wanted_names or release.name in wanted_names)
        and (not wanted_namespaces or release.namespace in wanted_namespaces)
    )
    if not releases:
        logger.warning("Selection matched no releases")
    return dataclasses.replace(course, releases=releases)
