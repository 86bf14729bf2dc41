"""Course model: parsing, validation and selection of course files.

Usage:
    from helmcourse.course import filter_course, load_course

    course = load_course(Path("course.yml"))
    course = filter_course(course, names=["grafana"])
"""

from .convert import convert_v1_to_v2, detect_dialect, upgrade_v1_document
from .loader import load_course, parse_course, read_document, validate_document
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
from .selection import filter_course

__all__ = [
    "load_course",
    "parse_course",
    "read_document",
    "validate_document",
    "filter_course",
    "convert_v1_to_v2",
    "detect_dialect",
    "upgrade_v1_document",
    # Model types
    "Course",
    "Release",
    "Namespace",
    "Hook",
    "HookSpec",
    "ValuesSource",
    "ChartRef",
    "LocalChart",
    "RepositoryChart",
    "GitChart",
]
