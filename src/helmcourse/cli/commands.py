"""Course commands: plot, update, template, diff, get-manifests, lint, convert, import.

Every command takes the path of a course file (except import) and goes
through the CLIContext for settings, course loading and engine wiring.
"""

import signal
from pathlib import Path
from typing import Annotated

import typer
from rich.syntax import Syntax
from rich.table import Table

from helmcourse.course import convert_v1_to_v2
from helmcourse.diff import DiffKind
from helmcourse.importer import import_release, render_release_block
from helmcourse.plot import (
    ManifestResult,
    PlotOptions,
    PlotSummary,
    ReleaseStatus,
)

from .console import EXIT_FAILED, EXIT_INVALID, console, with_error_handling
from .context import get_cli_context

# ---------------------------------------------------------------------------
# Shared Options
# ---------------------------------------------------------------------------

CourseArg = Annotated[
    Path,
    typer.Argument(
        help="Path to the course file",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
]
OnlyOpt = Annotated[
    list[str] | None,
    typer.Option(
        "--only",
        "-o",
        help="Only process this release (repeatable)",
    ),
]
NamespaceOpt = Annotated[
    list[str] | None,
    typer.Option(
        "--namespace",
        "-n",
        help="Only process releases in this namespace (repeatable)",
    ),
]
WorkersOpt = Annotated[
    int | None,
    typer.Option(
        "--workers",
        "-w",
        min=1,
        help="Releases processed concurrently (default: HELMCOURSE_WORKERS or 1)",
    ),
]
FailFastOpt = Annotated[
    bool,
    typer.Option(
        "--fail-fast",
        help="Do not start new releases after the first failure",
    ),
]
RetriesOpt = Annotated[
    int,
    typer.Option(
        "--retries",
        min=0,
        help="Retry an install this many times after a cluster connection error",
    ),
]


# ---------------------------------------------------------------------------
# Plot / Update
# ---------------------------------------------------------------------------


@with_error_handling
def plot(
    course_file: CourseArg,
    only: OnlyOpt = None,
    namespace: NamespaceOpt = None,
    workers: WorkersOpt = None,
    fail_fast: FailFastOpt = False,
    retries: RetriesOpt = 0,
) -> None:
    """Install or upgrade every release of a course.

    Examples:
        helmcourse plot course.yml
        helmcourse plot course.yml --only grafana --only loki
        helmcourse plot course.yml -n monitoring --workers 4 --fail-fast
    """
    _run_plot(course_file, only, namespace, workers, fail_fast, retries, update=False)


@with_error_handling
def update(
    course_file: CourseArg,
    only: OnlyOpt = None,
    namespace: NamespaceOpt = None,
    workers: WorkersOpt = None,
    fail_fast: FailFastOpt = False,
    retries: RetriesOpt = 0,
) -> None:
    """Install or upgrade only the releases whose manifests changed.

    Examples:
        helmcourse update course.yml
    """
    _run_plot(course_file, only, namespace, workers, fail_fast, retries, update=True)


def _run_plot(
    course_file: Path,
    only: list[str] | None,
    namespace: list[str] | None,
    workers: int | None,
    fail_fast: bool,
    retries: int,
    *,
    update: bool,
) -> None:
    cli = get_cli_context()
    course = cli.load_course(course_file, only=only or (), namespaces=namespace or ())
    orchestrator = cli.orchestrator(course)

    console.print_header(f"{'Updating' if update else 'Plotting'} {course_file.name}")
    options = PlotOptions(
        workers=workers, fail_fast=fail_fast, update=update, retries=retries
    )

    # Ctrl-C stops scheduling; releases already running finish
    previous = signal.signal(signal.SIGINT, lambda *_: orchestrator.cancel())
    try:
        summary = orchestrator.plot(course, options)
    finally:
        signal.signal(signal.SIGINT, previous)

    _print_summary(summary)
    if not summary.ok:
        raise typer.Exit(EXIT_FAILED)


_STATUS_STYLES = {
    ReleaseStatus.APPLIED: "green",
    ReleaseStatus.SKIPPED: "yellow",
    ReleaseStatus.FAILED: "red",
}


def _print_summary(summary: PlotSummary) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Release")
    table.add_column("Namespace")
    table.add_column("Status")
    table.add_column("Detail")

    for outcome in summary.outcomes:
        style = _STATUS_STYLES[outcome.status]
        status = f"[{style}]{outcome.status.value}[/{style}]"
        if outcome.post_hook_error is not None:
            status += " [red](post hook failed)[/red]"
        table.add_row(outcome.release, outcome.namespace, status, outcome.reason)

    console.print(table)

    for outcome in summary.outcomes:
        for error in (outcome.error, outcome.post_hook_error):
            if error is not None and error.details:
                console.details(error.details, title=f"{outcome.release}: {error.message}")
    for error in summary.course_errors:
        console.error(error.message)
        if error.details:
            console.details(error.details, title="course hook output")

    if summary.cancelled:
        console.warn("Run was cancelled; remaining releases were skipped")
    if summary.ok:
        console.ok(
            f"{len(summary.applied)} applied, {len(summary.skipped)} skipped"
        )
    else:
        console.error(
            f"{len(summary.failed)} failed, {len(summary.applied)} applied, "
            f"{len(summary.skipped)} skipped"
        )


# ---------------------------------------------------------------------------
# Read-only Commands
# ---------------------------------------------------------------------------


@with_error_handling
def template(
    course_file: CourseArg,
    only: OnlyOpt = None,
    namespace: NamespaceOpt = None,
    workers: WorkersOpt = None,
) -> None:
    """Print the rendered manifests of every enabled release.

    Examples:
        helmcourse template course.yml --only grafana > grafana.yaml
    """
    cli = get_cli_context()
    course = cli.load_course(course_file, only=only or (), namespaces=namespace or ())
    results = cli.orchestrator(course).template(course, workers=workers)
    _print_manifests(results)


@with_error_handling
def get_manifests(
    course_file: CourseArg,
    only: OnlyOpt = None,
    namespace: NamespaceOpt = None,
    workers: WorkersOpt = None,
) -> None:
    """Print the deployed manifests of every enabled release.

    Examples:
        helmcourse get-manifests course.yml -n monitoring
    """
    cli = get_cli_context()
    course = cli.load_course(course_file, only=only or (), namespaces=namespace or ())
    results = cli.orchestrator(course).get_manifests(course, workers=workers)
    _print_manifests(results)


def _print_manifests(results: list[ManifestResult]) -> None:
    failed = False
    for result in results:
        if result.error is not None:
            failed = True
            console.error(f"{result.release}: {result.error.message}")
            if result.error.details:
                console.details(result.error.details)
            continue
        console.out(f"# Release: {result.release} ({result.namespace})")
        console.out(result.manifest.rstrip("\n"))
    if failed:
        raise typer.Exit(EXIT_FAILED)


@with_error_handling
def diff(
    course_file: CourseArg,
    only: OnlyOpt = None,
    namespace: NamespaceOpt = None,
    workers: WorkersOpt = None,
) -> None:
    """Show what plot would change for every enabled release.

    Examples:
        helmcourse diff course.yml
    """
    cli = get_cli_context()
    course = cli.load_course(course_file, only=only or (), namespaces=namespace or ())
    results = cli.orchestrator(course).diff(course, workers=workers)

    errors = 0
    for result in results:
        label = f"{result.release} ({result.namespace})"
        if result.kind is DiffKind.NO_CHANGE:
            console.ok(f"{label}: no changes")
        elif result.kind is DiffKind.CHANGED:
            console.print_subheader(f"{label}: changed")
            console.print(Syntax(result.delta, "diff", theme="ansi_dark"))
        else:
            errors += 1
            console.error(f"{label}: diff failed")
            if result.error:
                console.details(result.error)
    if errors:
        raise typer.Exit(EXIT_FAILED)


# ---------------------------------------------------------------------------
# Course File Commands
# ---------------------------------------------------------------------------


@with_error_handling
def lint(course_file: CourseArg) -> None:
    """Validate a course file without contacting helm or the cluster.

    Examples:
        helmcourse lint course.yml
    """
    cli = get_cli_context()
    course = cli.load_course(course_file)
    enabled = sum(1 for release in course.releases if release.enabled)
    console.ok(
        f"{course_file.name} is valid: {len(course.releases)} releases "
        f"({enabled} enabled)"
    )


@with_error_handling
def convert(
    course_file: CourseArg,
    in_place: Annotated[
        bool,
        typer.Option(
            "--in-place",
            "-i",
            help="Overwrite the course file instead of printing the result",
        ),
    ] = False,
) -> None:
    """Convert a v1 course file to the v2 format.

    Placeholders are kept as they are; comments are not preserved.

    Examples:
        helmcourse convert old-course.yml > course.yml
        helmcourse convert course.yml --in-place
    """
    try:
        converted = convert_v1_to_v2(course_file.read_text())
    except ValueError as e:
        console.handle_error(str(e), exit_code=EXIT_INVALID)
        return

    if in_place:
        course_file.write_text(converted)
        console.ok(f"Converted {course_file} to v2")
    else:
        console.out(converted.rstrip("\n"))


@with_error_handling
def import_(
    release: Annotated[
        str,
        typer.Option("--release", "-r", help="Name of the deployed release"),
    ],
    namespace: Annotated[
        str,
        typer.Option("--namespace", "-n", help="Namespace of the deployed release"),
    ],
    repository: Annotated[
        str | None,
        typer.Option(
            "--repository",
            help="Repository name to record for the chart",
        ),
    ] = None,
    kube_context: Annotated[
        str | None,
        typer.Option("--context", help="Kubernetes context to read from"),
    ] = None,
) -> None:
    """Print a course release block describing a deployed release.

    Examples:
        helmcourse import --release grafana --namespace monitoring --repository stable
    """
    cli = get_cli_context()
    client = cli.release_client(kube_context)
    block = import_release(client, release, namespace, repository=repository)
    console.out(render_release_block(block).rstrip("\n"))


__all__ = [
    "plot",
    "update",
    "template",
    "diff",
    "get_manifests",
    "lint",
    "convert",
    "import_",
]
