"""Main CLI application module.

This module provides the ``helmcourse`` entry point. Every command works
on one course file:

- plot / update: reconcile the cluster toward the course
- template / diff / get-manifests: read-only views of a course
- lint / convert: course file validation and v1 -> v2 conversion
- import: generate a release block from a deployed release
"""

import dataclasses
from typing import Annotated

import typer

from helmcourse import __version__
from helmcourse.log import configure_logging
from helmcourse.settings import Settings

from .commands import convert, diff, get_manifests, import_, lint, plot, template, update
from .console import EXIT_INVALID, console
from .context import build_cli_context

# Create the main CLI application
app = typer.Typer(
    help="⛵ helmcourse - Declarative multi-release Helm orchestration",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command()(plot)
app.command()(update)
app.command()(template)
app.command()(diff)
app.command(name="get-manifests")(get_manifests)
app.command()(lint)
app.command()(convert)
app.command(name="import")(import_)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"helmcourse {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    ctx: typer.Context,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-l",
            help="Log level for stderr output (default: HELMCOURSE_LOG_LEVEL or INFO)",
        ),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Settings come from HELMCOURSE_* environment variables and the flags above."""
    try:
        settings = Settings.from_env()
    except ValueError as e:
        console.handle_error(str(e), exit_code=EXIT_INVALID)
        return
    if log_level:
        settings = dataclasses.replace(settings, log_level=log_level)

    try:
        configure_logging(settings.log_level)
    except ValueError as e:
        console.handle_error(f"Invalid log level: {e}", exit_code=EXIT_INVALID)
    ctx.obj = build_cli_context(settings)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
