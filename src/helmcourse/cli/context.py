"""CLI context and dependency container."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import click
import typer
from dotenv import load_dotenv
from loguru import logger

from helmcourse.course import Course, filter_course, load_course
from helmcourse.plot import PlotOrchestrator
from helmcourse.release_client import CourseDefaults, ReleaseClient
from helmcourse.settings import Settings
from helmcourse.shell import ShellCommands

from .console import CLIConsole, console


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    settings: Settings

    def load_course(
        self,
        path: Path,
        *,
        only: Sequence[str] = (),
        namespaces: Sequence[str] = (),
    ) -> Course:
        """Load a course, after a ``.env`` file next to it, and apply selectors.

        Variables from ``.env`` never override the process environment.

        Raises:
            CourseValidationError: If the course is invalid
        """
        dotenv_path = path.parent / ".env"
        if dotenv_path.is_file():
            logger.debug(f"Loading environment from {dotenv_path}")
            load_dotenv(dotenv_path, override=False)
        course = load_course(path)
        return filter_course(course, names=only, namespaces=namespaces)

    def orchestrator(self, course: Course) -> PlotOrchestrator:
        """An orchestrator for the course's directory and kube context.

        Raises:
            HelmNotFoundError: If helm is not on PATH
        """
        return PlotOrchestrator.from_settings(
            self.settings, course.base_dir, context=course.context
        )

    def release_client(self, kube_context: str | None = None) -> ReleaseClient:
        """A release client outside of any course (used by import).

        Raises:
            HelmNotFoundError: If helm is not on PATH
        """
        helm_path = ReleaseClient.locate(self.settings.helm_binary)
        commands = ShellCommands(
            Path.cwd(),
            helm_binary=helm_path,
            git_binary=self.settings.git_binary,
            helm_timeout=self.settings.helm_timeout,
        )
        return ReleaseClient(commands.helm, CourseDefaults(context=kube_context))


def build_cli_context(settings: Settings | None = None) -> CLIContext:
    """Build a fresh CLIContext."""
    return CLIContext(console=console, settings=settings or Settings.from_env())


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
