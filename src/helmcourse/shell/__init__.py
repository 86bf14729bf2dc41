"""Shell command abstractions for the external tools the engine drives.

This package provides a clean interface over the executables helmcourse
shells out to. It is organized into specialized modules for each tool:

- helm: Helm release rendering, installation and inspection
- git: Git clone/checkout for version-controlled chart sources
- runner: The process executor every other module goes through

Usage:
    from helmcourse.shell import ShellCommands

    commands = ShellCommands(Path("."))
    result = commands.helm.template("grafana", "stable/grafana", "monitoring")
"""

from collections.abc import Mapping
from pathlib import Path

from .git import GitCommands
from .helm import HelmCommands
from .runner import CommandRunner
from .types import CommandResult, HelmRelease, split_chart_version


class ShellCommands:
    """Unified interface for all shell command operations.

    Attributes:
        helm: Helm-related commands
        git: Git repository commands
        runner: The shared command runner (also used by the hook runner)

    Example:
        >>> commands = ShellCommands(Path("."), helm_binary="/usr/local/bin/helm")
        >>> commands.helm.version().stdout
        'v3.14.2+gc309b6f'
    """

    def __init__(
        self,
        working_dir: Path,
        *,
        helm_binary: str = "helm",
        git_binary: str = "git",
        helm_timeout: float | None = None,
        git_timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the shell commands executor.

        Args:
            working_dir: Default working directory for commands.
            helm_binary: helm executable (resolved path or name)
            git_binary: git executable (resolved path or name)
            helm_timeout: Seconds before a helm process is killed
            git_timeout: Seconds before a git process is killed
            env: Extra environment variables for every command
        """
        self._working_dir = Path(working_dir)
        self.runner = CommandRunner(self._working_dir, env=env)

        self.helm = HelmCommands(self.runner, helm_binary, timeout=helm_timeout)
        self.git = GitCommands(self.runner, git_binary, timeout=git_timeout)

    @property
    def working_dir(self) -> Path:
        """Get the default working directory."""
        return self._working_dir


__all__ = [
    "ShellCommands",
    "CommandResult",
    "HelmRelease",
    "split_chart_version",
    # Specialized command classes for direct usage
    "HelmCommands",
    "GitCommands",
    "CommandRunner",
]
