"""Git command abstractions.

This module provides the git operations needed to fetch charts that live
in version-controlled repositories.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner

# Never block on an interactive credential prompt; auth failures must fail fast.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


class GitCommands:
    """Git-related shell commands.

    Provides operations for:
    - Cloning a remote (shallow or full)
    - Checking out a commit, branch or tag

    Authentication is whatever the ambient git configuration provides
    (credential helpers, SSH agent); swap this class to change transport.
    """

    def __init__(
        self,
        runner: CommandRunner,
        binary: str = "git",
        *,
        timeout: float | None = None,
    ) -> None:
        """Initialize Git commands.

        Args:
            runner: Command runner for executing shell commands
            binary: Path or name of the git executable
            timeout: Seconds before any git process is killed
        """
        self._runner = runner
        self.binary = binary
        self.timeout = timeout

    def clone(
        self,
        url: str,
        destination: Path,
        *,
        ref: str | None = None,
        shallow: bool = True,
    ) -> CommandResult:
        """Clone a repository into destination.

        Args:
            url: Remote URL
            destination: Directory to clone into (must not exist or be empty)
            ref: Branch or tag to clone; commit SHAs cannot be used with a
                 shallow clone and need a full clone followed by checkout
            shallow: Use --depth 1

        Returns:
            CommandResult with clone status
        """
        cmd = [self.binary, "clone", "--quiet"]
        if shallow:
            cmd.extend(["--depth", "1"])
        if ref:
            cmd.extend(["--branch", ref])
        cmd.extend([url, str(destination)])
        return self._runner.run(cmd, env=_GIT_ENV, timeout=self.timeout)

    def checkout(self, repo_dir: Path, ref: str) -> CommandResult:
        """Check out a commit, branch or tag in an existing clone."""
        cmd = [self.binary, "-C", str(repo_dir), "checkout", "--quiet", ref]
        return self._runner.run(cmd, env=_GIT_ENV, timeout=self.timeout)
