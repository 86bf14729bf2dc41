"""Command runner for executing external programs.

This module provides the base command execution functionality used by
the helm and git command modules and by the hook runner.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from loguru import logger

from .types import CommandResult


class CommandRunner:
    """Low-level command executor with consistent result handling.

    This class provides the foundation for executing external commands with
    output capture, timeouts and line streaming.

    All specialized command modules (helm, git) and the hook runner use this
    runner for actual command execution, which makes it the single seam to
    replace with a fake in tests.
    """

    def __init__(self, working_dir: Path, env: Mapping[str, str] | None = None) -> None:
        """Initialize the command runner.

        Args:
            working_dir: Default working directory for commands (usually the
                         directory holding the course file).
            env: Extra environment variables passed to every command.
        """
        self.working_dir = working_dir
        self.env = dict(env or {})

    def _environment(self, env: Mapping[str, str] | None) -> dict[str, str]:
        merged = os.environ.copy()
        merged.update(self.env)
        if env:
            merged.update(env)
        return merged

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        capture_output: bool = True,
    ) -> CommandResult:
        """Execute a command and return a structured result.

        Args:
            cmd: Command and arguments as a sequence
            cwd: Working directory (defaults to working_dir)
            env: Extra environment variables for this call
            timeout: Seconds before the process is killed
            capture_output: Whether to capture stdout/stderr

        Returns:
            CommandResult with success status, output, and return code.
            A timeout is reported as a failed result with returncode -1.
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                list(cmd),
                cwd=cwd or self.working_dir,
                env=self._environment(env),
                capture_output=capture_output,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            return CommandResult(
                success=False,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr) or f"Timed out after {timeout}s",
                returncode=-1,
                timed_out=True,
            )
        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )

    def run_streaming(
        self,
        cmd: Sequence[str] | str,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        shell: bool = False,
        on_output: Callable[[str], None] | None = None,
    ) -> CommandResult:
        """Execute a command with real-time output streaming.

        This method runs a command and calls the on_output callback for each
        line of output, allowing real-time progress display. When the timeout
        expires the process is killed and the lines read so far are returned
        with ``timed_out`` set.

        Args:
            cmd: Command and arguments, or a command string when shell=True
            cwd: Working directory (defaults to working_dir)
            env: Extra environment variables for this call
            timeout: Seconds before the process is killed
            shell: Run the command string through the shell
            on_output: Callback function called with each line of output.
                      If None, output is collected but not streamed.

        Returns:
            CommandResult with success status, collected output, and return code
        """
        command = cmd if shell else list(cmd)
        logger.debug(f"Running: {cmd if shell else ' '.join(cmd)}")

        process = subprocess.Popen(
            command,
            cwd=cwd or self.working_dir,
            env=self._environment(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,  # Merge stderr into stdout
            text=True,
            shell=shell,
            # Own process group so a timeout also reaches the shell's children
            start_new_session=True,
        )

        expired = threading.Event()

        def _kill() -> None:
            expired.set()
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass

        timer = threading.Timer(timeout, _kill) if timeout else None
        if timer:
            timer.daemon = True
            timer.start()

        stdout_lines: list[str] = []
        try:
            if process.stdout:
                for line in iter(process.stdout.readline, ""):
                    line = line.rstrip("\n")
                    stdout_lines.append(line)
                    if on_output and line:
                        on_output(line)
            process.wait()
        finally:
            if timer:
                timer.cancel()

        if expired.is_set():
            return CommandResult(
                success=False,
                stdout="\n".join(stdout_lines),
                stderr=f"Timed out after {timeout}s",
                returncode=-1,
                timed_out=True,
            )
        return CommandResult(
            success=process.returncode == 0,
            stdout="\n".join(stdout_lines),
            stderr="",  # stderr is merged into stdout
            returncode=process.returncode or 0,
        )


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output
