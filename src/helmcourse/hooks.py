"""Pre- and post-install hook execution."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from loguru import logger

from .course.model import Hook
from .errors import HookError
from .shell.runner import CommandRunner

Phase = Literal["pre", "post"]


@dataclass(frozen=True)
class HookResult:
    """Outcome of one successful hook."""

    index: int
    description: str
    exit_code: int
    output: str


class HookRunner:
    """Runs hook commands through the shell, in declared order.

    Output is streamed line by line to the log while the hook runs and is
    also kept for the error report. The first failing hook stops its phase.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        timeout: float | None = None,
        on_output: Callable[[str, str], None] | None = None,
    ) -> None:
        """Initialize the hook runner.

        Args:
            runner: Command runner used to start the shell
            timeout: Seconds before a single hook is killed (None: never)
            on_output: Extra callback receiving (scope, line) for each line
        """
        self._runner = runner
        self.timeout = timeout
        self.on_output = on_output

    def run(
        self,
        hooks: Sequence[Hook],
        phase: Phase,
        *,
        scope: str,
        env: Mapping[str, str] | None = None,
    ) -> list[HookResult]:
        """Run one phase of hooks.

        Args:
            hooks: Hooks in execution order
            phase: "pre" or "post"
            scope: Release name, or "course" for course-level hooks
            env: Extra environment variables for every hook

        Returns:
            One HookResult per hook, when all of them succeed

        Raises:
            HookError: For the first hook that exits non-zero or times out,
                with its index and captured output
        """
        log = logger.bind(scope=scope)
        results: list[HookResult] = []

        def stream(line: str) -> None:
            log.info(f"  | {line}")
            if self.on_output:
                self.on_output(scope, line)

        for index, hook in enumerate(hooks):
            log.info(f"Running {phase}-install hook #{index}: {hook.description}")
            result = self._runner.run_streaming(
                hook.command,
                cwd=hook.cwd,
                env=env,
                timeout=self.timeout,
                shell=True,
                on_output=stream,
            )
            if result.timed_out or not result.success:
                log.error(
                    f"{phase}-install hook #{index} failed "
                    f"(exit code {result.returncode})"
                )
                raise HookError(
                    phase=phase,
                    index=index,
                    description=hook.description,
                    exit_code=result.returncode,
                    output=result.output,
                    scope=scope,
                    timed_out=result.timed_out,
                )
            results.append(
                HookResult(
                    index=index,
                    description=hook.description,
                    exit_code=result.returncode,
                    output=result.stdout,
                )
            )
        return results
