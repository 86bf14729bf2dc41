"""Environment variable placeholder expansion for course files."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping

# $${...} is an escaped literal, ${...} a placeholder
_PATTERN = re.compile(r"\$(\$?)\{([^}]+)\}")


class MissingVariablesError(ValueError):
    """Raised when required placeholders have no value.

    Attributes:
        problems: One message per unresolved placeholder, in document order
    """

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


def substitute_env_vars(text: str, environ: Mapping[str, str] | None = None) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message
    - $${VAR_NAME} - escaped, left in the output as ${VAR_NAME}

    Raises:
        MissingVariablesError: Listing every required variable that is not set
    """
    env = os.environ if environ is None else environ
    problems: list[str] = []

    def replacer(match: re.Match[str]) -> str:
        escaped, var_expr = match.group(1), match.group(2)
        if escaped:
            return "${" + var_expr + "}"

        # Handle default values: ${VAR:-default}
        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return env.get(var_name, default)

        # Handle error messages: ${VAR:?message}
        if ":?" in var_expr:
            var_name, error_msg = var_expr.split(":?", 1)
            value = env.get(var_name)
            if value is None:
                problems.append(f"Required environment variable {var_name}: {error_msg}")
                return match.group(0)
            return value

        # Handle required variables: ${VAR}
        value = env.get(var_expr)
        if value is None:
            problems.append(f"Required environment variable {var_expr} not set")
            return match.group(0)
        return value

    result = _PATTERN.sub(replacer, text)
    if problems:
        raise MissingVariablesError(problems)
    return result
