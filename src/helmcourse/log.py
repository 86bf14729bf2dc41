"""Logging setup.

Engine modules log through loguru's global ``logger``; this module only
decides where those records go.
"""

from __future__ import annotations

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{extra[scope]}</cyan> {message}"
)


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a stderr sink at ``level``.

    Records bound with ``logger.bind(scope=...)`` show the release or
    namespace they belong to; unbound records show "-".
    """
    logger.remove()
    logger.configure(extra={"scope": "-"})
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=_FORMAT,
        colorize=None,
        backtrace=False,
        diagnose=False,
    )
