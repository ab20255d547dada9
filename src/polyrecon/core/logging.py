"""Logging setup for polyrecon runs.

Library code only calls ``logging.getLogger(__name__)``; handlers are
installed here, once per run, by the CLI or by whoever embeds the pipeline.
"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty at INFO/DEBUG and not about the reconstruction itself
QUIET_LOGGERS = ("trimesh", "shapely")


def resolve_level(level: str | int) -> int:
    """Map a level name ("debug", "INFO", ...) or number to a logging level."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level {level!r}")
    return value


def setup_logging(level: str | int = "INFO", console: Console | None = None) -> None:
    """Route pipeline logs to stdout, or through ``console`` when one is given.

    With a rich console, log records share the terminal with the CLI's own
    output and are rendered by ``RichHandler``; otherwise they use the plain
    pipe-delimited format. Calling this again replaces the previous handlers.
    """
    numeric = resolve_level(level)
    if console is not None:
        handler: logging.Handler = RichHandler(
            console=console,
            show_path=False,
            markup=False,
            log_time_format=DATE_FORMAT,
        )
        fmt = "%(name)s | %(message)s"
    else:
        handler = logging.StreamHandler(sys.stdout)
        fmt = LOG_FORMAT

    logging.basicConfig(
        level=numeric,
        format=fmt,
        datefmt=DATE_FORMAT,
        handlers=[handler],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
