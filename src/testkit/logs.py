"""Logging configuration for the command-line runner."""

import logging

from rich.console import Console
from rich.logging import RichHandler

#: Third-party loggers kept quiet unless they report problems.
NOISY_LOGGERS = ('httpx', 'httpcore')


def configure_logging(level: str = 'INFO', *, no_color: bool = False) -> Console:
    """Configure logging for the runner.

    Records are rendered on standard error through `rich`, keeping
    standard output for reports. HTTP client libraries are capped at
    `WARNING` so that `DEBUG` shows the runner's own request log only.

    Args:
        level: Name of the log level.
        no_color: Disable colored output.

    Returns:
        Console used by the log handler.
    """
    console = Console(
        stderr=True,
        no_color=no_color,
    )

    verbose = level == 'DEBUG'
    handler = RichHandler(
        console=console,
        show_time=verbose,
        show_path=verbose,
    )

    logging.basicConfig(
        level=level,
        format='%(message)s',
        handlers=[handler],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLevelName(level)))

    return console
