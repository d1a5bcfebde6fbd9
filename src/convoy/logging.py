"""Logging and console output for the convoy CLI.

Library code logs to the ``convoy`` logger; the CLI installs a rich handler
on it and prints command results through the consoles below.
"""

from __future__ import annotations

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)

Verbosity = Literal["quiet", "normal", "verbose"]

LEVELS: dict[Verbosity, int] = {
    "quiet": logging.ERROR,
    "normal": logging.INFO,
    "verbose": logging.DEBUG,
}


def setup_logging(verbosity: Verbosity = "normal") -> logging.Logger:
    """Route ``convoy`` log records to stderr at the level for ``verbosity``.

    Calling it again replaces the previous handler.
    """
    logger = logging.getLogger("convoy")
    logger.handlers.clear()
    logger.setLevel(LEVELS[verbosity])

    verbose = verbosity == "verbose"
    handler = RichHandler(
        console=err_console,
        show_time=verbose,
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    return logger


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    console.print(f"[green]{escape(message)}[/green]")


def print_info(message: str) -> None:
    console.print(escape(message))
