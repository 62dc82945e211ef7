"""
Console logging: a rich handler on stderr, plus LempLogger for the
one-line status output of a provisioning run.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

LEMP_THEME = Theme({
    "log.time": "dim cyan",
    "log.level.debug": "dim blue",
    "log.level.info": "blue",
    "log.level.warning": "yellow",
    "log.level.error": "bold red",
    "log.level.critical": "bold white on red",
    "lemp.success": "bold green",
    "lemp.action.create": "green",
    "lemp.action.update": "yellow",
    "lemp.action.delete": "red",
    "lemp.hint": "cyan",
})

console = Console(theme=LEMP_THEME, stderr=True)

_initialized = False


def setup_logging(
    level: str = "INFO",
    show_time: bool = True,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    force: bool = False,
) -> None:
    """
    Route the logging module through rich.

    Runs once, lazily, from get_logger(); the CLI calls it again with
    force=True to apply --log-level.
    """
    global _initialized

    if _initialized and not force:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logging.basicConfig(
        level=numeric_level,
        handlers=[handler],
        force=True,
    )

    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(max(numeric_level, logging.WARNING))

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    if not _initialized:
        setup_logging()

    return logging.getLogger(name)


class LempLogger:
    """A module logger plus console lines for run progress."""

    def __init__(self, name: str):
        self.logger = get_logger(name)
        self.console = console

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    def success(self, message: str) -> None:
        self.console.print(f"[lemp.success]✓[/lemp.success] {escape(message)}")

    def action(self, action: str, resource_id: str, details: Optional[str] = None) -> None:
        """One line per applied resource: `+ pkg:nginx (Resource does not exist)`."""
        symbol = {"create": "+", "update": "~", "delete": "-"}.get(action.lower(), "•")
        style = f"lemp.action.{action.lower()}"

        msg = f"[{style}]{symbol}[/{style}] {escape(resource_id)}"
        if details:
            msg += f" [dim]({escape(details)})[/dim]"
        self.console.print(msg)

    def hint(self, message: str) -> None:
        self.console.print(f"[lemp.hint]{escape(message)}[/lemp.hint]")


def get_lemp_logger(name: str) -> LempLogger:
    return LempLogger(name)
