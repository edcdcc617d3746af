"""
Logging for apimacro.

Example:
    from apimacro.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Recording started")
    logger.warning("Call failed during playback")
    logger.error("Could not save macro", exc_info=True)
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

MACRO_THEME = Theme({
    "log.time": "dim cyan",
    "log.level.debug": "dim blue",
    "log.level.info": "green",
    "log.level.warning": "yellow",
    "log.level.error": "bold red",
    "log.level.critical": "bold white on red",
    "macro.success": "bold green",
    "macro.method.get": "cyan",
    "macro.method.post": "green",
    "macro.method.put": "yellow",
    "macro.method.delete": "red",
    "macro.failure": "bold red",
    "macro.dry_run": "cyan",
})

# Global console instance
console = Console(theme=MACRO_THEME, stderr=True)

_initialized = False


def setup_logging(
    level: str = "INFO",
    show_time: bool = True,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> None:
    """
    Initialize apimacro logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        show_time: Show timestamps in log output
        show_path: Show file path in log output
        rich_tracebacks: Use rich formatting for tracebacks

    Note:
        Only the first call installs a handler; later calls are ignored.
    """
    global _initialized

    if _initialized:
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

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a given module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    if not _initialized:
        setup_logging()

    return logging.getLogger(name)


class MacroLogger:
    """
    apimacro-specific logger.

    Wraps the standard logger with helpers for recording and playback output.
    """

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
        """Print a success line with special formatting."""
        from rich.markup import escape

        self.console.print(f"[macro.success]✓[/macro.success] {escape(message)}")

    def call(
        self,
        index: int,
        method: str,
        path: str,
        status: str,
        duration: Optional[float] = None,
    ) -> None:
        """
        Print the outcome of one replayed call.

        Args:
            index: Position of the call in the macro
            method: HTTP verb
            path: Substituted call path
            status: Outcome label (success, error, ...)
            duration: Optional duration in milliseconds
        """
        from rich.markup import escape

        style = f"macro.method.{method.lower()}"
        msg = f"  [{index}] [{style}]{method:<6}[/{style}] {escape(path)} ... {escape(status)}"
        if duration is not None:
            msg += f" [dim]({duration:.0f}ms)[/dim]"

        if status == "success":
            self.console.print(f"[macro.success]{msg}[/macro.success]")
        elif status in ("error", "substitution_failed"):
            self.console.print(f"[macro.failure]{msg}[/macro.failure]")
        else:
            self.console.print(msg)

    def dry_run(self, message: str) -> None:
        from rich.markup import escape

        self.console.print(f"[macro.dry_run][DRY RUN][/macro.dry_run] {escape(message)}")


def get_macro_logger(name: str) -> MacroLogger:
    """
    Get a MacroLogger instance for the given module.

    Example:
        logger = get_macro_logger(__name__)
        logger.success("Macro saved")
        logger.call(0, "POST", "/api/items/add", "success", 12.5)
    """
    return MacroLogger(name)
