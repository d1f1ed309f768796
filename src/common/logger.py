"""Rich-backed logging for the firmware diff workflow.

Every stage module grabs its own logger and lets the CLI entry point
decide on levels and extra sinks:

    from common.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Extracting [bold]arm64e[/bold] for new side")
    logger.warning("No dyld_shared_cache for x86_64 found for old - skipping")
"""

import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler

# Shared console so progress lines and log records interleave correctly
console = Console()


def _rich_handler(show_time: bool = False, show_path: bool = False) -> RichHandler:
    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        markup=True,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))
    return handler


def _root_is_configured() -> bool:
    return any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)


def get_logger(
    name: str,
    level: str | None = None,
    show_time: bool = False,
    show_path: bool = False,
) -> logging.Logger:
    """Get a logger that renders through rich.

    Args:
        name: Logger name (typically __name__ of the module)
        level: Logging level name. If None, uses LOG_LEVEL or INFO.
        show_time: Show timestamps (off by default for clean CI logs)
        show_path: Show source location of the record

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Already configured on a previous call
    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    logger.setLevel(level)
    # After setup_logging the root handler renders propagated records
    if not _root_is_configured():
        logger.addHandler(_rich_handler(show_time=show_time, show_path=show_path))

    # pytest's caplog relies on propagation to the root logger
    logger.propagate = True

    return logger


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure the root logger once, at the CLI entry point.

    Args:
        level: Default logging level for all modules
        log_file: Optional file that receives a timestamped copy of every record
    """
    level = os.getenv("LOG_LEVEL", level).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_rich_handler())

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)

    # Module loggers created at import time drop their own console handler
    for existing in list(logging.Logger.manager.loggerDict.values()):
        if not isinstance(existing, logging.Logger):
            continue
        for handler in list(existing.handlers):
            if isinstance(handler, RichHandler) and handler.console is console:
                existing.removeHandler(handler)


def progress(message: str) -> None:
    """Print a plain progress line, e.g. "=== Using parameters ===" banners."""
    console.print(message)


def success(message: str) -> None:
    """Print a success line with a green checkmark."""
    console.print(f"[green]✓[/green] {message}")


def warning(message: str) -> None:
    """Print a warning line with a yellow marker."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def error(message: str) -> None:
    """Print an error line with a red X to stderr."""
    Console(file=sys.stderr).print(f"[red]✗[/red] {message}")
