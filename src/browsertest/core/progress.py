"""User-facing console output for CLI operations.

Design principles:
- Run reports (failures, stats, verdict) go to stdout
- Status lines and spinners go to stderr
- Graceful degradation in non-TTY (CI, pipes)
- Suppress structlog console output during spinners to avoid line collision

Usage::

    from browsertest.core.progress import status, spinner

    status("Serving build/ on http://localhost:3001")
    status("All Tests That Ran Passed - Good Job!", style="success")

    with spinner("Starting server and browser"):
        await supervisor.start()
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

# Status console (stderr) and report console (stdout)
_console = Console(stderr=True)
_output_console = Console()

# Style prefixes
_STYLES = {
    "success": "[green]✓[/green] ",
    "error": "[red]✗[/red] ",
    "warning": "[yellow]![/yellow] ",
    "info": "  ",
    "none": "",
}

_suppress_console_logs = threading.local()


def is_console_suppressed() -> bool:
    """Check if console logging is currently suppressed."""
    return getattr(_suppress_console_logs, "active", False)


@contextmanager
def suppress_console_logs() -> Iterator[None]:
    """Context manager to suppress structlog console output.

    Used during spinners to prevent log lines from colliding with
    Rich's live display. Logs are still written to file handlers.
    """
    _suppress_console_logs.active = True
    try:
        yield
    finally:
        _suppress_console_logs.active = False


def _get_logger() -> BoundLogger:
    """Get logger lazily to respect runtime config."""
    from browsertest.core.logging import get_logger

    return get_logger("progress")


def _is_tty() -> bool:
    """Check if stderr is a TTY."""
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


def get_console() -> Console:
    """Get the shared stderr console used for status output."""
    return _console


def get_output_console() -> Console:
    """Get the shared stdout console used for run reports."""
    return _output_console


def status(message: str, *, style: str = "info", indent: int = 0) -> None:
    """Print a styled status message to stderr."""
    prefix = _STYLES.get(style, "")
    padding = " " * indent
    _console.print(f"{padding}{prefix}{message}", highlight=False)

    _get_logger().debug("status", message=message, style=style)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    """Return grammatically correct singular/plural form.

    Args:
        count: The number of items
        singular: Singular form (e.g., "document")
        plural: Plural form (default: singular + "s")

    Returns:
        Formatted string like "1 document" or "3 documents"
    """
    if plural is None:
        plural = singular + "s"
    word = singular if count == 1 else plural
    return f"{count} {word}"


@contextmanager
def spinner(message: str, *, indent: int = 0) -> Iterator[None]:
    """Context manager for a spinner with log suppression.

    Usage::

        with spinner("Starting server and browser"):
            await do_work()
    """
    padding = " " * indent
    if _is_tty():
        with (
            suppress_console_logs(),
            _console.status(f"{padding}[cyan]{message}[/cyan]", spinner="dots"),
        ):
            yield
    else:
        _console.print(f"{padding}{message}...", highlight=False)
        yield
