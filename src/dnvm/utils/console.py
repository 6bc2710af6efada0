"""Rich console utilities for consistent terminal output.

This module provides a shared Rich Console instance, helper functions
for displaying formatted terminal output with consistent styling, and
the logging setup used by every command.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

logger = logging.getLogger(__name__)

# Legacy Windows encodings that require special handling
LEGACY_WINDOWS_ENCODINGS = frozenset({"cp1252", "cp437", "ascii"})


def create_console(stderr: bool = False) -> Console:
    """Create a Rich Console with appropriate settings for the current terminal.

    On Windows terminals with legacy encodings (cp1252, cp437, ascii), enables
    legacy_windows mode to avoid unicode encoding errors. On UTF-8 terminals
    and non-Windows platforms, uses default Console settings.

    Args:
        stderr: Whether the console writes to stderr instead of stdout.

    Returns:
        Console: A configured Rich Console instance.
    """
    if sys.platform == "win32":
        stream = sys.stderr if stderr else sys.stdout
        encoding = getattr(stream, "encoding", None) or "utf-8"
        encoding = encoding.lower().replace("-", "")  # Normalize: UTF-8 -> utf8

        if encoding in LEGACY_WINDOWS_ENCODINGS:
            logger.debug(
                "Detected legacy Windows encoding '%s', enabling legacy_windows mode",
                encoding,
            )
            return Console(legacy_windows=True, stderr=stderr)

    return Console(stderr=stderr)


console = create_console()


def configure_logging(verbose: bool = False) -> None:
    """Route dnvm log records to stderr through Rich.

    Args:
        verbose: Show debug records instead of warnings and errors only.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    root = logging.getLogger("dnvm")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(
        console=create_console(stderr=True),
        show_time=verbose,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


def print_success(message: str) -> None:
    """Print a success message with a green checkmark.

    Args:
        message: The success message to display.
    """
    console.print(f"[bold green]✓[/bold green] {escape(message)}")


def print_error(message: str) -> None:
    """Print an error message with a red X.

    Args:
        message: The error message to display.
    """
    console.print(f"[bold red]✗[/bold red] {escape(message)}")


def print_warning(message: str) -> None:
    """Print a warning message with a yellow warning sign.

    Args:
        message: The warning message to display.
    """
    console.print(f"[bold yellow]⚠[/bold yellow] {escape(message)}")


@contextmanager
def create_spinner(message: str) -> Iterator[None]:
    """Create a spinner context manager for long operations.

    Args:
        message: The status message to display while spinning.

    Yields:
        None: The spinner runs while the context is active.
    """
    with console.status(message, spinner="dots"):
        yield
