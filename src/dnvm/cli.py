"""dnvm CLI entry point.

This module provides the main entry point for the dnvm CLI application,
a tool for installing and managing .NET SDKs from release channels.
"""

import logging

import typer

from dnvm import __version__
from dnvm.commands import install, list_sdks, select, selfinstall, update
from dnvm.utils import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="dnvm",
    help="dnvm - Install and manage .NET SDKs",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Handle the version flag callback.

    Args:
        value: Whether the version flag was provided.

    Raises:
        typer.Exit: Always raised after printing version when value is True.
    """
    if value:
        typer.echo(f"dnvm {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed log output."),
) -> None:
    """dnvm - Install and manage .NET SDKs."""
    configure_logging(verbose)


app.command(name="install", help="Install the newest SDK from a channel")(install)
app.command(name="update", help="Install newer SDKs for tracked channels")(update)
app.command(name="list", help="List installed SDKs")(list_sdks)
app.command(name="select", help="Select the current SDK directory")(select)
app.command(name="selfinstall", help="Install dnvm into its home directory")(selfinstall)


if __name__ == "__main__":
    app()
