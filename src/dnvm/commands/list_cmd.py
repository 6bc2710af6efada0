"""dnvm list command - show installed SDKs.

This module implements the 'dnvm list' command which prints every
tracked channel, the SDK versions installed through it, and where they
live. Rows in the current SDK directory are marked with '*'.
"""

import logging

import typer
from rich.table import Table

from dnvm.models import GlobalOptions, Manifest, ManifestError, read_manifest_or_empty
from dnvm.utils import console, print_error

logger = logging.getLogger(__name__)


def build_sdk_table(manifest: Manifest) -> Table:
    """Build the table of installed SDKs.

    Args:
        manifest: The manifest to render.

    Returns:
        A Rich table with marker, channel, version and location columns.
    """
    table = Table()
    table.add_column("")
    table.add_column("Channel")
    table.add_column("Version")
    table.add_column("Location")

    for tracked in manifest.tracked_channels:
        marker = "*" if tracked.sdk_dir_name == manifest.current_sdk_dir else ""
        for version in tracked.installed_sdk_versions:
            table.add_row(marker, str(tracked.channel_name), str(version), tracked.sdk_dir_name)
    return table


def list_sdks() -> None:
    """List installed SDKs and tracked channels."""
    options = GlobalOptions.from_environment()

    try:
        manifest = read_manifest_or_empty(options.manifest_path)
    except ManifestError as e:
        print_error(f"Error reading manifest: {e}")
        raise typer.Exit(1) from e

    console.print("Installed SDKs:")
    console.print()
    console.print(build_sdk_table(manifest))
