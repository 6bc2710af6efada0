"""dnvm select command - switch the current SDK directory.

This module implements the 'dnvm select' command which points the
dotnet link and the user environment at another SDK directory.
"""

import logging

import typer

from dnvm.models import GlobalOptions, Manifest, ManifestError, SdkDirName
from dnvm.services import InstallError, SdkInstaller, get_user_environment
from dnvm.utils import console, print_error, print_success

logger = logging.getLogger(__name__)


def _print_choices(manifest: Manifest) -> None:
    valid = manifest.sdk_dirs()
    if valid:
        console.print("Valid choices are:")
        for name in valid:
            console.print(f"  {name}")


def select(
    sdk_dir: str = typer.Argument(..., help="SDK directory to make current, e.g. 'preview'."),
) -> None:
    """Select the SDK directory that 'dotnet' runs from."""
    options = GlobalOptions.from_environment()
    installer = SdkInstaller.create(options)

    try:
        manifest = installer.read_manifest()
    except ManifestError as e:
        print_error(f"Error reading manifest: {e}")
        raise typer.Exit(1) from e

    try:
        new_dir = SdkDirName(sdk_dir)
    except ValueError as e:
        print_error(f"Invalid SDK directory name: {sdk_dir}")
        _print_choices(manifest)
        raise typer.Exit(1) from e

    try:
        manifest = installer.select(new_dir)
    except ValueError as e:
        print_error(str(e))
        _print_choices(manifest)
        raise typer.Exit(1) from e
    except InstallError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    environment = get_user_environment(options.user_home)
    try:
        environment.refresh(options.dnvm_home, options.sdk_install_dir(new_dir))
    except OSError as e:
        print_error(f"Could not update the user environment: {e}")
        raise typer.Exit(1) from e
    print_success(f"Selected SDK directory '{new_dir}'")
