"""dnvm install command - install the newest SDK of a channel.

This module implements the 'dnvm install' command which resolves a
channel against the release feed and installs the matching SDK into
the dnvm home.
"""

import logging

import typer

from dnvm.models import (
    DeserializeError,
    GlobalOptions,
    ManifestError,
    SdkDirName,
    parse_channel,
)
from dnvm.services import (
    ChannelNotFoundError,
    InstallError,
    InstallStatus,
    NetworkError,
    SdkInstaller,
    get_user_environment,
    new_session,
)
from dnvm.utils import console, create_spinner, ensure_dir, print_error, print_success

logger = logging.getLogger(__name__)


def install(
    channel: str = typer.Argument(
        ...,
        help="Channel to install: lts, sts, latest, preview, or a major.minor version.",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Reinstall even if the SDK is already installed."
    ),
    sdk_dir: str | None = typer.Option(
        None,
        "--sdk-dir",
        help="SDK directory to install into (default: 'dn', or 'preview' for previews).",
    ),
    feed_url: str | None = typer.Option(
        None, "--feed-url", help="Alternate .NET release feed URL."
    ),
    update_user_environment: bool = typer.Option(
        False,
        "--update-user-environment",
        help="Put dnvm on PATH and point DOTNET_ROOT at the current SDK.",
    ),
) -> None:
    """Install the newest SDK from a release channel."""
    try:
        parsed_channel = parse_channel(channel)
        parsed_dir = SdkDirName(sdk_dir) if sdk_dir is not None else None
    except (DeserializeError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    options = GlobalOptions.from_environment()
    try:
        ensure_dir(options.dnvm_home)
    except OSError as e:
        print_error(f"Could not create dnvm home {options.dnvm_home}: {e}")
        raise typer.Exit(1) from e
    installer = SdkInstaller.create(options, feed_url, session=new_session())

    try:
        with create_spinner(f"Installing latest '{parsed_channel.display_name}' SDK..."):
            result = installer.install_latest(parsed_channel, parsed_dir, force)
    except ManifestError as e:
        print_error(f"Error reading manifest: {e}")
        raise typer.Exit(1) from e
    except (NetworkError, ChannelNotFoundError, InstallError) as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if result.status == InstallStatus.ALREADY_INSTALLED:
        console.print(
            f"Version {result.version} is already installed. Skipping installation. "
            "To install anyway, pass --force."
        )
    else:
        print_success(f"Installed SDK {result.version} in '{result.sdk_dir}'")

    if update_user_environment:
        environment = get_user_environment(options.user_home)
        current_dir = options.sdk_install_dir(result.manifest.current_sdk_dir)
        try:
            environment.add_to_path(options.dnvm_home, current_dir)
        except OSError as e:
            print_error(f"Could not update the user environment: {e}")
            raise typer.Exit(1) from e
        if environment.restart_required:
            console.print("Please close and re-open your terminal to pick up the changes.")
