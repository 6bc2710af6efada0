"""dnvm update command - install newer SDKs for tracked channels.

This module implements the 'dnvm update' command. Without flags it checks
every tracked channel for a newer SDK and installs it. With --self it
downloads the newest dnvm and hands over to it to replace the installed
executable.
"""

import logging

import typer
from rich.prompt import Confirm
from rich.table import Table

from dnvm.models import GlobalOptions, ManifestError
from dnvm.services import (
    ArchiveFetcher,
    ChannelNotFoundError,
    InstallError,
    NetworkError,
    SdkInstaller,
    SelfInstallError,
    SelfUpdater,
    new_session,
)
from dnvm.utils import (
    console,
    create_spinner,
    is_single_file,
    print_error,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)


def update(
    self_update: bool = typer.Option(
        False, "--self", help="Update dnvm itself instead of the installed SDKs."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Install updates without asking."),
    feed_url: str | None = typer.Option(
        None, "--feed-url", help="Alternate .NET release feed URL."
    ),
    dnvm_url: str | None = typer.Option(
        None, "--dnvm-url", help="Alternate dnvm release descriptor URL."
    ),
) -> None:
    """Install newer SDKs for every tracked channel."""
    options = GlobalOptions.from_environment()

    if self_update:
        _update_self(options, dnvm_url)
        return

    installer = SdkInstaller.create(options, feed_url, session=new_session())

    try:
        manifest = installer.read_manifest()
    except ManifestError as e:
        print_error(f"Error reading manifest: {e}")
        raise typer.Exit(1) from e

    if not manifest.tracked_channels:
        console.print("No channels are tracked. Use 'dnvm install <channel>' first.")
        return

    try:
        with create_spinner("Checking for updates..."):
            check = installer.find_updates(manifest)
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    for channel in check.unavailable:
        print_warning(f"No release found for channel '{channel}', skipping it")

    updates = check.updates
    if not updates:
        if check.unavailable:
            console.print("No updates available for the other tracked channels.")
        else:
            print_success("All tracked channels are up to date")
        return

    table = Table()
    table.add_column("Channel")
    table.add_column("Location")
    table.add_column("New version")
    for channel, sdk_dir, version in updates:
        table.add_row(str(channel), sdk_dir, str(version))
    console.print(table)

    if not yes and not Confirm.ask("Install these updates?", default=True):
        console.print("No updates installed.")
        return

    failed = 0
    for channel, sdk_dir, _version in updates:
        try:
            result = installer.install_latest(channel, sdk_dir)
        except (ManifestError, NetworkError, ChannelNotFoundError, InstallError) as e:
            logger.error(f"Update of channel '{channel}' failed: {e}")
            print_error(f"Failed to update channel '{channel}': {e}")
            failed += 1
            continue
        print_success(f"Installed SDK {result.version} in '{result.sdk_dir}'")

    if failed:
        raise typer.Exit(1)


def _update_self(options: GlobalOptions, dnvm_url: str | None) -> None:
    """Download the newest dnvm and let it replace the installed one.

    Args:
        options: Global options.
        dnvm_url: Alternate release descriptor URL.
    """
    if not is_single_file():
        print_error("Cannot self-update: the current executable is not deployed as a single file.")
        raise typer.Exit(1)

    updater = SelfUpdater(
        releases_url=dnvm_url or options.dnvm_releases_url,
        fetcher=ArchiveFetcher(session=new_session()),
    )
    try:
        newer = updater.check()
        if newer is None:
            print_success(f"dnvm is up to date ({updater.current_version})")
            return
        console.print(f"Updating dnvm to {newer}")
        exit_code = updater.run()
    except SelfInstallError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if exit_code != 0:
        print_error("The new dnvm failed to install itself")
        raise typer.Exit(1)
    print_success(f"dnvm updated to {newer}")
