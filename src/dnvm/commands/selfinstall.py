"""dnvm selfinstall command - install dnvm into its home.

This module implements the 'dnvm selfinstall' command which copies the
running dnvm executable into the dnvm home, installs a first SDK and
optionally updates the user environment. With --update it instead
replaces an installed dnvm with the running executable.
"""

import logging
from pathlib import Path

import typer
from rich.prompt import Confirm, Prompt

from dnvm.models import (
    FIXED_CHANNELS,
    Channel,
    GlobalOptions,
    Latest,
    ManifestError,
    describe_channel,
)
from dnvm.services import (
    AlreadyInstalledError,
    ChannelNotFoundError,
    InstallError,
    NetworkError,
    SdkInstaller,
    SelfInstaller,
    SelfInstallError,
    get_user_environment,
    new_session,
    sdk_dir_for_channel,
)
from dnvm.utils import console, is_single_file, print_error, print_success, print_warning

logger = logging.getLogger(__name__)


def _prompt_channel(default: Channel) -> Channel:
    """Ask which channel to track.

    Args:
        default: Channel used when the user just presses enter.

    Returns:
        The chosen channel.
    """
    console.print("Which channel would you like to start tracking?")
    console.print("Available channels:")
    for i, channel in enumerate(FIXED_CHANNELS, start=1):
        console.print(f"\t{i}) {channel.display_name} - {describe_channel(channel)}")
    console.print()

    choices = [str(i) for i in range(1, len(FIXED_CHANNELS) + 1)]
    default_index = FIXED_CHANNELS.index(default) + 1
    answer = Prompt.ask("Please select a channel", choices=choices, default=str(default_index))
    return FIXED_CHANNELS[int(answer) - 1]


def selfinstall(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing dnvm installation."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept all defaults without prompting."),
    update: bool = typer.Option(
        False, "--update", help="Replace the installed dnvm with this executable."
    ),
    feed_url: str | None = typer.Option(
        None, "--feed-url", help="Alternate .NET release feed URL."
    ),
    update_user_environment: bool = typer.Option(
        False,
        "--update-user-environment",
        help="Put dnvm on PATH and point DOTNET_ROOT at the installed SDK.",
    ),
) -> None:
    """Install dnvm into its home directory."""
    if not is_single_file():
        print_error(
            "Cannot self-install into target location: the current executable "
            "is not deployed as a single file."
        )
        raise typer.Exit(1)

    options = GlobalOptions.from_environment()

    if update:
        console.print("Running self-update install")
        controller = SelfInstaller(
            options=options,
            installer=SdkInstaller.create(options, feed_url, session=new_session()),
            environment=get_user_environment(options.user_home),
        )
        try:
            controller.update()
        except (SelfInstallError, ManifestError) as e:
            print_error(str(e))
            raise typer.Exit(1) from e
        print_success("Process successfully upgraded")
        return

    channel: Channel = Latest()
    if not yes:
        location = Prompt.ask("Please select install location", default=str(options.dnvm_home))
        if location.strip():
            options = options.model_copy(update={"dnvm_home": Path(location.strip())})

    environment = get_user_environment(options.user_home)
    controller = SelfInstaller(
        options=options,
        installer=SdkInstaller.create(options, feed_url, session=new_session()),
        environment=environment,
    )

    try:
        controller.check_install_target(force)
    except AlreadyInstalledError as e:
        print_warning(str(e))
        raise typer.Exit(1) from e
    except SelfInstallError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if not yes:
        channel = _prompt_channel(channel)
        sdk_install_dir = options.sdk_install_dir(sdk_dir_for_channel(channel))
        if not update_user_environment and environment.missing_from_env(
            options.dnvm_home, sdk_install_dir
        ):
            update_user_environment = Confirm.ask(
                "One or more paths are missing from the user environment. "
                "Attempt to update the user environment?",
                default=True,
            )

    console.print("Starting dnvm install")
    try:
        result = controller.install(channel, force=force, update_user_env=update_user_environment)
    except SelfInstallError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    except ManifestError as e:
        print_error(f"Error reading manifest: {e}")
        raise typer.Exit(1) from e
    except (NetworkError, ChannelNotFoundError, InstallError) as e:
        print_error(f"SDK install failed: {e}")
        raise typer.Exit(1) from e

    print_success(f"dnvm installed to {options.dnvm_exe_path}")
    print_success(f"Installed SDK {result.version} in '{result.sdk_dir}'")
    if update_user_environment and environment.restart_required:
        console.print(
            "Finished setting environment variables. Please close and re-open your terminal."
        )
