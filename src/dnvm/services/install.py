"""SDK installation service.

Resolves a channel to a version, downloads and extracts the SDK into its
directory under the dnvm home, records it in the manifest, and keeps the
``dotnet`` link in the dnvm home pointing at the current SDK directory.
"""

import logging
import os
import tempfile
from enum import Enum
from pathlib import Path

import requests
from pydantic import BaseModel, ConfigDict, Field

from dnvm.models.channel import Channel, Preview
from dnvm.models.manifest import (
    DEFAULT_SDK_DIR,
    InstalledSdk,
    Manifest,
    SdkDirName,
    read_manifest_or_empty,
    save_manifest,
)
from dnvm.models.options import GlobalOptions
from dnvm.models.version import SemVer
from dnvm.services.archive import ArchiveFetcher, FetchError, new_session
from dnvm.services.releases import ChannelNotFoundError, ReleaseResolver
from dnvm.utils.files import merge_tree
from dnvm.utils.platform import exe_suffix, is_windows

logger = logging.getLogger(__name__)

PREVIEW_SDK_DIR = SdkDirName("preview")


class InstallError(Exception):
    """Exception raised when an SDK cannot be downloaded or put in place."""


class InstallStatus(Enum):
    """Outcome of installing a channel's newest SDK.

    Attributes:
        INSTALLED: The SDK was downloaded and registered.
        ALREADY_INSTALLED: The SDK was already present; only the channel
            tracking was recorded.
    """

    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"


class InstallResult(BaseModel):
    """Result of an SDK install.

    Attributes:
        status: Whether anything was installed.
        version: The SDK version the channel resolved to.
        sdk_dir: Directory the SDK lives in.
        manifest: The manifest after the install.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: InstallStatus
    version: SemVer
    sdk_dir: SdkDirName
    manifest: Manifest


class UpdateCheck(BaseModel):
    """Tracked channels checked against the release feed.

    Attributes:
        updates: ``(channel, sdk_dir, newest_version)`` for every tracked
            channel with a newer SDK.
        unavailable: Tracked channels the feed has no release for right now,
            e.g. preview between a release and the next preview.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    updates: list[tuple[Channel, SdkDirName, SemVer]] = Field(default_factory=list)
    unavailable: list[Channel] = Field(default_factory=list)


def sdk_dir_for_channel(channel: Channel) -> SdkDirName:
    """Return the default SDK directory for a channel.

    Previews are isolated in their own directory so they never shadow a
    stable install; every other channel shares the default directory.
    """
    if isinstance(channel, Preview):
        return PREVIEW_SDK_DIR
    return DEFAULT_SDK_DIR


def dotnet_link_path(dnvm_home: Path) -> Path:
    """Return the path of the link that marks the current SDK."""
    return dnvm_home / ("dotnet.cmd" if is_windows() else "dotnet")


def retarget_symlink(dnvm_home: Path, sdk_dir: SdkDirName) -> Path:
    """Point the ``dotnet`` link in the dnvm home at an SDK directory.

    On Unix the link is a symlink to ``<sdk_dir>/dotnet``, created under a
    temporary name and renamed into place. On Windows a ``dotnet.cmd`` shim
    forwarding to ``<sdk_dir>\\dotnet.exe`` is written instead.

    Args:
        dnvm_home: The dnvm home directory.
        sdk_dir: The SDK directory to make current.

    Returns:
        Path to the link.
    """
    link_path = dotnet_link_path(dnvm_home)
    dotnet_exe = dnvm_home / sdk_dir / f"dotnet{exe_suffix()}"
    logger.info(f"Retargeting {link_path} to {dotnet_exe}")

    if is_windows():
        link_path.write_text(f'@"{dotnet_exe}" %*\r\n', encoding="utf-8")
        return link_path

    tmp_link = link_path.with_name(link_path.name + ".tmp")
    tmp_link.unlink(missing_ok=True)
    os.symlink(dotnet_exe, tmp_link)
    os.replace(tmp_link, link_path)
    return link_path


class SdkInstaller(BaseModel):
    """Installs SDKs from release channels into the dnvm home."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    options: GlobalOptions
    resolver: ReleaseResolver
    fetcher: ArchiveFetcher = Field(default_factory=ArchiveFetcher)

    @classmethod
    def create(
        cls,
        options: GlobalOptions,
        feed_url: str | None = None,
        session: requests.Session | None = None,
    ) -> "SdkInstaller":
        """Build an installer sharing one HTTP session between its parts."""
        fetcher = ArchiveFetcher(session=session or new_session())
        resolver = ReleaseResolver(feed_url=feed_url or options.feed_url, session=fetcher.session)
        return cls(options=options, resolver=resolver, fetcher=fetcher)

    def read_manifest(self) -> Manifest:
        """Read the manifest, treating a missing file as an empty install.

        Raises:
            ManifestError: If the manifest exists but cannot be used.
        """
        return read_manifest_or_empty(self.options.manifest_path)

    def save(self, manifest: Manifest) -> None:
        """Write the manifest to the dnvm home.

        Raises:
            InstallError: If the manifest cannot be written.
        """
        try:
            save_manifest(manifest, self.options.manifest_path)
        except OSError as e:
            raise InstallError(
                f"Could not write manifest {self.options.manifest_path}: {e}"
            ) from e

    def make_current(self, sdk_dir: SdkDirName) -> Path:
        """Point the ``dotnet`` link at an SDK directory.

        Raises:
            InstallError: If the link cannot be written.
        """
        try:
            return retarget_symlink(self.options.dnvm_home, sdk_dir)
        except OSError as e:
            link_path = dotnet_link_path(self.options.dnvm_home)
            raise InstallError(f"Could not point {link_path} at '{sdk_dir}': {e}") from e

    def install_latest(
        self,
        channel: Channel,
        sdk_dir: SdkDirName | None = None,
        force: bool = False,
    ) -> InstallResult:
        """Install the newest SDK of a channel.

        The manifest is only written after the SDK is fully extracted into
        place, so a failed download never registers a partial install.

        Args:
            channel: The channel to install from.
            sdk_dir: Target SDK directory (default depends on the channel).
            force: Reinstall even if the version is already present.

        Returns:
            The install outcome.

        Raises:
            ManifestError: If the existing manifest is unreadable.
            NetworkError: If the feed cannot be read.
            ChannelNotFoundError: If the channel has no release.
            InstallError: If the SDK cannot be downloaded, extracted or
                recorded.
        """
        sdk_dir = sdk_dir or sdk_dir_for_channel(channel)
        manifest = self.read_manifest()
        release = self.resolver.resolve(channel)
        sdk = InstalledSdk(version=release.version, sdk_dir_name=sdk_dir)

        if sdk in manifest.installed_sdk_versions and not force:
            logger.info(f"Version {release.version} is already installed in '{sdk_dir}'")
            tracked = manifest.find_tracked(channel, sdk_dir)
            if tracked is None or release.version not in tracked.installed_sdk_versions:
                manifest = manifest.add_sdk(sdk, channel)
                self.save(manifest)
            return InstallResult(
                status=InstallStatus.ALREADY_INSTALLED,
                version=release.version,
                sdk_dir=sdk_dir,
                manifest=manifest,
            )

        self.download_sdk(release.download_url, sdk_dir)

        manifest = manifest.add_sdk(sdk, channel)
        self.save(manifest)
        logger.info(f"Installed SDK {release.version} into '{sdk_dir}'")

        if manifest.current_sdk_dir == sdk_dir:
            self.make_current(sdk_dir)

        return InstallResult(
            status=InstallStatus.INSTALLED,
            version=release.version,
            sdk_dir=sdk_dir,
            manifest=manifest,
        )

    def download_sdk(self, url: str, sdk_dir: SdkDirName) -> Path:
        """Download an SDK archive and merge it into an SDK directory.

        Args:
            url: The SDK archive URL.
            sdk_dir: The destination SDK directory.

        Returns:
            The SDK install directory.

        Raises:
            InstallError: If downloading, extracting or moving fails.
        """
        install_dir = self.options.sdk_install_dir(sdk_dir)
        try:
            with tempfile.TemporaryDirectory(prefix="dnvm-") as work_dir:
                extracted = self.fetcher.fetch(url, Path(work_dir))
                merge_tree(extracted, install_dir)
        except FetchError as e:
            raise InstallError(str(e)) from e
        except OSError as e:
            raise InstallError(f"Could not install SDK into {install_dir}: {e}") from e

        dotnet_exe = install_dir / f"dotnet{exe_suffix()}"
        if not dotnet_exe.exists():
            logger.warning(f"SDK archive did not contain {dotnet_exe.name}")
        return install_dir

    def select(self, sdk_dir: SdkDirName) -> Manifest:
        """Make an SDK directory current.

        Args:
            sdk_dir: Directory to select; must hold an installed SDK.

        Returns:
            The updated manifest.

        Raises:
            ManifestError: If the manifest is unreadable.
            ValueError: If no SDK is installed in the directory.
            InstallError: If the manifest or the link cannot be written.
        """
        manifest = self.read_manifest().with_current_sdk_dir(sdk_dir)
        self.save(manifest)
        self.make_current(sdk_dir)
        return manifest

    def find_updates(self, manifest: Manifest) -> UpdateCheck:
        """Check every tracked channel for a newer SDK.

        A channel the feed currently has no release for is skipped and
        reported in ``unavailable``; the other channels are still checked.

        Args:
            manifest: The current manifest.

        Returns:
            The channels with a newer SDK and the channels that were skipped.

        Raises:
            NetworkError: If the feed cannot be read.
        """
        check = UpdateCheck()
        for tracked in manifest.tracked_channels:
            channel = tracked.channel_name
            try:
                release = self.resolver.resolve(channel)
            except ChannelNotFoundError as e:
                logger.warning(f"Skipping channel '{channel}': {e}")
                check.unavailable.append(channel)
                continue
            installed = tracked.installed_sdk_versions
            if not installed or release.version > max(installed):
                check.updates.append((channel, tracked.sdk_dir_name, release.version))
        return check
