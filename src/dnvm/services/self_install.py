"""Self-install and self-update of the dnvm executable.

Fresh install copies the running executable into the dnvm home, installs a
first SDK and points the ``dotnet`` link at it. Self-update runs from a newly
downloaded copy of dnvm and swaps it in place of the installed one:

1. rename the installed binary to ``<name>.bak``
2. move the new binary to the now-vacant path
3. touch the new binary's modification time
4. delete the ``.bak`` (best effort; Windows refuses while it is running)

The installed binary is never overwritten in place, since it may be mapped
into a running process. If step 2 fails the backup is renamed back.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from enum import Enum
from pathlib import Path

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dnvm import __version__
from dnvm.models.channel import Channel
from dnvm.models.manifest import DEFAULT_SDK_DIR, ManifestNotFoundError, SdkDirName, read_manifest
from dnvm.models.options import GlobalOptions
from dnvm.models.releases import DnvmReleases
from dnvm.models.version import SemVer
from dnvm.services.archive import ArchiveFetcher, FetchError
from dnvm.services.environment import UserEnvironment
from dnvm.services.install import InstallResult, SdkInstaller, retarget_symlink
from dnvm.utils.files import make_executable
from dnvm.utils.platform import exe_suffix, is_single_file, process_path, runtime_identifier

logger = logging.getLogger(__name__)


class SelfInstallError(Exception):
    """Exception raised when dnvm cannot install or replace its own executable."""


class AlreadyInstalledError(SelfInstallError):
    """Raised when dnvm is already installed and no force flag was given."""


class BinarySwapError(SelfInstallError):
    """Raised when the installed executable cannot be swapped for a new one.

    Attributes:
        restored: Whether the previous executable was moved back from its
            backup after the new one failed to move into place.
    """

    def __init__(self, message: str, restored: bool = False) -> None:
        super().__init__(message)
        self.restored = restored


class SelfInstallState(Enum):
    """Lifecycle of the dnvm executable in its home.

    Attributes:
        NOT_INSTALLED: No dnvm executable in the home.
        INSTALLING: The executable is being copied into the home.
        INSTALLED: An executable is in place.
        UPDATING: The installed executable is being swapped.
        ROLLED_BACK: A swap failed and the previous executable was restored.
    """

    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    UPDATING = "updating"
    ROLLED_BACK = "rolled_back"


def replace_binary(dest: Path, src: Path) -> None:
    """Swap the installed executable for a new one.

    Args:
        dest: The installed executable.
        src: The new executable; it is moved, not copied.

    Raises:
        BinarySwapError: If the installed binary cannot be moved aside or the
            new one cannot be moved into place. In the second case the backup
            is restored before raising.
    """
    backup = dest.with_name(dest.name + ".bak")
    logger.info(f"Swapping {dest} with downloaded file at {src}")

    try:
        os.replace(dest, backup)
    except OSError as e:
        raise BinarySwapError(f"Couldn't replace existing binary: {e}") from e

    try:
        shutil.move(str(src), str(dest))
    except OSError as e:
        logger.error(f"Couldn't move new binary into place, restoring {backup}")
        try:
            os.replace(backup, dest)
        except OSError as restore_error:
            raise BinarySwapError(
                f"Couldn't replace existing binary: {e}. The previous binary is at "
                f"{backup} and could not be restored: {restore_error}"
            ) from e
        raise BinarySwapError(f"Couldn't replace existing binary: {e}", restored=True) from e

    try:
        os.utime(dest)
    except OSError as e:
        logger.warning(f"Could not update the modification time of {dest}: {e}")

    try:
        backup.unlink()
    except OSError as e:
        # Windows keeps the running executable locked
        logger.warning(f"Could not remove {backup}: {e}")


class SelfInstaller(BaseModel):
    """Installs dnvm into its home and updates it in place."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    options: GlobalOptions
    installer: SdkInstaller
    environment: UserEnvironment
    exe_path: Path = Field(default_factory=process_path)
    single_file: bool = Field(default_factory=is_single_file)
    state: SelfInstallState = SelfInstallState.NOT_INSTALLED

    def model_post_init(self, __context: object) -> None:
        if self.options.dnvm_exe_path.exists():
            self.state = SelfInstallState.INSTALLED

    def _require_single_file(self) -> None:
        if not self.single_file:
            raise SelfInstallError(
                "Cannot self-install into target location: the current executable "
                "is not deployed as a single file."
            )

    def check_install_target(self, force: bool = False) -> None:
        """Refuse to install over an existing dnvm unless forced.

        Raises:
            SelfInstallError: If not running as a single-file executable.
            AlreadyInstalledError: If dnvm is installed and force is not set.
        """
        self._require_single_file()
        target = self.options.dnvm_exe_path
        if not force and target.exists():
            raise AlreadyInstalledError(
                f"dnvm is already installed at: {target}. Did you mean to run "
                "`dnvm update`? Otherwise, the '--force' flag is required to "
                "overwrite the existing file."
            )

    def install(
        self,
        channel: Channel,
        sdk_dir: SdkDirName | None = None,
        force: bool = False,
        update_user_env: bool = False,
    ) -> InstallResult:
        """Copy the running dnvm into its home and install a first SDK.

        Args:
            channel: Channel whose newest SDK is installed.
            sdk_dir: SDK directory for the install (default per channel).
            force: Overwrite an existing dnvm executable and SDK.
            update_user_env: Put dnvm on PATH and set DOTNET_ROOT.

        Returns:
            Result of the SDK install.

        Raises:
            SelfInstallError: If the executable cannot be placed.
            AlreadyInstalledError: If dnvm is installed and force is not set.
            InstallError, NetworkError, ChannelNotFoundError, ManifestError:
                If the SDK install fails.
        """
        self.check_install_target(force)
        target = self.options.dnvm_exe_path
        previous_state = self.state

        self.state = SelfInstallState.INSTALLING
        logger.info(f"Copying file from '{self.exe_path}' to '{target}'")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.exe_path, target)
            make_executable(target)
        except OSError as e:
            self.state = previous_state
            raise SelfInstallError(
                f"Could not copy file from '{self.exe_path}' to '{target}': {e}"
            ) from e
        self.state = SelfInstallState.INSTALLED

        result = self.installer.install_latest(channel, sdk_dir, force)
        manifest = result.manifest.with_current_sdk_dir(result.sdk_dir)
        if manifest.current_sdk_dir != result.manifest.current_sdk_dir:
            self.installer.save(manifest)
        self.installer.make_current(result.sdk_dir)

        if update_user_env:
            sdk_install_dir = self.options.sdk_install_dir(result.sdk_dir)
            try:
                self.environment.add_to_path(self.options.dnvm_home, sdk_install_dir)
            except OSError as e:
                raise SelfInstallError(f"Could not update the user environment: {e}") from e

        return result.model_copy(update={"manifest": manifest})

    def update(self) -> None:
        """Replace the installed dnvm with the running (downloaded) executable.

        Raises:
            SelfInstallError: If not running as a single-file executable or the
                binary swap fails.
            ManifestError: If the manifest exists but cannot be read.
        """
        self._require_single_file()

        try:
            sdk_dir = read_manifest(self.options.manifest_path).current_sdk_dir
        except ManifestNotFoundError:
            sdk_dir = DEFAULT_SDK_DIR

        previous_state = self.state
        self.state = SelfInstallState.UPDATING
        try:
            replace_binary(self.options.dnvm_exe_path, self.exe_path)
        except BinarySwapError as e:
            self.state = SelfInstallState.ROLLED_BACK if e.restored else previous_state
            raise
        self.state = SelfInstallState.INSTALLED
        logger.info("Process successfully upgraded")

        sdk_install_dir = self.options.sdk_install_dir(sdk_dir)
        logger.info(f"Retargeting symlink in {self.options.dnvm_home} to {sdk_install_dir}")
        try:
            retarget_symlink(self.options.dnvm_home, sdk_dir)
            self.environment.refresh(self.options.dnvm_home, sdk_install_dir)
        except OSError as e:
            raise SelfInstallError(
                f"dnvm was upgraded but the SDK link or environment could not be updated: {e}"
            ) from e


class SelfUpdater(BaseModel):
    """Finds, downloads and hands off to a newer dnvm release."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    releases_url: str
    fetcher: ArchiveFetcher = Field(default_factory=ArchiveFetcher)
    current_version: SemVer = Field(default_factory=lambda: SemVer.parse(__version__))
    timeout: float = 30.0

    def latest_release(self) -> DnvmReleases:
        """Fetch the dnvm release descriptor.

        Raises:
            SelfInstallError: If the descriptor cannot be fetched or parsed.
        """
        try:
            response = self.fetcher.session.get(self.releases_url, timeout=self.timeout)
            response.raise_for_status()
            return DnvmReleases.model_validate(response.json())
        except requests.RequestException as e:
            raise SelfInstallError(f"Could not fetch {self.releases_url}: {e}") from e
        except ValueError as e:
            raise SelfInstallError(f"Malformed release data at {self.releases_url}: {e}") from e

    def check(self) -> SemVer | None:
        """Return the newer published version, or None if already current."""
        latest = self.latest_release().latest_version.version
        logger.info(f"Latest dnvm version is {latest}, running {self.current_version}")
        return latest if latest > self.current_version else None

    def download(self, work_dir: Path) -> Path:
        """Download the newest dnvm build for this platform.

        Args:
            work_dir: Scratch directory for the download.

        Returns:
            Path to the staged, executable dnvm binary.

        Raises:
            SelfInstallError: If no build exists for this platform or the
                download fails.
        """
        release = self.latest_release().latest_version
        rid = runtime_identifier()
        url = release.artifacts.get(rid)
        if url is None:
            raise SelfInstallError(f"No dnvm {release.version} build available for {rid}")

        try:
            extracted = self.fetcher.fetch(url, work_dir)
        except FetchError as e:
            raise SelfInstallError(str(e)) from e

        staged = extracted / f"dnvm{exe_suffix()}"
        if not staged.is_file():
            raise SelfInstallError(f"Downloaded archive does not contain {staged.name}")
        make_executable(staged)
        return staged

    def run(self) -> int:
        """Download the newest dnvm and let it install itself.

        The staged binary is started with ``selfinstall --update`` and swaps
        itself in place of the installed dnvm.

        Returns:
            Exit code of the staged binary.

        Raises:
            SelfInstallError: If downloading or starting the new binary fails.
        """
        with tempfile.TemporaryDirectory(prefix="dnvm-update-") as work_dir:
            staged = self.download(Path(work_dir))
            logger.info(f"Running {staged} selfinstall --update")
            try:
                completed = subprocess.run([str(staged), "selfinstall", "--update"], check=False)
            except OSError as e:
                raise SelfInstallError(f"Could not start {staged}: {e}") from e
            return completed.returncode
