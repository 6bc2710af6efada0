"""Tests for dnvm self-install, self-update and the binary swap."""

import sys
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dnvm.models import (
    CorruptManifestError,
    GlobalOptions,
    Lts,
    Preview,
    SdkDirName,
    SemVer,
    read_manifest,
)
from dnvm.services import (
    AlreadyInstalledError,
    ArchiveFetcher,
    BinarySwapError,
    InstallError,
    SdkInstaller,
    SelfInstaller,
    SelfInstallError,
    SelfInstallState,
    SelfUpdater,
    ShellProfileEnvironment,
    replace_binary,
)
from dnvm.services.install import dotnet_link_path
from dnvm.utils import archive_extension, exe_suffix, runtime_identifier
from tests.conftest import (
    DNVM_RELEASES_URL,
    FakeFeed,
    FakeResponse,
    make_archive,
    release_line,
)

OLD_BINARY = b"dnvm-old"
NEW_BINARY = b"dnvm-new"


def _write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def environment(user_home: Path) -> ShellProfileEnvironment:
    """A shell profile environment over a scratch home and environ."""
    return ShellProfileEnvironment(user_home, environ={})


@pytest.fixture
def running_exe(tmp_path: Path) -> Path:
    """The executable dnvm is 'running' from."""
    return _write(tmp_path / "build" / f"dnvm{exe_suffix()}", OLD_BINARY)


@pytest.fixture
def self_installer(
    options: GlobalOptions,
    installer: SdkInstaller,
    environment: ShellProfileEnvironment,
    running_exe: Path,
) -> SelfInstaller:
    """A self-installer running as a single-file executable."""
    return SelfInstaller(
        options=options,
        installer=installer,
        environment=environment,
        exe_path=running_exe,
        single_file=True,
    )


class TestReplaceBinary:
    """Tests for the two-rename binary swap."""

    def test_swaps_binary(self, tmp_path: Path) -> None:
        """Test that the new binary replaces the old and the backup is removed."""
        dest = _write(tmp_path / "home" / "dnvm", OLD_BINARY)
        src = _write(tmp_path / "staged" / "dnvm", NEW_BINARY)
        started = time.time()

        replace_binary(dest, src)

        assert dest.read_bytes() == NEW_BINARY
        assert not src.exists()
        assert not dest.with_name("dnvm.bak").exists()
        assert dest.stat().st_mtime >= started - 1

    def test_first_rename_failure_leaves_everything(self, tmp_path: Path) -> None:
        """Test that a refused rename leaves the installed binary untouched."""
        dest = _write(tmp_path / "home" / "dnvm", OLD_BINARY)
        src = _write(tmp_path / "staged" / "dnvm", NEW_BINARY)

        with patch(
            "dnvm.services.self_install.os.replace", side_effect=PermissionError("denied")
        ):
            with pytest.raises(BinarySwapError, match="Couldn't replace existing binary") as exc:
                replace_binary(dest, src)

        assert not exc.value.restored
        assert dest.read_bytes() == OLD_BINARY
        assert src.read_bytes() == NEW_BINARY
        assert not dest.with_name("dnvm.bak").exists()

    def test_move_failure_restores_backup(self, tmp_path: Path) -> None:
        """Test that the old binary is restored if the new one can't be placed."""
        dest = _write(tmp_path / "home" / "dnvm", OLD_BINARY)
        src = _write(tmp_path / "staged" / "dnvm", NEW_BINARY)

        with patch("dnvm.services.self_install.shutil.move", side_effect=OSError("busy")):
            with pytest.raises(BinarySwapError, match="busy") as exc:
                replace_binary(dest, src)

        assert exc.value.restored
        assert dest.read_bytes() == OLD_BINARY
        assert not dest.with_name("dnvm.bak").exists()

    def test_timestamp_failure_is_not_fatal(self, tmp_path: Path) -> None:
        """Test that the swap completes when the mtime can't be touched."""
        dest = _write(tmp_path / "home" / "dnvm", OLD_BINARY)
        src = _write(tmp_path / "staged" / "dnvm", NEW_BINARY)

        with patch("dnvm.services.self_install.os.utime", side_effect=PermissionError("ro")):
            replace_binary(dest, src)

        assert dest.read_bytes() == NEW_BINARY
        assert not dest.with_name("dnvm.bak").exists()

    def test_backup_removal_failure_is_not_fatal(self, tmp_path: Path) -> None:
        """Test that a locked backup is left behind without failing the swap."""
        dest = _write(tmp_path / "home" / "dnvm", OLD_BINARY)
        src = _write(tmp_path / "staged" / "dnvm", NEW_BINARY)

        with patch.object(Path, "unlink", side_effect=PermissionError("in use")):
            replace_binary(dest, src)

        assert dest.read_bytes() == NEW_BINARY
        assert dest.with_name("dnvm.bak").read_bytes() == OLD_BINARY


class TestSelfInstall:
    """Tests for SelfInstaller.install."""

    def test_starts_not_installed(self, self_installer: SelfInstaller) -> None:
        """Test the initial state of an empty home."""
        assert self_installer.state == SelfInstallState.NOT_INSTALLED

    def test_fresh_install(self, self_installer: SelfInstaller, options: GlobalOptions) -> None:
        """Test copying dnvm and installing a first SDK."""
        result = self_installer.install(Lts())

        assert self_installer.state == SelfInstallState.INSTALLED
        assert options.dnvm_exe_path.read_bytes() == OLD_BINARY
        assert result.version == SemVer.parse("8.0.100")
        manifest = read_manifest(options.manifest_path)
        assert [str(t.channel_name) for t in manifest.tracked_channels] == ["lts"]

    @pytest.mark.skipif(sys.platform == "win32", reason="Unix permissions and symlinks")
    def test_fresh_install_is_executable_and_linked(
        self, self_installer: SelfInstaller, options: GlobalOptions
    ) -> None:
        """Test that the copied binary is executable and dotnet is linked."""
        self_installer.install(Lts())

        assert options.dnvm_exe_path.stat().st_mode & 0o100
        assert (options.dnvm_home / "dotnet").is_symlink()

    def test_refuses_non_single_file(
        self, self_installer: SelfInstaller, options: GlobalOptions
    ) -> None:
        """Test that only a single-file executable can install itself."""
        self_installer.single_file = False

        with pytest.raises(SelfInstallError, match="single file"):
            self_installer.install(Lts())

        assert not options.dnvm_exe_path.exists()
        assert not options.manifest_path.exists()

    def test_refuses_existing_install(
        self, self_installer: SelfInstaller, options: GlobalOptions
    ) -> None:
        """Test that an existing dnvm is not overwritten without force."""
        _write(options.dnvm_exe_path, b"existing")

        with pytest.raises(AlreadyInstalledError, match="dnvm update"):
            self_installer.install(Lts())

        assert options.dnvm_exe_path.read_bytes() == b"existing"

    def test_force_overwrites(self, self_installer: SelfInstaller, options: GlobalOptions) -> None:
        """Test that force replaces an existing dnvm."""
        _write(options.dnvm_exe_path, b"existing")

        self_installer.install(Lts(), force=True)

        assert options.dnvm_exe_path.read_bytes() == OLD_BINARY

    def test_copy_failure(self, self_installer: SelfInstaller, options: GlobalOptions) -> None:
        """Test that a failed copy raises SelfInstallError and restores the state."""
        with patch("dnvm.services.self_install.shutil.copy2", side_effect=OSError("no space")):
            with pytest.raises(SelfInstallError, match="no space"):
                self_installer.install(Lts())

        assert self_installer.state == SelfInstallState.NOT_INSTALLED
        assert not options.manifest_path.exists()

    def test_updates_user_environment(
        self,
        self_installer: SelfInstaller,
        options: GlobalOptions,
        user_home: Path,
    ) -> None:
        """Test that requesting environment updates writes the env script."""
        bashrc = _write(user_home / ".bashrc", b"# bashrc\n")

        self_installer.install(Lts(), update_user_env=True)

        env_script = options.env_path.read_text(encoding="utf-8")
        assert str(options.sdk_install_dir("dn")) in env_script
        assert f'. "{options.env_path}"' in bashrc.read_text(encoding="utf-8")

    def test_leaves_environment_alone_by_default(
        self, self_installer: SelfInstaller, options: GlobalOptions
    ) -> None:
        """Test that no env script is written unless asked."""
        self_installer.install(Lts())
        assert not options.env_path.exists()

    def test_reinstall_selects_new_sdk_dir(
        self, self_installer: SelfInstaller, options: GlobalOptions, feed: FakeFeed
    ) -> None:
        """Test that a forced reinstall makes the newly installed SDK current."""
        feed.set_releases(
            [release_line("8.0.100"), release_line("9.0.100-rc.1.24452.12", "sts", "preview")]
        )
        self_installer.install(Lts())

        result = self_installer.install(Preview(), force=True)

        assert result.sdk_dir == SdkDirName("preview")
        assert result.manifest.current_sdk_dir == SdkDirName("preview")
        assert read_manifest(options.manifest_path).current_sdk_dir == SdkDirName("preview")
        link = dotnet_link_path(options.dnvm_home)
        assert str(options.dnvm_home / "preview" / "dotnet") in (
            link.read_text(encoding="utf-8") if sys.platform == "win32" else str(link.readlink())
        )

    def test_manifest_write_failure(
        self, self_installer: SelfInstaller, options: GlobalOptions
    ) -> None:
        """Test that a full disk while saving the manifest raises InstallError."""
        with patch(
            "dnvm.models.manifest.os.replace", side_effect=OSError(28, "No space left on device")
        ):
            with pytest.raises(InstallError, match="No space left on device"):
                self_installer.install(Lts())

        assert not options.manifest_path.exists()


class TestSelfUpdate:
    """Tests for SelfInstaller.update."""

    @pytest.fixture
    def staged(self, tmp_path: Path) -> Path:
        """A newly downloaded dnvm binary."""
        return _write(tmp_path / "staged" / f"dnvm{exe_suffix()}", NEW_BINARY)

    @pytest.fixture
    def updater(
        self,
        options: GlobalOptions,
        installer: SdkInstaller,
        environment: ShellProfileEnvironment,
        self_installer: SelfInstaller,
        staged: Path,
    ) -> SelfInstaller:
        """A controller running from the staged binary over an installed dnvm."""
        self_installer.install(Lts())
        return SelfInstaller(
            options=options,
            installer=installer,
            environment=environment,
            exe_path=staged,
            single_file=True,
        )

    def test_replaces_installed_binary(
        self, updater: SelfInstaller, options: GlobalOptions, staged: Path
    ) -> None:
        """Test that update swaps in the running binary and refreshes the env."""
        assert updater.state == SelfInstallState.INSTALLED

        updater.update()

        assert updater.state == SelfInstallState.INSTALLED
        assert options.dnvm_exe_path.read_bytes() == NEW_BINARY
        assert not staged.exists()
        assert str(options.sdk_install_dir("dn")) in options.env_path.read_text(encoding="utf-8")

    def test_failed_swap_rolls_back(
        self, updater: SelfInstaller, options: GlobalOptions, staged: Path
    ) -> None:
        """Test that a failed move leaves the old binary in place."""
        with patch("dnvm.services.self_install.shutil.move", side_effect=OSError("busy")):
            with pytest.raises(SelfInstallError):
                updater.update()

        assert updater.state == SelfInstallState.ROLLED_BACK
        assert options.dnvm_exe_path.read_bytes() == OLD_BINARY
        assert staged.read_bytes() == NEW_BINARY

    def test_refused_backup_is_not_a_rollback(
        self, updater: SelfInstaller, options: GlobalOptions, staged: Path
    ) -> None:
        """Test that failing to move the installed binary aside changes nothing."""
        with patch(
            "dnvm.services.self_install.os.replace", side_effect=PermissionError("denied")
        ):
            with pytest.raises(BinarySwapError):
                updater.update()

        assert updater.state == SelfInstallState.INSTALLED
        assert options.dnvm_exe_path.read_bytes() == OLD_BINARY
        assert staged.read_bytes() == NEW_BINARY

    def test_missing_manifest_uses_default_dir(
        self,
        options: GlobalOptions,
        installer: SdkInstaller,
        environment: ShellProfileEnvironment,
        staged: Path,
    ) -> None:
        """Test updating a dnvm that has never installed an SDK."""
        _write(options.dnvm_exe_path, OLD_BINARY)
        controller = SelfInstaller(
            options=options,
            installer=installer,
            environment=environment,
            exe_path=staged,
            single_file=True,
        )

        controller.update()

        assert options.dnvm_exe_path.read_bytes() == NEW_BINARY
        assert str(options.sdk_install_dir("dn")) in options.env_path.read_text(encoding="utf-8")

    def test_corrupt_manifest_aborts_update(
        self, updater: SelfInstaller, options: GlobalOptions
    ) -> None:
        """Test that an unreadable manifest stops the update before the swap."""
        options.manifest_path.write_text("[]", encoding="utf-8")

        with pytest.raises(CorruptManifestError):
            updater.update()

        assert options.dnvm_exe_path.read_bytes() == OLD_BINARY

    def test_refuses_non_single_file(self, updater: SelfInstaller, options: GlobalOptions) -> None:
        """Test that update also requires a single-file executable."""
        updater.single_file = False
        with pytest.raises(SelfInstallError, match="single file"):
            updater.update()
        assert options.dnvm_exe_path.read_bytes() == OLD_BINARY


class TestSelfUpdater:
    """Tests for finding and staging newer dnvm releases."""

    @pytest.fixture
    def feed(self) -> FakeFeed:
        """A feed publishing dnvm 99.0.0 for this platform."""
        fake = FakeFeed()
        url = f"https://feed.test/dnvm/dnvm-99.0.0-{runtime_identifier()}.{archive_extension()}"
        fake.routes[DNVM_RELEASES_URL] = FakeResponse(
            payload={
                "latestVersion": {
                    "version": "99.0.0",
                    "artifacts": {runtime_identifier(): url},
                }
            }
        )
        fake.routes[url] = FakeResponse(
            content=make_archive({f"dnvm{exe_suffix()}": NEW_BINARY})
        )
        return fake

    def _updater(self, feed: FakeFeed, current: str = "0.6.0") -> SelfUpdater:
        return SelfUpdater(
            releases_url=DNVM_RELEASES_URL,
            fetcher=ArchiveFetcher(session=feed),
            current_version=SemVer.parse(current),
        )

    def test_check_finds_newer(self, feed: FakeFeed) -> None:
        """Test that a newer published version is reported."""
        assert self._updater(feed).check() == SemVer.parse("99.0.0")

    def test_check_up_to_date(self, feed: FakeFeed) -> None:
        """Test that the same version reports nothing to do."""
        assert self._updater(feed, "99.0.0").check() is None

    def test_download_stages_binary(self, feed: FakeFeed, tmp_path: Path) -> None:
        """Test that the platform artifact is downloaded and unpacked."""
        staged = self._updater(feed).download(tmp_path)
        assert staged.read_bytes() == NEW_BINARY

    def test_missing_platform_artifact(self, tmp_path: Path) -> None:
        """Test that a release without this platform's build is refused."""
        feed = FakeFeed()
        feed.routes[DNVM_RELEASES_URL] = FakeResponse(
            payload={"latestVersion": {"version": "99.0.0", "artifacts": {}}}
        )
        with pytest.raises(SelfInstallError, match="No dnvm 99.0.0 build"):
            self._updater(feed).download(tmp_path)

    def test_unreachable_descriptor(self) -> None:
        """Test that a missing descriptor is a SelfInstallError."""
        with pytest.raises(SelfInstallError, match="Could not fetch"):
            self._updater(FakeFeed()).check()

    def test_malformed_descriptor(self) -> None:
        """Test that a descriptor without latestVersion is rejected."""
        feed = FakeFeed()
        feed.routes[DNVM_RELEASES_URL] = FakeResponse(payload={"versions": []})
        with pytest.raises(SelfInstallError, match="Malformed"):
            self._updater(feed).check()

    def test_run_hands_off_to_new_binary(self, feed: FakeFeed) -> None:
        """Test that the staged binary is started in update mode."""
        with patch(
            "dnvm.services.self_install.subprocess.run",
            return_value=MagicMock(returncode=0),
        ) as run:
            assert self._updater(feed).run() == 0

        args = run.call_args.args[0]
        assert Path(args[0]).name == f"dnvm{exe_suffix()}"
        assert args[1:] == ["selfinstall", "--update"]
