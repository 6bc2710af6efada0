"""User environment synchronization.

Puts the dnvm home on the user's PATH and points DOTNET_ROOT at the current
SDK directory. Two backends share one interface:

- WindowsEnvironment: persistent per-user variables in the registry
  (HKCU\\Environment). New terminals pick the changes up; running ones don't.
- ShellProfileEnvironment: Unix has no persistent user variable store, so
  dnvm writes a small ``env`` script into its home and sources it from the
  user's shell profile files.
"""

import logging
import os
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable, MutableMapping
from pathlib import Path

from dnvm.utils.files import append_file, file_contains_line, write_file

if sys.platform == "win32":
    import winreg

logger = logging.getLogger(__name__)

DOTNET_ROOT = "DOTNET_ROOT"

# Shell start-up files that receive the env sourcing line, if they exist
PROFILE_SHELL_FILES = (".profile", ".bashrc", ".zshrc")

INSTALL_LOC_TOKEN = "{install_loc}"
SDK_INSTALL_LOC_TOKEN = "{sdk_install_loc}"

ENV_SH_TEMPLATE = """#!/bin/sh
# dnvm shell setup
case ":${PATH}:" in
    *:"{install_loc}":*)
        ;;
    *)
        # Prepend dnvm so it takes precedence over system installs
        export PATH="{install_loc}:$PATH"
        ;;
esac
export DOTNET_ROOT="{sdk_install_loc}"
"""


def render_env_script(dnvm_home: Path, sdk_install_dir: Path) -> str:
    """Fill the env script template with the install and SDK locations."""
    return ENV_SH_TEMPLATE.replace(INSTALL_LOC_TOKEN, str(dnvm_home)).replace(
        SDK_INSTALL_LOC_TOKEN, str(sdk_install_dir)
    )


class UserEnvironment(ABC):
    """Read and update the user's PATH and DOTNET_ROOT."""

    # Whether the user has to open a new terminal to see changes
    restart_required: bool = False

    @abstractmethod
    def get(self, name: str) -> str | None:
        """Return the user-level value of a variable, or None if unset."""

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Set the user-level value of a variable."""

    def path_entries(self) -> list[str]:
        value = self.get("PATH") or ""
        return [p for p in value.split(os.pathsep) if p]

    def path_contains(self, path: Path | str) -> bool:
        return str(path) in self.path_entries()

    def missing_from_env(self, dnvm_home: Path, sdk_install_dir: Path) -> bool:
        """Return whether PATH or DOTNET_ROOT still needs updating.

        Args:
            dnvm_home: The dnvm home directory, expected on PATH.
            sdk_install_dir: The current SDK directory, expected in DOTNET_ROOT.
        """
        return self.get(DOTNET_ROOT) != str(sdk_install_dir) or not self.path_contains(dnvm_home)

    @abstractmethod
    def add_to_path(self, dnvm_home: Path, sdk_install_dir: Path) -> None:
        """Persistently put dnvm on PATH and set DOTNET_ROOT."""

    @abstractmethod
    def refresh(self, dnvm_home: Path, sdk_install_dir: Path) -> None:
        """Bring existing environment configuration in line after an update."""


def _registry_get(name: str) -> str | None:
    try:
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, "Environment") as key:
            value, _ = winreg.QueryValueEx(key, name)
            return str(value)
    except FileNotFoundError:
        return None


def _registry_set(name: str, value: str) -> None:
    access = winreg.KEY_READ | winreg.KEY_SET_VALUE
    with winreg.OpenKey(winreg.HKEY_CURRENT_USER, "Environment", 0, access) as key:
        reg_type = winreg.REG_EXPAND_SZ if "%" in value else winreg.REG_SZ
        winreg.SetValueEx(key, name, 0, reg_type, value)


def _system_path() -> str | None:
    key_path = r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path) as key:
            value, _ = winreg.QueryValueEx(key, "PATH")
            return str(value)
    except OSError:
        return None


class WindowsEnvironment(UserEnvironment):
    """Per-user registry variables.

    The accessors default to the registry and can be replaced, which is how
    tests exercise this backend on any platform.
    """

    restart_required = True

    def __init__(
        self,
        get_var: Callable[[str], str | None] | None = None,
        set_var: Callable[[str, str], None] | None = None,
        get_system_path: Callable[[], str | None] | None = None,
    ) -> None:
        self._get_var = get_var or _registry_get
        self._set_var = set_var or _registry_set
        self._get_system_path = get_system_path or _system_path

    def get(self, name: str) -> str | None:
        return self._get_var(name)

    def set(self, name: str, value: str) -> None:
        logger.debug(f"Setting user variable {name}={value}")
        self._set_var(name, value)

    def path_entries(self) -> list[str]:
        value = self.get("PATH") or ""
        return [p for p in value.split(";") if p]

    def dotnet_in_system_path(self) -> bool:
        """Return whether a dotnet.exe is reachable through the machine PATH."""
        system_path = self._get_system_path()
        if not system_path:
            return False
        return any(
            (Path(entry) / "dotnet.exe").is_file() for entry in system_path.split(";") if entry
        )

    def add_to_path(self, dnvm_home: Path, sdk_install_dir: Path) -> None:
        if self.dotnet_in_system_path():
            logger.warning(
                "Found 'dotnet.exe' inside the System PATH environment variable. "
                "System PATH is always preferred over user path on Windows, so the "
                "dnvm-installed dotnet.exe will not be accessible until it is removed."
            )

        if not self.path_contains(dnvm_home):
            logger.info(f"Adding install directory to user path: {dnvm_home}")
            self.set("PATH", ";".join([str(dnvm_home), *self.path_entries()]))

        logger.info(f"Setting DOTNET_ROOT: {sdk_install_dir}")
        self.set(DOTNET_ROOT, str(sdk_install_dir))

    def refresh(self, dnvm_home: Path, sdk_install_dir: Path) -> None:
        # Older installs put the SDK directory itself on PATH; the link in
        # the dnvm home replaces it.
        entries = self.path_entries()
        remaining = [p for p in entries if p != str(sdk_install_dir)]
        if remaining != entries:
            logger.info(f"Removing {sdk_install_dir} from user path")
            self.set("PATH", ";".join(remaining))
        if self.get(DOTNET_ROOT) is not None:
            self.set(DOTNET_ROOT, str(sdk_install_dir))


class ShellProfileEnvironment(UserEnvironment):
    """Environment script plus shell profile sourcing lines.

    Args:
        user_home: Home directory holding the shell profile files.
        environ: Process environment used for get/set.
    """

    def __init__(
        self,
        user_home: Path,
        environ: MutableMapping[str, str] | None = None,
    ) -> None:
        self.user_home = user_home
        self.environ = os.environ if environ is None else environ
        self.skipped_files: list[Path] = []

    def get(self, name: str) -> str | None:
        return self.environ.get(name)

    def set(self, name: str, value: str) -> None:
        self.environ[name] = value

    def write_env_file(self, dnvm_home: Path, sdk_install_dir: Path) -> Path:
        """Write the env script into the dnvm home.

        Returns:
            Path to the written script.
        """
        env_path = dnvm_home / "env"
        logger.info(f"Writing env script {env_path}")
        write_file(env_path, render_env_script(dnvm_home, sdk_install_dir))
        return env_path

    def portable_path(self, path: Path) -> str:
        """Replace the user's home directory prefix with ``$HOME``."""
        text = str(path)
        home = str(self.user_home)
        if text == home or text.startswith(home.rstrip("/") + "/"):
            return "$HOME" + text[len(home.rstrip("/")) :]
        return text

    def add_to_shell_files(self, env_path: Path) -> list[Path]:
        """Source the env script from every existing profile file.

        A file is only touched when none of its lines already sources the
        script. Files that cannot be read or written are skipped with a
        warning.

        Args:
            env_path: The env script to source.

        Returns:
            Profile files that were modified.
        """
        portable = self.portable_path(env_path)
        source_line = f'. "{portable}"'
        suffix = f'\nif [ -f "{portable}" ]; then\n    {source_line}\nfi\n'

        updated: list[Path] = []
        self.skipped_files = []
        for name in PROFILE_SHELL_FILES:
            shell_path = self.user_home / name
            if not shell_path.is_file():
                logger.debug(f"No {shell_path}, skipping")
                continue
            try:
                if file_contains_line(shell_path, source_line):
                    logger.debug(f"{shell_path} already sources {portable}")
                    continue
                logger.info(f"Adding env import to: {shell_path}")
                append_file(shell_path, suffix)
                updated.append(shell_path)
            except OSError as e:
                logger.warning(f"Couldn't write to file {shell_path}: {e}")
                self.skipped_files.append(shell_path)
        return updated

    def add_to_path(self, dnvm_home: Path, sdk_install_dir: Path) -> None:
        env_path = self.write_env_file(dnvm_home, sdk_install_dir)
        self.add_to_shell_files(env_path)

    def refresh(self, dnvm_home: Path, sdk_install_dir: Path) -> None:
        self.write_env_file(dnvm_home, sdk_install_dir)


def get_user_environment(user_home: Path) -> UserEnvironment:
    """Return the environment backend for the current platform."""
    if sys.platform == "win32":
        return WindowsEnvironment()
    return ShellProfileEnvironment(user_home)
