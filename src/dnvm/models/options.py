"""Global configuration for dnvm.

Resolves the dnvm home (where the manifest, the dnvm executable and the SDK
directories live), the user's home directory, and the feed URLs.
"""

import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from dnvm.models.manifest import MANIFEST_FILENAME
from dnvm.utils.platform import exe_suffix

DOTNET_FEED_URL = "https://dotnetcli.azureedge.net/dotnet"
DNVM_RELEASES_URL = "https://commentout.com/dnvm/releases.json"

ENV_FILENAME = "env"


def default_dnvm_home() -> Path:
    """Return the platform default dnvm home directory.

    Uses ``%LOCALAPPDATA%\\dnvm`` on Windows and ``$XDG_DATA_HOME/dnvm``
    (falling back to ``~/.local/share/dnvm``) elsewhere.
    """
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / "dnvm"
    base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / "dnvm"


class GlobalOptions(BaseModel):
    """Locations and endpoints shared by every command.

    Attributes:
        dnvm_home: Directory holding the manifest, dnvm and the SDKs.
        user_home: The user's home directory (for shell profile files).
        feed_url: Base URL of the .NET release feed.
        dnvm_releases_url: URL of the dnvm release descriptor.
    """

    model_config = ConfigDict(frozen=True)

    dnvm_home: Path = Field(default_factory=default_dnvm_home)
    user_home: Path = Field(default_factory=Path.home)
    feed_url: str = DOTNET_FEED_URL
    dnvm_releases_url: str = DNVM_RELEASES_URL

    @classmethod
    def from_environment(cls) -> "GlobalOptions":
        """Build options, honoring ``DNVM_HOME`` and ``DNVM_FEED_URL``."""
        overrides: dict[str, object] = {}
        home = os.environ.get("DNVM_HOME", "").strip()
        if home:
            overrides["dnvm_home"] = Path(home)
        feed = os.environ.get("DNVM_FEED_URL", "").strip()
        if feed:
            overrides["feed_url"] = feed
        return cls(**overrides)

    @property
    def manifest_path(self) -> Path:
        return self.dnvm_home / MANIFEST_FILENAME

    @property
    def env_path(self) -> Path:
        return self.dnvm_home / ENV_FILENAME

    @property
    def dnvm_exe_path(self) -> Path:
        return self.dnvm_home / f"dnvm{exe_suffix()}"

    def sdk_install_dir(self, sdk_dir: str) -> Path:
        """Return the absolute path of an SDK directory."""
        return self.dnvm_home / sdk_dir
