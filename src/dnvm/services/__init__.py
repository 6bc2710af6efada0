"""dnvm services."""

from dnvm.services.archive import ArchiveFetcher, FetchError, new_session
from dnvm.services.environment import (
    ShellProfileEnvironment,
    UserEnvironment,
    WindowsEnvironment,
    get_user_environment,
)
from dnvm.services.install import (
    InstallError,
    InstallResult,
    InstallStatus,
    SdkInstaller,
    UpdateCheck,
    retarget_symlink,
    sdk_dir_for_channel,
)
from dnvm.services.releases import (
    ChannelNotFoundError,
    NetworkError,
    ReleaseResolver,
    ResolvedRelease,
)
from dnvm.services.self_install import (
    AlreadyInstalledError,
    BinarySwapError,
    SelfInstaller,
    SelfInstallError,
    SelfInstallState,
    SelfUpdater,
    replace_binary,
)

__all__ = [
    "AlreadyInstalledError",
    "ArchiveFetcher",
    "BinarySwapError",
    "ChannelNotFoundError",
    "FetchError",
    "InstallError",
    "InstallResult",
    "InstallStatus",
    "NetworkError",
    "ReleaseResolver",
    "ResolvedRelease",
    "SdkInstaller",
    "SelfInstallError",
    "SelfInstallState",
    "SelfInstaller",
    "SelfUpdater",
    "ShellProfileEnvironment",
    "UpdateCheck",
    "UserEnvironment",
    "WindowsEnvironment",
    "get_user_environment",
    "new_session",
    "replace_binary",
    "retarget_symlink",
    "sdk_dir_for_channel",
]
