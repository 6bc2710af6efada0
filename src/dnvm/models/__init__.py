"""dnvm data models."""

from dnvm.models.channel import (
    FIXED_CHANNELS,
    Channel,
    DeserializeError,
    Latest,
    Lts,
    Preview,
    Sts,
    Versioned,
    describe_channel,
    parse_channel,
)
from dnvm.models.manifest import (
    DEFAULT_SDK_DIR,
    MANIFEST_VERSION,
    CorruptManifestError,
    InstalledSdk,
    InvalidSchemaError,
    Manifest,
    ManifestError,
    ManifestNotFoundError,
    SdkDirName,
    TrackedChannel,
    parse_manifest,
    read_manifest,
    read_manifest_or_empty,
    save_manifest,
)
from dnvm.models.options import GlobalOptions
from dnvm.models.releases import DnvmRelease, DnvmReleases, ReleaseIndex, ReleaseLine
from dnvm.models.version import SemVer

__all__ = [
    "DEFAULT_SDK_DIR",
    "FIXED_CHANNELS",
    "MANIFEST_VERSION",
    "Channel",
    "CorruptManifestError",
    "DeserializeError",
    "DnvmRelease",
    "DnvmReleases",
    "GlobalOptions",
    "InstalledSdk",
    "InvalidSchemaError",
    "Latest",
    "Lts",
    "Manifest",
    "ManifestError",
    "ManifestNotFoundError",
    "Preview",
    "ReleaseIndex",
    "ReleaseLine",
    "SdkDirName",
    "SemVer",
    "Sts",
    "TrackedChannel",
    "Versioned",
    "describe_channel",
    "parse_channel",
    "parse_manifest",
    "read_manifest",
    "read_manifest_or_empty",
    "save_manifest",
]
