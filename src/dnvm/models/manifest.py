"""Pydantic models for the dnvm manifest.

The manifest (``dnvmManifest.json`` in the dnvm home) is the single record of
which SDKs are installed, which channels are tracked, and which SDK directory
is current.

Manifest versions:
- Version 1 (legacy, no ``version`` key): flat ``installedVersions`` list;
  every SDK lived in the default ``dn`` directory
- Version 2: installed SDKs and tracked channels carry an ``sdkDirName``
- Version 3 (current): adds ``currentSdkDir``

Older versions are upgraded in memory, one version at a time, before the
manifest is used. Writing always emits the current version.
"""

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    GetCoreSchemaHandler,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import core_schema

from dnvm.models.channel import Channel, ChannelField, DeserializeError
from dnvm.models.version import SemVer

logger = logging.getLogger(__name__)

# Current manifest version (adds currentSdkDir)
MANIFEST_VERSION = 3

MANIFEST_FILENAME = "dnvmManifest.json"


class ManifestError(Exception):
    """Base exception for manifest read failures."""


class ManifestNotFoundError(ManifestError):
    """Raised when no manifest file exists yet.

    Callers treat this as an empty installation, not as a failure.
    """


class InvalidSchemaError(ManifestError, DeserializeError):
    """Raised when the manifest declares an unknown or future schema version."""


class CorruptManifestError(ManifestError):
    """Raised when the manifest exists but cannot be parsed or is inconsistent."""


class SdkDirName(str):
    """Name of an SDK directory directly under the dnvm home.

    A single path component: not empty, not ``.`` or ``..``, and free of
    path separators.
    """

    def __new__(cls, value: str) -> "SdkDirName":
        name = str(value).strip()
        if not name or name in {".", ".."} or any(ch in name for ch in ("/", "\\", "\0")):
            raise ValueError(f"Invalid SDK directory name: {value!r}")
        return super().__new__(cls, name)

    @property
    def name(self) -> str:
        return str(self)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.str_schema(),
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )


DEFAULT_SDK_DIR = SdkDirName("dn")


def _unique(items: tuple) -> tuple:
    return tuple(dict.fromkeys(items))


class InstalledSdk(BaseModel):
    """One concretely installed SDK build.

    Attributes:
        version: The SDK version.
        sdk_dir_name: SDK directory holding the installation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: SemVer = Field(..., description="Installed SDK version")
    sdk_dir_name: SdkDirName = Field(
        default=DEFAULT_SDK_DIR,
        alias="sdkDirName",
        description="SDK directory holding the installation",
    )


class TrackedChannel(BaseModel):
    """A channel followed by dnvm, and the SDKs installed through it.

    Attributes:
        channel_name: The tracked channel.
        sdk_dir_name: SDK directory the channel installs into.
        installed_sdk_versions: Versions installed through this channel, in
            install order and without duplicates.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    channel_name: ChannelField = Field(..., alias="channelName")
    sdk_dir_name: SdkDirName = Field(default=DEFAULT_SDK_DIR, alias="sdkDirName")
    installed_sdk_versions: tuple[SemVer, ...] = Field(
        default=(),
        alias="installedSdkVersions",
    )

    @field_validator("installed_sdk_versions")
    @classmethod
    def _dedupe_versions(cls, versions: tuple[SemVer, ...]) -> tuple[SemVer, ...]:
        return _unique(versions)


class TrackedChannelV1(BaseModel):
    """Tracked channel entry of a version 1 manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    channel_name: ChannelField = Field(..., alias="channelName")
    installed_sdk_versions: tuple[SemVer, ...] = Field(
        default=(), alias="installedSdkVersions"
    )


class ManifestV1(BaseModel):
    """Version 1 manifest: a flat list of versions in the default directory."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: Literal[1] = 1
    installed_versions: tuple[SemVer, ...] = Field(default=(), alias="installedVersions")
    tracked_channels: tuple[TrackedChannelV1, ...] = Field(
        default=(), alias="trackedChannels"
    )


class ManifestV2(BaseModel):
    """Version 2 manifest: SDKs and channels carry their directory."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: Literal[2] = 2
    installed_sdk_versions: tuple[InstalledSdk, ...] = Field(
        default=(), alias="installedSdkVersions"
    )
    tracked_channels: tuple[TrackedChannel, ...] = Field(default=(), alias="trackedChannels")


class Manifest(BaseModel):
    """Current (version 3) manifest.

    Attributes:
        version: Manifest format version.
        installed_sdk_versions: Every installed SDK, unique by version and
            directory.
        tracked_channels: Channels being followed, unique by channel and
            directory.
        current_sdk_dir: SDK directory the ``dotnet`` link points at.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: Literal[3] = Field(default=MANIFEST_VERSION, description="Manifest format version")
    installed_sdk_versions: tuple[InstalledSdk, ...] = Field(
        default=(),
        alias="installedSdkVersions",
        description="Every installed SDK",
    )
    tracked_channels: tuple[TrackedChannel, ...] = Field(
        default=(),
        alias="trackedChannels",
        description="Channels being followed",
    )
    current_sdk_dir: SdkDirName = Field(
        default=DEFAULT_SDK_DIR,
        alias="currentSdkDir",
        description="SDK directory the dotnet link points at",
    )

    @model_validator(mode="after")
    def _check_invariants(self) -> "Manifest":
        if len(set(self.installed_sdk_versions)) != len(self.installed_sdk_versions):
            raise ValueError("installedSdkVersions contains duplicate entries")

        seen: set[tuple[Channel, SdkDirName]] = set()
        for tracked in self.tracked_channels:
            key = (tracked.channel_name, tracked.sdk_dir_name)
            if key in seen:
                raise ValueError(
                    f"Channel '{tracked.channel_name}' is tracked more than once "
                    f"in directory '{tracked.sdk_dir_name}'"
                )
            seen.add(key)
            for version in tracked.installed_sdk_versions:
                sdk = InstalledSdk(version=version, sdk_dir_name=tracked.sdk_dir_name)
                if sdk not in self.installed_sdk_versions:
                    raise ValueError(
                        f"Channel '{tracked.channel_name}' lists version {version} which is "
                        f"not installed in '{tracked.sdk_dir_name}'"
                    )

        if self.installed_sdk_versions and self.current_sdk_dir not in self.sdk_dirs():
            raise ValueError(
                f"Current SDK directory '{self.current_sdk_dir}' contains no installed SDK"
            )
        return self

    def sdk_dirs(self) -> list[SdkDirName]:
        """Return the SDK directories that hold at least one installed SDK.

        Returns:
            Directory names in first-install order.
        """
        return list(_unique(tuple(sdk.sdk_dir_name for sdk in self.installed_sdk_versions)))

    def find_tracked(self, channel: Channel, sdk_dir: SdkDirName) -> TrackedChannel | None:
        """Return the tracked entry for a channel and directory, if any."""
        for tracked in self.tracked_channels:
            if tracked.channel_name == channel and tracked.sdk_dir_name == sdk_dir:
                return tracked
        return None

    def add_sdk(self, sdk: InstalledSdk, channel: Channel | None = None) -> "Manifest":
        """Return a new manifest with an SDK registered.

        The SDK is appended to the installed list if absent. When a channel is
        given, the version is also appended to that channel's entry for the
        SDK's directory, creating the entry on first install. If the current
        SDK directory holds no SDK yet, the SDK's directory becomes current.

        Args:
            sdk: The installed SDK to register.
            channel: The channel the SDK was installed through, if any.

        Returns:
            The updated manifest. This manifest is left unchanged.
        """
        installed = self.installed_sdk_versions
        if sdk not in installed:
            installed = (*installed, sdk)

        tracked_channels = self.tracked_channels
        if channel is not None:
            existing = self.find_tracked(channel, sdk.sdk_dir_name)
            if existing is None:
                tracked_channels = (
                    *tracked_channels,
                    TrackedChannel(
                        channel_name=channel,
                        sdk_dir_name=sdk.sdk_dir_name,
                        installed_sdk_versions=(sdk.version,),
                    ),
                )
            else:
                updated = TrackedChannel(
                    channel_name=existing.channel_name,
                    sdk_dir_name=existing.sdk_dir_name,
                    installed_sdk_versions=(*existing.installed_sdk_versions, sdk.version),
                )
                tracked_channels = tuple(
                    updated if t is existing else t for t in tracked_channels
                )

        current = self.current_sdk_dir
        if current not in self.sdk_dirs():
            current = sdk.sdk_dir_name

        return Manifest(
            installed_sdk_versions=installed,
            tracked_channels=tracked_channels,
            current_sdk_dir=current,
        )

    def with_current_sdk_dir(self, sdk_dir: SdkDirName) -> "Manifest":
        """Return a new manifest with a different current SDK directory.

        Raises:
            ValueError: If the directory holds no installed SDK.
        """
        if sdk_dir not in self.sdk_dirs():
            raise ValueError(f"No SDK is installed in '{sdk_dir}'")
        return Manifest(
            installed_sdk_versions=self.installed_sdk_versions,
            tracked_channels=self.tracked_channels,
            current_sdk_dir=sdk_dir,
        )


def _upgrade_v1(old: ManifestV1) -> ManifestV2:
    return ManifestV2(
        installed_sdk_versions=tuple(
            InstalledSdk(version=v, sdk_dir_name=DEFAULT_SDK_DIR)
            for v in _unique(old.installed_versions)
        ),
        tracked_channels=tuple(
            TrackedChannel(
                channel_name=t.channel_name,
                sdk_dir_name=DEFAULT_SDK_DIR,
                installed_sdk_versions=t.installed_sdk_versions,
            )
            for t in old.tracked_channels
        ),
    )


def _upgrade_v2(old: ManifestV2) -> Manifest:
    dirs = [sdk.sdk_dir_name for sdk in old.installed_sdk_versions]
    current = DEFAULT_SDK_DIR if not dirs or DEFAULT_SDK_DIR in dirs else dirs[0]
    return Manifest(
        installed_sdk_versions=old.installed_sdk_versions,
        tracked_channels=old.tracked_channels,
        current_sdk_dir=current,
    )


# Schema model for each known version
_SCHEMAS: dict[int, type[BaseModel]] = {
    1: ManifestV1,
    2: ManifestV2,
    MANIFEST_VERSION: Manifest,
}

# Upgrade step from each old version to the next one
_UPGRADES: dict[int, Callable[[Any], BaseModel]] = {
    1: _upgrade_v1,
    2: _upgrade_v2,
}


def parse_manifest(content: str) -> Manifest:
    """Parse manifest JSON of any known version into the current model.

    Args:
        content: Raw manifest file contents.

    Returns:
        The manifest, upgraded to the current version.

    Raises:
        InvalidSchemaError: If the version tag is unknown or newer than
            this dnvm understands.
        CorruptManifestError: If the content is not valid JSON, does not
            match its declared schema, or violates a manifest invariant.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise CorruptManifestError(f"Manifest is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise CorruptManifestError("Manifest root must be a JSON object")

    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise InvalidSchemaError(f"Manifest version must be an integer, got {version!r}")
    if version not in _SCHEMAS:
        raise InvalidSchemaError(
            f"Unsupported manifest version {version} (this dnvm reads up to {MANIFEST_VERSION})"
        )

    try:
        model = _SCHEMAS[version].model_validate(data)
        while version < MANIFEST_VERSION:
            logger.debug(f"Upgrading manifest from version {version}")
            model = _UPGRADES[version](model)
            version += 1
    except ValidationError as e:
        raise CorruptManifestError(f"Manifest is invalid: {e}") from e

    assert isinstance(model, Manifest)
    return model


def read_manifest(path: Path) -> Manifest:
    """Read a manifest file (any version) and return the current model.

    Args:
        path: Path to dnvmManifest.json.

    Returns:
        The manifest, upgraded to the current version.

    Raises:
        ManifestNotFoundError: If the file does not exist.
        InvalidSchemaError: If the schema version is not recognized.
        CorruptManifestError: If the file cannot be read or parsed.
    """
    if not path.exists():
        raise ManifestNotFoundError(f"No manifest at {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CorruptManifestError(f"Could not read manifest {path}: {e}") from e

    return parse_manifest(content)


def read_manifest_or_empty(path: Path) -> Manifest:
    """Read a manifest, returning an empty one if none exists yet.

    Raises:
        InvalidSchemaError: If the schema version is not recognized.
        CorruptManifestError: If the file exists but cannot be read or parsed.
    """
    try:
        return read_manifest(path)
    except ManifestNotFoundError:
        logger.debug(f"No manifest at {path}, starting from an empty manifest")
        return Manifest()


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Atomically write a manifest in the current schema.

    The JSON is written and flushed to a ``.tmp`` sibling which is then
    renamed over the target, so readers see either the old or the new
    manifest and never a partial one.

    Args:
        manifest: Manifest model to save.
        path: Path to write the file to.
    """
    content = manifest.model_dump_json(indent=2, by_alias=True)
    tmp_path = path.with_name(path.name + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            f.write(content + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
