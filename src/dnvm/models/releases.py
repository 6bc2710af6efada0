"""Pydantic models for release feeds.

Two feeds are consumed:

- The .NET release index (``release-metadata/releases-index.json``), listing
  each release line with its newest SDK and support phase.
- The dnvm release descriptor, naming the newest dnvm build and a download
  URL per runtime identifier.
"""

from pydantic import BaseModel, ConfigDict, Field

from dnvm.models.version import SemVer


class ReleaseLine(BaseModel):
    """One release line (e.g. 8.0) in the .NET release index.

    Attributes:
        channel_version: The major.minor line, e.g. ``8.0``.
        latest_release: Newest runtime release in the line.
        latest_sdk: Newest SDK version in the line.
        release_type: ``lts`` or ``sts``.
        support_phase: ``preview``, ``go-live``, ``active``, ``maintenance``
            or ``eol``.
    """

    model_config = ConfigDict(populate_by_name=True)

    channel_version: str = Field(..., alias="channel-version")
    latest_release: str = Field(default="", alias="latest-release")
    latest_sdk: SemVer = Field(..., alias="latest-sdk")
    release_type: str = Field(..., alias="release-type")
    support_phase: str = Field(..., alias="support-phase")


class ReleaseIndex(BaseModel):
    """Root of the .NET release index."""

    model_config = ConfigDict(populate_by_name=True)

    releases: list[ReleaseLine] = Field(default_factory=list, alias="releases-index")


class DnvmRelease(BaseModel):
    """A published dnvm build.

    Attributes:
        version: The dnvm version.
        artifacts: Download URL per runtime identifier (e.g. ``linux-x64``).
    """

    model_config = ConfigDict(populate_by_name=True)

    version: SemVer
    artifacts: dict[str, str] = Field(default_factory=dict)


class DnvmReleases(BaseModel):
    """Root of the dnvm release descriptor."""

    model_config = ConfigDict(populate_by_name=True)

    latest_version: DnvmRelease = Field(..., alias="latestVersion")
