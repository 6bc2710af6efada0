"""Channel resolution against the .NET release feed.

Maps a Channel to the newest matching SDK version by reading the feed's
release index. Every call re-queries the feed.
"""

import logging

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dnvm.models.channel import Channel, Latest, Lts, Preview, Sts, Versioned
from dnvm.models.releases import ReleaseIndex, ReleaseLine
from dnvm.models.version import SemVer
from dnvm.services.archive import new_session
from dnvm.utils.platform import archive_extension, runtime_identifier

logger = logging.getLogger(__name__)

RELEASES_INDEX_PATH = "release-metadata/releases-index.json"

PREVIEW_PHASES = frozenset({"preview", "go-live"})


class NetworkError(Exception):
    """Exception raised when the feed is unreachable or returns malformed data."""


class ChannelNotFoundError(Exception):
    """Exception raised when no release line in the feed matches a channel."""


class ResolvedRelease(BaseModel):
    """The SDK a channel currently resolves to.

    Attributes:
        version: The newest matching SDK version.
        download_url: URL of the SDK archive for this platform.
    """

    version: SemVer
    download_url: str


def channel_matches(channel: Channel, line: ReleaseLine) -> bool:
    """Return whether a release line belongs to a channel.

    Args:
        channel: The channel being resolved.
        line: A release line from the index.

    Returns:
        True if the line is a candidate for the channel.
    """
    if isinstance(channel, Versioned):
        return line.channel_version == channel.display_name
    elif isinstance(channel, Lts):
        return line.release_type == "lts" and line.support_phase == "active"
    elif isinstance(channel, Sts):
        return line.release_type == "sts" and line.support_phase == "active"
    elif isinstance(channel, Latest):
        return line.support_phase == "active"
    elif isinstance(channel, Preview):
        return line.support_phase in PREVIEW_PHASES
    raise TypeError(f"Unknown channel type: {type(channel).__name__}")


def sdk_download_url(feed_url: str, version: SemVer) -> str:
    """Build the SDK archive URL for this platform."""
    rid = runtime_identifier()
    ext = archive_extension()
    return f"{feed_url}/Sdk/{version}/dotnet-sdk-{version}-{rid}.{ext}"


class ReleaseResolver(BaseModel):
    """Resolves channels to concrete SDK versions using the release feed."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    feed_url: str
    session: requests.Session = Field(default_factory=new_session)
    timeout: float = 30.0

    @field_validator("feed_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def fetch_index(self) -> ReleaseIndex:
        """Download and parse the release index.

        Returns:
            The parsed release index.

        Raises:
            NetworkError: If the request fails or the payload is malformed.
        """
        url = f"{self.feed_url}/{RELEASES_INDEX_PATH}"
        logger.info(f"Fetching release index from {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return ReleaseIndex.model_validate(response.json())
        except requests.RequestException as e:
            raise NetworkError(f"Could not fetch release index from {url}: {e}") from e
        except (ValueError, ValidationError) as e:
            raise NetworkError(f"Release index at {url} is malformed: {e}") from e

    def resolve(self, channel: Channel) -> ResolvedRelease:
        """Find the newest SDK for a channel.

        Args:
            channel: The channel to resolve.

        Returns:
            The newest matching version and its download URL.

        Raises:
            NetworkError: If the feed cannot be read.
            ChannelNotFoundError: If no release line matches the channel.
        """
        index = self.fetch_index()
        candidates = [line for line in index.releases if channel_matches(channel, line)]
        if not candidates:
            raise ChannelNotFoundError(
                f"No release found for channel '{channel}' at {self.feed_url}"
            )

        newest = max(candidates, key=lambda line: line.latest_sdk)
        logger.info(f"Channel '{channel}' resolves to SDK {newest.latest_sdk}")
        return ResolvedRelease(
            version=newest.latest_sdk,
            download_url=sdk_download_url(self.feed_url, newest.latest_sdk),
        )
