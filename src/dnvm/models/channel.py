"""Release channel models.

A channel names a release track that resolves to a concrete SDK version
at install time. The set of channels is closed:

- ``Versioned``: an exact ``major.minor`` release line (e.g. ``8.0``)
- ``Lts``: the newest Long-Term Support release
- ``Sts``: the newest Standard-Term Support release
- ``Latest``: the newest supported release from either LTS or STS
- ``Preview``: the newest preview release

Channels are stored as lowercase strings (``"lts"``, ``"8.0"``).
"""

from typing import Annotated, Any, assert_never

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator


class DeserializeError(ValueError):
    """Exception raised when stored or user-supplied data cannot be decoded.

    Raised for malformed channel strings and for unrecognized manifest
    schema versions.
    """


class Channel(BaseModel):
    """Base class for all release channels."""

    model_config = ConfigDict(frozen=True)

    @property
    def display_name(self) -> str:
        """Human-readable channel name used in prompts and tables."""
        raise NotImplementedError

    def __str__(self) -> str:
        return self.display_name.lower()


class Versioned(Channel):
    """A major.minor release line, e.g. 8.0."""

    major: int = Field(..., ge=0)
    minor: int = Field(..., ge=0)

    @property
    def display_name(self) -> str:
        return f"{self.major}.{self.minor}"


class Lts(Channel):
    """Newest Long-Term Support release."""

    @property
    def display_name(self) -> str:
        return "LTS"


class Sts(Channel):
    """Newest Standard-Term Support release."""

    @property
    def display_name(self) -> str:
        return "STS"


class Latest(Channel):
    """Newest supported release from either the LTS or STS channels."""

    @property
    def display_name(self) -> str:
        return "Latest"


class Preview(Channel):
    """Newest preview release."""

    @property
    def display_name(self) -> str:
        return "Preview"


# Order used when offering channels interactively
FIXED_CHANNELS: tuple[Channel, ...] = (Latest(), Lts(), Sts(), Preview())

_TOKENS: dict[str, Channel] = {str(c): c for c in FIXED_CHANNELS}


def parse_channel(value: str) -> Channel:
    """Parse a channel from its string form.

    Accepts the fixed tokens ``lts``, ``sts``, ``latest`` and ``preview``
    (case-insensitive) or a ``major.minor`` version line.

    Args:
        value: The string to parse.

    Returns:
        The parsed Channel.

    Raises:
        DeserializeError: If the string is neither a known token nor a valid
            major.minor pair of non-negative integers.
    """
    token = value.strip().lower()
    if token in _TOKENS:
        return _TOKENS[token]

    components = token.split(".")
    if len(components) != 2 or not all(c.isascii() and c.isdigit() for c in components):
        raise DeserializeError(f"Invalid channel version: {value}")

    return Versioned(major=int(components[0]), minor=int(components[1]))


def describe_channel(channel: Channel) -> str:
    """Return a one-line description of a channel for interactive prompts.

    Args:
        channel: The channel to describe.

    Returns:
        A short human-readable explanation of what the channel tracks.
    """
    if isinstance(channel, Versioned):
        return f"The latest version in the {channel.display_name} support channel"
    elif isinstance(channel, Lts):
        return "The latest version in Long-Term support"
    elif isinstance(channel, Sts):
        return "The latest version in Standard-Term support"
    elif isinstance(channel, Latest):
        return "The latest supported version from either the LTS or STS support channels."
    elif isinstance(channel, Preview):
        return "The latest preview version"
    else:
        assert_never(channel)


def _coerce_channel(value: Any) -> Channel:
    if isinstance(value, Channel):
        return value
    if isinstance(value, str):
        return parse_channel(value)
    raise DeserializeError(f"Invalid channel: {value!r}")


# Channel field type that is stored as its lowercase string form
ChannelField = Annotated[
    Channel,
    PlainValidator(_coerce_channel),
    PlainSerializer(str, return_type=str),
]
