"""Semantic version value type.

SDK versions follow SemVer 2.0 (``8.0.100``, ``9.0.100-preview.1.23115.2``).
Ordering uses SemVer precedence: build metadata is ignored, a pre-release
sorts before its release, and numeric pre-release identifiers sort
numerically and before alphanumeric ones.
"""

import re
from functools import total_ordering
from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

_SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


@total_ordering
class SemVer:
    """An immutable, comparable semantic version.

    Attributes:
        major: Major version number.
        minor: Minor version number.
        patch: Patch version number.
        prerelease: Dot-separated pre-release identifiers, or empty.
        build: Build metadata, or empty. Not used for ordering or equality.
    """

    __slots__ = ("major", "minor", "patch", "prerelease", "build")

    def __init__(
        self,
        major: int,
        minor: int,
        patch: int,
        prerelease: tuple[str, ...] = (),
        build: str = "",
    ) -> None:
        object.__setattr__(self, "major", major)
        object.__setattr__(self, "minor", minor)
        object.__setattr__(self, "patch", patch)
        object.__setattr__(self, "prerelease", tuple(prerelease))
        object.__setattr__(self, "build", build)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("SemVer is immutable")

    @classmethod
    def parse(cls, value: str) -> "SemVer":
        """Parse a strict SemVer 2.0 string.

        Args:
            value: Version string such as ``8.0.100`` or ``9.0.100-rc.1``.

        Returns:
            The parsed SemVer.

        Raises:
            ValueError: If the string is not a valid semantic version.
        """
        match = _SEMVER_PATTERN.match(value.strip())
        if not match:
            raise ValueError(f"Invalid semantic version: {value!r}")
        major, minor, patch, prerelease, build = match.groups()
        return cls(
            int(major),
            int(minor),
            int(patch),
            tuple(prerelease.split(".")) if prerelease else (),
            build or "",
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _precedence_key(self) -> tuple:
        # A release (no pre-release) sorts after any of its pre-releases
        if not self.prerelease:
            pre: tuple = ((1,),)
        else:
            pre = tuple(
                (0, 0, int(part), "") if part.isdigit() else (0, 1, 0, part)
                for part in self.prerelease
            )
            pre = ((0, pre),)
        return (self.major, self.minor, self.patch, pre)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return (self.major, self.minor, self.patch, self.prerelease) == (
            other.major,
            other.minor,
            other.patch,
            other.prerelease,
        )

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._precedence_key() < other._precedence_key()

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text

    def __repr__(self) -> str:
        return f"SemVer({str(self)!r})"

    @classmethod
    def _validate(cls, value: Any) -> "SemVer":
        if isinstance(value, SemVer):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        raise ValueError(f"Expected a version string, got {type(value).__name__}")

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )
