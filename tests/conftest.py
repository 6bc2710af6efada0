"""Shared pytest fixtures for dnvm tests."""

import io
import re
import tarfile
import zipfile
from pathlib import Path

import pytest
import requests
from typer.testing import CliRunner

from dnvm.models import GlobalOptions, SemVer
from dnvm.services import SdkInstaller
from dnvm.services.releases import RELEASES_INDEX_PATH, sdk_download_url
from dnvm.utils import archive_extension, exe_suffix

FEED_URL = "https://feed.test/dotnet"
DNVM_RELEASES_URL = "https://feed.test/dnvm/releases.json"

# Written into every fake SDK's dotnet executable
ARCHIVE_TOKEN = "dnvm-test-sdk-archive"


def strip_ansi(text: str) -> str:
    """Strip ANSI escape codes from text."""
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def flat(text: str) -> str:
    """Strip ANSI codes and collapse the line wrapping Rich adds."""
    return " ".join(strip_ansi(text).split())


def make_archive(files: dict[str, str | bytes]) -> bytes:
    """Build an archive in this platform's SDK archive format.

    Args:
        files: Mapping of archive member path to contents.

    Returns:
        The archive bytes (.zip on Windows, .tar.gz elsewhere).
    """
    buffer = io.BytesIO()
    if archive_extension() == "zip":
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, content in files.items():
                zf.writestr(name, content)
    else:
        with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
            for name, content in files.items():
                data = content.encode("utf-8") if isinstance(content, str) else content
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755
                tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def make_sdk_archive(version: str) -> bytes:
    """Build a fake SDK archive containing a dotnet executable."""
    return make_archive(
        {
            f"dotnet{exe_suffix()}": f"#!/bin/sh\n# {ARCHIVE_TOKEN} {version}\n",
            f"sdk/{version}/version.txt": version,
        }
    )


def release_line(
    version: str,
    release_type: str = "lts",
    support_phase: str = "active",
) -> dict:
    """Build one release-index entry for an SDK version."""
    major, minor = version.split(".")[:2]
    return {
        "channel-version": f"{major}.{minor}",
        "latest-release": f"{major}.{minor}.0",
        "latest-sdk": version,
        "release-type": release_type,
        "support-phase": support_phase,
    }


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: object = None, content: bytes = b""):
        self.status_code = status_code
        self.payload = payload
        self.content = content

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self) -> object:
        if self.payload is None:
            raise ValueError("Response is not JSON")
        return self.payload

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def close(self) -> None:
        pass


class FakeFeed(requests.Session):
    """A requests session serving a fake .NET release feed from memory."""

    def __init__(self) -> None:
        super().__init__()
        self.routes: dict[str, FakeResponse] = {}
        self.requested: list[str] = []

    def get(self, url, **kwargs):  # type: ignore[override]
        self.requested.append(url)
        return self.routes.get(url, FakeResponse(status_code=404))

    def set_releases(self, releases: list[dict]) -> None:
        """Serve a release index and an SDK archive for each release."""
        self.routes[f"{FEED_URL}/{RELEASES_INDEX_PATH}"] = FakeResponse(
            payload={"releases-index": releases}
        )
        for release in releases:
            version = release["latest-sdk"]
            url = sdk_download_url(FEED_URL, SemVer.parse(version))
            self.routes[url] = FakeResponse(content=make_sdk_archive(version))

    def fail_index(self, status_code: int = 500) -> None:
        """Make the release index request fail."""
        self.routes[f"{FEED_URL}/{RELEASES_INDEX_PATH}"] = FakeResponse(status_code=status_code)


@pytest.fixture
def runner() -> CliRunner:
    """Create a CliRunner for testing commands."""
    return CliRunner()


@pytest.fixture
def dnvm_home(tmp_path: Path) -> Path:
    """Create an empty dnvm home directory."""
    home = tmp_path / "dnvm"
    home.mkdir()
    return home


@pytest.fixture
def user_home(tmp_path: Path) -> Path:
    """Create an empty user home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def options(dnvm_home: Path, user_home: Path) -> GlobalOptions:
    """Global options pointing at the temporary homes and the fake feed."""
    return GlobalOptions(
        dnvm_home=dnvm_home,
        user_home=user_home,
        feed_url=FEED_URL,
        dnvm_releases_url=DNVM_RELEASES_URL,
    )


@pytest.fixture
def feed() -> FakeFeed:
    """A fake feed whose only release line is 8.0 (LTS, SDK 8.0.100)."""
    fake = FakeFeed()
    fake.set_releases([release_line("8.0.100")])
    return fake


@pytest.fixture
def installer(options: GlobalOptions, feed: FakeFeed) -> SdkInstaller:
    """An SdkInstaller wired to the fake feed."""
    return SdkInstaller.create(options, session=feed)


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, dnvm_home: Path, user_home: Path) -> Path:
    """Point the CLI at the temporary dnvm home and the fake feed URL.

    Returns:
        The dnvm home directory.
    """
    monkeypatch.setenv("DNVM_HOME", str(dnvm_home))
    monkeypatch.setenv("DNVM_FEED_URL", FEED_URL)
    monkeypatch.setenv("HOME", str(user_home))
    monkeypatch.setenv("USERPROFILE", str(user_home))
    return dnvm_home
