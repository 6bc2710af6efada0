"""Download and extraction of release archives.

Fetches an archive over HTTP into a working directory and unpacks it
(``.tar.gz`` or ``.zip``), refusing entries that would escape the
extraction root.
"""

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

import requests
from pydantic import BaseModel, ConfigDict, Field

from dnvm import __version__

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024
CONNECT_TIMEOUT_SECONDS = 15
READ_TIMEOUT_SECONDS = 120


def new_session() -> requests.Session:
    """Create the HTTP session used for feed queries and downloads."""
    session = requests.Session()
    session.headers["User-Agent"] = f"dnvm/{__version__}"
    return session


class FetchError(Exception):
    """Exception raised when an archive cannot be downloaded or unpacked."""


class ArchiveFetcher(BaseModel):
    """Downloads archives and extracts them into local directories."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session: requests.Session = Field(default_factory=new_session)

    def download(self, url: str, dest_dir: Path) -> Path:
        """Download a URL into a directory.

        Args:
            url: The archive URL.
            dest_dir: Directory to place the file in.

        Returns:
            Path to the downloaded file.

        Raises:
            FetchError: If the request fails.
        """
        filename = PurePosixPath(url.split("?", 1)[0]).name or "download"
        destination = dest_dir / filename
        dest_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading {url}")

        try:
            response = self.session.get(
                url,
                stream=True,
                timeout=(CONNECT_TIMEOUT_SECONDS, READ_TIMEOUT_SECONDS),
            )
            try:
                response.raise_for_status()
                with destination.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
            finally:
                response.close()
        except requests.RequestException as e:
            raise FetchError(f"Download of {url} failed: {e}") from e
        except OSError as e:
            raise FetchError(f"Could not write {destination}: {e}") from e

        return destination

    def extract(self, archive: Path, target: Path) -> Path:
        """Extract a .tar.gz or .zip archive.

        Args:
            archive: Path to the archive file.
            target: Directory to extract into, created if missing.

        Returns:
            The extraction directory.

        Raises:
            FetchError: If the archive is unreadable, of an unknown type, or
                contains entries that escape the target directory.
        """
        target.mkdir(parents=True, exist_ok=True)
        name = archive.name.lower()
        logger.info(f"Extracting {archive} to {target}")

        try:
            if name.endswith((".tar.gz", ".tgz")):
                with tarfile.open(archive, "r:gz") as tf:
                    tf.extractall(target, filter="data")
            elif name.endswith(".zip"):
                self._extract_zip(archive, target)
            else:
                raise FetchError(f"Unsupported archive type: {archive.name}")
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise FetchError(f"Could not extract {archive.name}: {e}") from e

        return target

    @staticmethod
    def _extract_zip(archive: Path, target: Path) -> None:
        root = target.resolve()
        with zipfile.ZipFile(archive, "r") as zf:
            for info in zf.infolist():
                dest_path = (target / info.filename).resolve()
                if not dest_path.is_relative_to(root):
                    raise FetchError(f"Archive entry escapes extraction root: {info.filename}")

                if info.is_dir():
                    dest_path.mkdir(parents=True, exist_ok=True)
                    continue

                dest_path.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info, "r") as src, dest_path.open("wb") as dst:
                    shutil.copyfileobj(src, dst, length=DOWNLOAD_CHUNK_SIZE)

                # Preserve unix permission bits (executables) when present
                mode = (info.external_attr >> 16) & 0o777
                if mode:
                    dest_path.chmod(mode)

    def fetch(self, url: str, work_dir: Path) -> Path:
        """Download and extract an archive in one step.

        Args:
            url: The archive URL.
            work_dir: Scratch directory; the archive and its contents are
                placed under it.

        Returns:
            Directory holding the extracted contents.

        Raises:
            FetchError: If downloading or extracting fails.
        """
        archive = self.download(url, work_dir / "download")
        return self.extract(archive, work_dir / "extracted")

