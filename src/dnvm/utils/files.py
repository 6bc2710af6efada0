"""File operation utilities for dnvm."""

import shutil
import stat
from pathlib import Path


def ensure_dir(path: Path | str) -> Path:
    """Create directory and all parent directories if they don't exist.

    Args:
        path: Path to the directory to create.

    Returns:
        The Path object for the created directory.
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def write_file(path: Path | str, content: str, encoding: str = "utf-8") -> None:
    """Write content to a file, creating parent directories if needed.

    Args:
        path: Path to the file to write.
        content: Content to write to the file.
        encoding: Character encoding to use (default: utf-8).
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding=encoding)


def append_file(path: Path | str, content: str, encoding: str = "utf-8") -> None:
    """Append content to an existing file.

    Args:
        path: Path to the file to append to.
        content: Content to append to the file.
        encoding: Character encoding to use (default: utf-8).
    """
    with Path(path).open("a", encoding=encoding) as f:
        f.write(content)


def file_contains_line(path: Path | str, text: str, encoding: str = "utf-8") -> bool:
    """Check whether any line of a file contains the given text.

    Args:
        path: Path to the file to scan.
        text: Substring to look for.
        encoding: Character encoding to use (default: utf-8).

    Returns:
        True if some line contains the text.

    Raises:
        OSError: If the file cannot be read.
    """
    with Path(path).open(encoding=encoding, errors="replace") as f:
        return any(text in line for line in f)


def make_executable(path: Path | str) -> None:
    """Add execute permission for everyone who can read the file."""
    file_path = Path(path)
    mode = file_path.stat().st_mode
    exec_bits = (mode & 0o444) >> 2
    file_path.chmod(mode | exec_bits | stat.S_IXUSR)


def merge_tree(source: Path, target: Path) -> None:
    """Move the contents of a directory into another, replacing same-named files.

    Existing files in the target that are not in the source are kept, so SDKs
    sharing a directory coexist.

    Args:
        source: Directory whose contents are moved.
        target: Destination directory, created if missing.
    """
    target.mkdir(parents=True, exist_ok=True)
    for entry in source.iterdir():
        dest = target / entry.name
        if entry.is_dir() and not entry.is_symlink():
            if dest.is_dir() and not dest.is_symlink():
                merge_tree(entry, dest)
                continue
            if dest.exists() or dest.is_symlink():
                dest.unlink()
        elif dest.is_dir() and not dest.is_symlink():
            shutil.rmtree(dest)
        shutil.move(str(entry), str(dest))
