"""Platform helpers: executable naming, runtime identifiers, process identity."""

import platform
import sys
from pathlib import Path

_ARCHITECTURES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "armv7l": "arm",
    "armv8l": "arm",
}


def is_windows() -> bool:
    return sys.platform == "win32"


def exe_suffix() -> str:
    """Return the executable file suffix for this platform (``.exe`` or empty)."""
    return ".exe" if is_windows() else ""


def archive_extension() -> str:
    """Return the SDK archive extension published for this platform."""
    return "zip" if is_windows() else "tar.gz"


def runtime_identifier() -> str:
    """Return the .NET runtime identifier for this machine, e.g. ``linux-x64``.

    Raises:
        RuntimeError: If the processor architecture is not supported.
    """
    if is_windows():
        os_name = "win"
    elif sys.platform == "darwin":
        os_name = "osx"
    else:
        os_name = "linux"

    machine = platform.machine().lower()
    arch = _ARCHITECTURES.get(machine)
    if arch is None:
        raise RuntimeError(f"Unsupported architecture: {machine}")
    return f"{os_name}-{arch}"


def is_single_file() -> bool:
    """Return whether dnvm is running as a self-contained single-file executable."""
    return bool(getattr(sys, "frozen", False))


def process_path() -> Path:
    """Return the path of the running executable."""
    return Path(sys.executable).resolve()
