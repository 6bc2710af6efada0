"""dnvm utilities."""

from dnvm.utils.console import (
    configure_logging,
    console,
    create_spinner,
    print_error,
    print_success,
    print_warning,
)
from dnvm.utils.files import (
    append_file,
    ensure_dir,
    file_contains_line,
    make_executable,
    merge_tree,
    write_file,
)
from dnvm.utils.platform import (
    archive_extension,
    exe_suffix,
    is_single_file,
    is_windows,
    process_path,
    runtime_identifier,
)

__all__ = [
    "append_file",
    "archive_extension",
    "configure_logging",
    "console",
    "create_spinner",
    "ensure_dir",
    "exe_suffix",
    "file_contains_line",
    "is_single_file",
    "is_windows",
    "make_executable",
    "merge_tree",
    "print_error",
    "print_success",
    "print_warning",
    "process_path",
    "runtime_identifier",
    "write_file",
]
