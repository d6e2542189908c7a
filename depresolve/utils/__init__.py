"""
Shared plumbing for depresolve: the index HTTP client, atomic file I/O for
lock files and cache entries, logging setup, and Rich console output for
the CLI.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------

from depresolve.utils.filesystem import (
    atomic_write_text,
    iter_files,
    remove_file,
    safe_read_file,
    validate_path,
)

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from depresolve.utils.logger import (
    disable_logging,
    get_logger,
    get_package_logger,
    is_logging_configured,
    level_for_verbosity,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Console utilities
# ---------------------------------------------------------------------------

from depresolve.utils.console import (
    confirm,
    get_raw_console,
    print_conflict,
    print_error,
    print_json,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)

# ---------------------------------------------------------------------------
# HTTP utilities
# ---------------------------------------------------------------------------

from depresolve.utils.http import HTTPClient, is_transient_status

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Console
    "confirm",
    "print_error",
    "print_json",
    "print_table",
    "print_success",
    "print_warning",
    "print_conflict",
    "get_raw_console",
    "reconfigure_console",
    # Logging
    "get_logger",
    "get_package_logger",
    "setup_logging",
    "disable_logging",
    "level_for_verbosity",
    "is_logging_configured",
    # Filesystem
    "atomic_write_text",
    "safe_read_file",
    "remove_file",
    "iter_files",
    "validate_path",
    # HTTP
    "HTTPClient",
    "is_transient_status",
]
