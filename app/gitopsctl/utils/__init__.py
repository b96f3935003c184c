"""Utility modules for gitopsctl.

This module exports commonly used utility functions.
"""

from gitopsctl.utils.files import atomic_write_toml
from gitopsctl.utils.formatting import (
    console,
    create_table,
    err_console,
    format_sync_status,
    print_error,
    print_info,
    print_success,
    print_warning,
)

__all__ = [
    "atomic_write_toml",
    "console",
    "create_table",
    "err_console",
    "format_sync_status",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
]
