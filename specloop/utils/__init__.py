"""Utility helpers for specloop."""

from specloop.utils.fs import (
    FileSystemError,
    ensure_dir,
    read_file,
    remove_file,
    safe_write,
)

__all__ = [
    "FileSystemError",
    "ensure_dir",
    "read_file",
    "remove_file",
    "safe_write",
]
