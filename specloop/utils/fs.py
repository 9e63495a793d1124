"""
File system helpers for specloop.

This module provides:
- Atomic writes (temp file in the same directory, then rename)
- Directory creation
- Idempotent file removal
- UTF-8 reads that report failures as FileSystemError
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


class FileSystemError(Exception):
    """Raised when a file system operation fails."""
    pass


def ensure_dir(path: str | Path) -> Path:
    """
    Create a directory if it does not exist (like mkdir -p).

    Raises:
        FileSystemError: If directory creation fails.
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
        return path
    except OSError as e:
        raise FileSystemError(f"Failed to create directory {path}: {e}")


def safe_write(path: str | Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write content to a file atomically.

    The text is written byte-for-byte (no newline translation) to a sibling
    temporary file which then replaces the target, so readers never observe a
    half-written file.

    Args:
        path: Path to the file to write.
        content: Exact file content. An empty string yields an empty file.
        encoding: Character encoding to use. Defaults to utf-8.

    Raises:
        FileSystemError: If the write fails.
    """
    path = Path(path)
    ensure_dir(path.parent)

    try:
        # Same directory as the target so the rename stays on one filesystem
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
                f.write(content)
            os.replace(temp_path, path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise FileSystemError(f"Failed to write file {path}: {e}")


def remove_file(path: str | Path) -> bool:
    """
    Delete a file if it exists.

    Returns:
        bool: True if a file was removed, False if there was nothing to remove.

    Raises:
        FileSystemError: If the file exists but cannot be removed.
    """
    path = Path(path)
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise FileSystemError(f"Failed to remove file {path}: {e}")


def read_file(path: str | Path, encoding: str = "utf-8") -> str:
    """
    Read a file's contents.

    Raises:
        FileSystemError: If the file is missing or cannot be decoded.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding=encoding, newline="") as f:
            return f.read()
    except FileNotFoundError:
        raise FileSystemError(f"File not found: {path}")
    except (OSError, UnicodeDecodeError) as e:
        raise FileSystemError(f"Failed to read file {path}: {e}")
