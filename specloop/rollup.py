"""
Whole-project rollup.

This module provides:
- collect_rollup_paths: project files worth showing a reader, sorted
- build_rollup: those files as one ``--- path ---`` listing
- write_rollup: saves the listing to agent-config/codebase.txt

Anything under .git/, agent-config/, agent-state/ or app-data/, anything the
root .gitignore excludes, and files that are not UTF-8 text are left out.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from specloop.config import AGENT_CONFIG_DIR, AGENT_STATE_DIR
from specloop.context_builder import format_file_block
from specloop.errors import FileUpdateError
from specloop.path_guard import gitignore_decision, load_gitignore
from specloop.utils.fs import FileSystemError, safe_write

logger = logging.getLogger(__name__)

ROLLUP_FILE = "codebase.txt"
EXCLUDED_TOP_DIRS = frozenset({AGENT_CONFIG_DIR, AGENT_STATE_DIR, "app-data"})
LOCK_FILES = frozenset({"Cargo.lock"})


def collect_rollup_paths(root: str | Path, include_lock_files: bool = False) -> list[str]:
    """
    Root-relative POSIX paths of every file that belongs in the rollup.

    Ignored directories are pruned during the walk, so large build trees such
    as ``target/`` are never visited.

    Raises:
        ConfigError: If the root .gitignore cannot be read or parsed.
    """
    root = Path(root)
    ignore = load_gitignore(root)
    paths = []

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        kept = []
        for name in dirnames:
            if name == ".git" or (not prefix and name in EXCLUDED_TOP_DIRS):
                continue
            if gitignore_decision(ignore, f"{prefix}{name}/"):
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in filenames:
            if name == ".git":
                continue
            if name in LOCK_FILES and not include_lock_files:
                continue
            rel = f"{prefix}{name}"
            if not gitignore_decision(ignore, rel):
                paths.append(rel)

    return sorted(paths)


def build_rollup(root: str | Path, include_lock_files: bool = False) -> str:
    """
    Concatenate every rollup file as ``--- path ---`` blocks, sorted by path.

    Args:
        root: Project root.
        include_lock_files: Keep Cargo.lock in the listing.

    Raises:
        FileUpdateError: If a file cannot be read. Files that are not valid
            UTF-8 are skipped instead.
        ConfigError: If the root .gitignore cannot be read or parsed.
    """
    root = Path(root)
    parts = []
    for rel in collect_rollup_paths(root, include_lock_files):
        try:
            data = (root / rel).read_bytes()
        except OSError as e:
            raise FileUpdateError(f"Failed to read file for rollup {rel}: {e}", path=rel) from e
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping non-UTF-8 file %s", rel)
            continue
        parts.append(format_file_block(rel, content))
    return "".join(parts)


def write_rollup(root: str | Path, include_lock_files: bool = False) -> Path:
    """Build the rollup and save it to agent-config/codebase.txt. Returns the path."""
    root = Path(root)
    rollup = build_rollup(root, include_lock_files)
    out_path = root / AGENT_CONFIG_DIR / ROLLUP_FILE
    try:
        safe_write(out_path, rollup)
    except FileSystemError as e:
        raise FileUpdateError(str(e), path=f"{AGENT_CONFIG_DIR}/{ROLLUP_FILE}") from e
    logger.info("Wrote rollup of %d bytes to %s", len(rollup), out_path)
    return out_path
