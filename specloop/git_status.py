"""
Working-tree safety checks run before the model may edit files.

The model can overwrite any file PathGuard allows, so uncommitted work in
such files would be lost. ``--force`` skips check_for_uncommitted_changes.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from specloop.config import check_gitignore
from specloop.errors import ConfigError
from specloop.path_guard import PathGuard
from specloop.response_parser import split_lines


def verify_gitignore_protection(root: str | Path) -> None:
    """
    Ensure agent-config/ is gitignored.

    Raises:
        ConfigError: If .gitignore is missing or lacks the entry.
    """
    check_gitignore(root)


def parse_porcelain_paths(output: str) -> list[str]:
    """Paths named by ``git status --porcelain=v1`` output; renames give both sides."""
    paths = []
    for line in split_lines(output):
        if len(line) < 4:
            continue
        path_part = line[3:]
        if " -> " in path_part:
            original, renamed = path_part.split(" -> ", 1)
            paths.extend([original, renamed])
        else:
            paths.append(path_part)
    return paths


def find_dirty_modifiable_files(root: str | Path, porcelain_output: str) -> list[str]:
    """Sorted dirty paths that PathGuard would let the model modify."""
    guard = PathGuard(root)
    return sorted({p for p in parse_porcelain_paths(porcelain_output) if guard.is_allowed(p)})


def check_for_uncommitted_changes(root: str | Path) -> None:
    """
    Refuse to run while files the model may touch have uncommitted changes.

    Raises:
        ConfigError: If git cannot be run or dirty modifiable files exist.
    """
    try:
        result = subprocess.run(
            ["git", "status", "--porcelain=v1"],
            cwd=str(root),
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ConfigError(
            f"Failed to execute git. Is it installed and in your PATH? Error: {e}"
        )
    if result.returncode != 0:
        raise ConfigError(f"git status command failed: {result.stderr}")

    dirty = find_dirty_modifiable_files(root, result.stdout)
    if dirty:
        file_list = "\n- ".join(dirty)
        raise ConfigError(
            "Uncommitted changes found in files that can be modified by the LLM:\n"
            f"- {file_list}\n\n"
            "Please commit or stash your changes before running.\n"
            "To override this safety check, use the --force flag."
        )
