"""
Path authorization for every file the agent touches.

This module provides:
- PathGuard: decides whether the model may create, replace or delete a path
- ContextPathGuard: the looser read-side variant used when loading extra
  context files requested by the model

Both guards work purely lexically on project-relative paths and consult the
project's root .gitignore (compiled once, with pathspec) as the last rule.
"""

from __future__ import annotations

import logging
import posixpath
import re
from pathlib import Path
from typing import Optional

import pathspec

from specloop.errors import ConfigError, FileUpdateError

logger = logging.getLogger(__name__)

FORBIDDEN_FILES = frozenset({".gitignore", "Cargo.lock", "build.sh", "LLMInstructions.md"})
PROTECTED_FILENAME = "UserSpecification.md"

_WINDOWS_ROOT = re.compile(r"^(?:[A-Za-z]:|\\\\|//)")


def _split(path: str) -> list[str]:
    return [part for part in re.split(r"[/\\]", path) if part]


def load_gitignore(root: str | Path) -> Optional[pathspec.GitIgnoreSpec]:
    """
    Compile the root .gitignore.

    Returns:
        The compiled spec, or None when the project has no .gitignore.

    Raises:
        ConfigError: If the file cannot be read or holds an invalid pattern.
    """
    gitignore_path = Path(root) / ".gitignore"
    try:
        lines = gitignore_path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to read file '.gitignore': {e}")

    try:
        return pathspec.GitIgnoreSpec.from_lines(lines)
    except ValueError as e:
        raise ConfigError(f"Failed to parse .gitignore: {e}")


def gitignore_decision(spec: Optional[pathspec.GitIgnoreSpec], rel_path: str) -> bool:
    """
    Return True if ``rel_path`` is ignored.

    The path itself is checked first, then each parent directory from the
    nearest one up; the first pattern that decides either way wins.
    """
    if spec is None:
        return False

    candidates = [rel_path]
    parent = posixpath.dirname(rel_path)
    while parent:
        candidates.append(parent + "/")
        parent = posixpath.dirname(parent)

    for candidate in candidates:
        result = spec.check_file(candidate)
        if result.include is not None:
            return bool(result.include)
    return False


class PathGuard:
    """
    Write-side path guard.

    Rules, checked in order:
    1. absolute paths are rejected
    2. ``..`` anywhere, before or after normalization, is rejected
    3. critical files and any UserSpecification.md are rejected
    4. protected top-level directories are rejected
    5. anything the project .gitignore ignores is rejected
    """

    protected_dirs: tuple[str, ...] = (".git", "target", "agent-config", "app-data")
    check_forbidden_files = True
    directory_verb = "Modification"
    gitignore_action = "modified"

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._gitignore = load_gitignore(self.root)

    def validate(self, path: str) -> str:
        """
        Authorize ``path``.

        Args:
            path: Project-relative path as written by the model.

        Returns:
            The normalized relative path to operate on.

        Raises:
            FileUpdateError: Naming the path and the rule it broke.
        """
        if path.startswith("/") or path.startswith("\\") or _WINDOWS_ROOT.match(path):
            raise FileUpdateError("Absolute paths are not allowed.", path=path)

        normalized = posixpath.normpath(path.replace("\\", "/")) if path else ""
        if ".." in _split(path) or ".." in _split(normalized):
            raise FileUpdateError("Path traversal ('..') is not allowed.", path=path)
        if normalized in ("", "."):
            raise FileUpdateError("Empty paths are not allowed.", path=path)

        if self.check_forbidden_files:
            if normalized in FORBIDDEN_FILES or posixpath.basename(normalized) == PROTECTED_FILENAME:
                raise FileUpdateError(
                    f"Modification of critical file '{normalized}' is not allowed.",
                    path=path,
                )

        first = normalized.split("/", 1)[0]
        if first in self.protected_dirs:
            raise FileUpdateError(
                f"{self.directory_verb} of directory '{first}/' is not allowed.", path=path
            )

        if gitignore_decision(self._gitignore, normalized):
            raise FileUpdateError(self._gitignore_message(normalized), path=path)

        return normalized

    def is_allowed(self, path: str) -> bool:
        """Non-raising form of validate()."""
        try:
            self.validate(path)
        except FileUpdateError as e:
            logger.debug("Rejected path %s: %s", path, e)
            return False
        return True

    def _gitignore_message(self, normalized: str) -> str:
        return (
            f"File '{normalized}' matches a rule in .gitignore and cannot be "
            f"{self.gitignore_action}."
        )


class ContextPathGuard(PathGuard):
    """
    Read-side path guard.

    Same traversal and gitignore rules as PathGuard, but critical files are
    readable and only .git/ and agent-config/ stay off limits.
    """

    protected_dirs = (".git", "agent-config")
    check_forbidden_files = False
    directory_verb = "Access"
    gitignore_action = "loaded into context"
