"""
Task discovery and the per-module stage machine.

This module provides:
- Stage: the fixed, ordered review stages every module walks through
- find_all_user_specifications: locate modules in the project tree
- Stage cache helpers under agent-state/specifications/<module>/<stage>
- module_progress / get_next_stage: how far a module has validly progressed
- find_next_task: choose the next (module, stage) to execute

A cached stage only counts while its content is identical to the current
specification, and progress stops at the first stage that does not, so a
changed specification reopens that stage and every later one.
"""

from __future__ import annotations

import logging
import os
import posixpath
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from specloop.config import AGENT_STATE_DIR
from specloop.dependency_graph import build_dependency_graph, module_dir_of
from specloop.errors import FileUpdateError
from specloop.path_guard import gitignore_decision, load_gitignore
from specloop.utils.fs import FileSystemError, read_file, safe_write

logger = logging.getLogger(__name__)

SPEC_FILENAME = "UserSpecification.md"


class Stage(Enum):
    """Review stages in execution order."""

    SELF_CONSISTENT = "self-consistent"
    PROJECT_CONSISTENT = "project-consistent"
    COMPLETE = "complete"
    SECURE = "secure"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def ordered(cls) -> list[Stage]:
        return list(cls)

    @property
    def number(self) -> int:
        """1-based position in the stage order."""
        return Stage.ordered().index(self) + 1

    def next(self) -> Optional[Stage]:
        stages = Stage.ordered()
        index = stages.index(self)
        return stages[index + 1] if index + 1 < len(stages) else None


@dataclass(frozen=True)
class Task:
    """One unit of auto-workflow work."""
    spec_path: str          # Root-relative POSIX path to UserSpecification.md
    stage: Stage

    @property
    def module_dir(self) -> str:
        parent = posixpath.dirname(self.spec_path)
        return parent or "."


@dataclass
class ModuleStatus:
    """Where one module stands."""
    spec_path: str
    module_dir: str
    level: int
    progress: int
    next_stage: Optional[Stage]


def find_all_user_specifications(root: str | Path) -> list[str]:
    """
    Find every UserSpecification.md under ``root``.

    Hidden directories are searched; .git and anything the root .gitignore
    ignores are not.

    Returns:
        Root-relative POSIX paths, sorted.
    """
    root = Path(root)
    ignore = load_gitignore(root)
    specs = []

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        dirnames[:] = sorted(
            d for d in dirnames
            if d != ".git" and not gitignore_decision(ignore, f"{prefix}{d}/")
        )
        if SPEC_FILENAME in filenames:
            rel_path = f"{prefix}{SPEC_FILENAME}"
            if not gitignore_decision(ignore, rel_path):
                specs.append(rel_path)

    return sorted(specs)


def stage_artifact_path(root: str | Path, spec_path: str, stage: Stage) -> Path:
    """Cache file recording that ``stage`` passed for the module of ``spec_path``."""
    root = Path(root)
    module_dir = module_dir_of(root, spec_path)
    state_dir = root / AGENT_STATE_DIR / "specifications"
    if module_dir != ".":
        state_dir = state_dir / module_dir
    return state_dir / stage.value


def read_spec(root: str | Path, spec_path: str) -> str:
    """
    Read a specification file.

    Raises:
        FileUpdateError: If the file cannot be read.
    """
    try:
        return read_file(Path(root) / spec_path)
    except FileSystemError as e:
        raise FileUpdateError(f"Could not read spec at {spec_path}: {e}", path=spec_path)


def get_cached_spec(root: str | Path, spec_path: str, stage: Stage) -> Optional[str]:
    """Return the cached specification text for ``stage``, or None."""
    artifact = stage_artifact_path(root, spec_path, stage)
    if not artifact.is_file():
        return None
    try:
        return read_file(artifact)
    except FileSystemError as e:
        logger.warning("Ignoring unreadable stage cache %s: %s", artifact, e)
        return None


def module_progress(
    root: str | Path, spec_path: str, spec_content: Optional[str] = None
) -> int:
    """Number of consecutive stages, from the first, cached with the current text."""
    if spec_content is None:
        spec_content = read_spec(root, spec_path)
    progress = 0
    for stage in Stage.ordered():
        if get_cached_spec(root, spec_path, stage) != spec_content:
            break
        progress += 1
    return progress


def get_next_stage(root: str | Path, spec_path: str) -> Optional[Stage]:
    """First stage the module has not validly passed, or None when all have."""
    stages = Stage.ordered()
    progress = module_progress(root, spec_path)
    return stages[progress] if progress < len(stages) else None


def mark_stage_complete(
    root: str | Path, spec_path: str, stage: Stage, spec_content: str
) -> Path:
    """
    Record ``stage`` as passed by caching the specification text verbatim.

    Raises:
        FileUpdateError: If the cache file cannot be written.
    """
    artifact = stage_artifact_path(root, spec_path, stage)
    try:
        safe_write(artifact, spec_content)
    except FileSystemError as e:
        raise FileUpdateError(f"Failed to write state file {artifact}: {e}", path=spec_path)
    logger.info("Marked %s as complete for %s", stage, spec_path)
    return artifact


def module_statuses(root: str | Path) -> list[ModuleStatus]:
    """
    Status of every module, ordered by graph level then path.

    Raises:
        ConfigError: From the dependency graph (missing file, cycle).
    """
    root = Path(root)
    specs = find_all_user_specifications(root)
    levels = {node.path: node.level for node in build_dependency_graph(root, specs)}
    stages = Stage.ordered()

    statuses = []
    for spec_path in specs:
        module_dir = module_dir_of(root, spec_path)
        progress = module_progress(root, spec_path)
        statuses.append(
            ModuleStatus(
                spec_path=spec_path,
                module_dir=module_dir,
                level=levels[module_dir],
                progress=progress,
                next_stage=stages[progress] if progress < len(stages) else None,
            )
        )
    statuses.sort(key=lambda s: (s.level, s.spec_path))
    return statuses


def select_lowest_level(candidates: Sequence[ModuleStatus]) -> ModuleStatus:
    """Default tie-break: lowest graph level, then path."""
    return min(candidates, key=lambda s: (s.level, s.spec_path))


def find_next_task(
    root: str | Path,
    select: Callable[[Sequence[ModuleStatus]], ModuleStatus] = select_lowest_level,
) -> Optional[Task]:
    """
    Pick the next task.

    Only modules at the lowest progress across the project are eligible, so
    no module runs ahead to a later stage while another lags behind.

    Args:
        root: Project root.
        select: Chooses among the eligible modules.

    Returns:
        The task, or None when every module has passed every stage.
    """
    pending = [s for s in module_statuses(root) if s.next_stage is not None]
    if not pending:
        return None

    lowest = min(s.progress for s in pending)
    chosen = select([s for s in pending if s.progress == lowest])
    return Task(spec_path=chosen.spec_path, stage=chosen.next_stage)
