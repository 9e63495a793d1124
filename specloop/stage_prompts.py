"""Builds the prompt for one auto-workflow task."""

from __future__ import annotations

from pathlib import Path

from specloop.context_builder import build_dependency_context, build_module_context
from specloop.discovery import SPEC_FILENAME, Stage, Task, get_cached_spec
from specloop.errors import ConfigError
from specloop.prompts import (
    COMPLETE,
    PROJECT_CONSISTENT,
    RESPONSE_FORMAT_INSTRUCTIONS,
    SECURE,
    SELF_CONSISTENT,
    WITH_CACHE_NOTE,
)
from specloop.utils.fs import FileSystemError, read_file

STAGE_INSTRUCTIONS = {
    Stage.SELF_CONSISTENT: SELF_CONSISTENT,
    Stage.PROJECT_CONSISTENT: PROJECT_CONSISTENT,
    Stage.COMPLETE: COMPLETE,
    Stage.SECURE: SECURE,
}


def read_top_level_spec(root: Path) -> str:
    """The root UserSpecification.md, or "" when there is none."""
    path = root / SPEC_FILENAME
    if not path.is_file():
        return ""
    try:
        return read_file(path)
    except FileSystemError as e:
        raise ConfigError(f"Failed to read top-level specification {path}: {e}") from e


def build_stage_prompt(root: str | Path, task: Task, spec_content: str) -> str:
    """
    Assemble the prompt for ``task``.

    The self-consistent stage sees only specifications. Later stages also get
    the specification cached the last time the same stage passed (if any)
    and code context: the module's own files for ``complete``, the module
    plus its dependencies' specifications and API signatures otherwise.
    """
    root = Path(root)
    sections = [
        f"{task.stage.number}. {task.stage}",
        f"[response format instructions]\n{RESPONSE_FORMAT_INSTRUCTIONS}",
        f"[{task.stage} prompt]\n{STAGE_INSTRUCTIONS[task.stage]}",
    ]

    if task.stage is Stage.SELF_CONSISTENT:
        sections.append(f"[top level UserSpecification.md]\n{read_top_level_spec(root)}")
        if task.spec_path != SPEC_FILENAME:
            sections.append(f"[target user specification]\n{spec_content}")
        return "\n".join(sections)

    cached = get_cached_spec(root, task.spec_path, task.stage)
    if cached is not None:
        sections.append(f"{WITH_CACHE_NOTE}[cached target user specification]\n{cached}")
    sections.append(f"[target user specification]\n{spec_content}")

    if task.stage is Stage.COMPLETE:
        codebase = build_module_context(root, task.module_dir)
        sections.append(f"[codebase]\n{codebase}")
    else:
        codebase = build_dependency_context(root, task.module_dir)
        sections.append(
            f"[codebase, including dependency files and top level UserSpecification]\n{codebase}"
        )
    return "\n".join(sections)
