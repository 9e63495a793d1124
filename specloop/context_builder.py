"""
Assembles the codebase text the model sees.

This module provides:
- build_summary: root files, file listings and per-module API notes
- build_codebase_context: asks the model which files it needs, then loads them
- load_context_files: reads requested files through ContextPathGuard
- build_module_context / build_dependency_context: stage prompt context
- extract_filenames_from_codebase: recovers file headers from assembled text

Every file block uses the ``--- <path> ---`` header format.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

import pathspec

from specloop.errors import ConfigError, FileUpdateError
from specloop.path_guard import ContextPathGuard, gitignore_decision, load_gitignore
from specloop.prompts import COMMITTING_CODE_CONTEXT_QUERY
from specloop.response_parser import split_lines, parse_extra_files_response
from specloop.utils.fs import FileSystemError, read_file

if TYPE_CHECKING:
    from specloop.llm_clients import LlmClient

logger = logging.getLogger(__name__)

ROOT_SUMMARY_FILES = (
    ".gitignore",
    "build.sh",
    "pyproject.toml",
    "Cargo.toml",
    "LLMInstructions.md",
    "UserSpecification.md",
)
SOURCE_DIR = "src"
FILENAMES_HEADER = "--- FILENAMES ---\n"
FILENAMES_FOOTER = "--- END FILENAMES ---\n\n"


def format_file_block(rel_path: str, content: str) -> str:
    """``--- path ---`` header, content, and a blank separator line."""
    if not content.endswith("\n"):
        content += "\n"
    return f"--- {rel_path} ---\n{content}\n"


def _rel(root: Path, path: Path) -> str:
    return path.relative_to(root).as_posix()


def _read_context_file(root: Path, path: Path) -> str:
    try:
        return read_file(path)
    except FileSystemError as e:
        rel = _rel(root, path)
        raise FileUpdateError(f"Failed to read file for codebase {rel}: {e}", path=rel) from e


def _visible_files(
    root: Path,
    directory: Path,
    ignore: Optional[pathspec.GitIgnoreSpec],
    include_hidden: bool = False,
) -> list[Path]:
    """Files directly inside ``directory`` that .gitignore does not exclude."""
    if not directory.is_dir():
        return []
    files = []
    for entry in sorted(directory.iterdir()):
        if not include_hidden and entry.name.startswith("."):
            continue
        if entry.is_file() and not gitignore_decision(ignore, _rel(root, entry)):
            files.append(entry)
    return files


def _visible_dirs(
    root: Path, directory: Path, ignore: Optional[pathspec.GitIgnoreSpec]
) -> list[Path]:
    if not directory.is_dir():
        return []
    return [
        entry
        for entry in sorted(directory.iterdir())
        if entry.is_dir()
        and not entry.name.startswith(".")
        and not gitignore_decision(ignore, _rel(root, entry) + "/")
    ]


def _filenames_section(root: Path, paths: Iterable[Path]) -> str:
    listing = "".join(f"{_rel(root, p)}\n" for p in paths)
    return f"{FILENAMES_HEADER}{listing}{FILENAMES_FOOTER}"


def build_summary(root: str | Path) -> str:
    """
    Summarize the project for the context-selection query.

    Includes the well-known root files, a listing of top-level and ``src/``
    files, then one section per ``src/<module>/`` directory with its
    InternalDependencies.md and PublicAPI.md (when present) and its files.

    Raises:
        ConfigError: If a well-known root file exists but the read guard
            rejects it, or cannot be read.
        FileUpdateError: If a module note cannot be read.
    """
    root = Path(root)
    guard = ContextPathGuard(root)
    ignore = load_gitignore(root)

    parts = ["=== Project Root ===\n\n"]
    for name in ROOT_SUMMARY_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            guard.validate(name)
            parts.append(format_file_block(name, read_file(path)))
        except FileUpdateError as e:
            raise ConfigError(
                f"Mandatory file '{name}' is ignored by .gitignore or is invalid: {e}"
            )
        except FileSystemError as e:
            raise ConfigError(f"Mandatory file '{name}' is invalid: {e}")

    src = root / SOURCE_DIR
    listed = _visible_files(root, root, ignore) + _visible_files(root, src, ignore)
    parts.append(_filenames_section(root, listed))

    for module_dir in _visible_dirs(root, src, ignore):
        parts.append(f"=== {_rel(root, module_dir)} ===\n\n")
        for note in ("InternalDependencies.md", "PublicAPI.md"):
            note_path = module_dir / note
            if note_path.is_file():
                content = _read_context_file(root, note_path)
                parts.append(format_file_block(_rel(root, note_path), content))
        parts.append(_filenames_section(root, _visible_files(root, module_dir, ignore)))

    return "".join(parts)


def load_context_files(root: str | Path, paths: Iterable[str]) -> str:
    """
    Read the requested files into ``--- path ---`` blocks.

    Raises:
        FileUpdateError: If the read guard rejects a path or it cannot be read.
    """
    root = Path(root)
    guard = ContextPathGuard(root)
    parts = []
    for path in paths:
        normalized = guard.validate(path)
        try:
            content = read_file(root / normalized)
        except FileSystemError as e:
            raise FileUpdateError(f"Failed to read file for codebase: {e}", path=path) from e
        parts.append(format_file_block(path, content))
    return "".join(parts)


def build_codebase_context(
    client: LlmClient,
    root: str | Path,
    next_agent_prompt: str,
    log_prefix: str = "0-context-query",
) -> str:
    """
    Let the model pick the files the next prompt needs, and load them.

    Args:
        client: LLM client used for the selection query.
        root: Project root.
        next_agent_prompt: The prompt the selected context will accompany.
        log_prefix: Run log prefix for the selection exchange.

    Raises:
        ResponseParsingError: If the reply has no well-formed ``%%%files`` block.
        FileUpdateError: If a requested file is off limits or unreadable.
    """
    summary = build_summary(root)
    prompt = (
        f"{COMMITTING_CODE_CONTEXT_QUERY}\n\n=== Next Agent Full Prompt ===\n"
        f"{next_agent_prompt}\n\n=== Codebase Summary ===\n{summary}"
    )
    response = client.query(prompt, log_prefix)
    paths = parse_extra_files_response(response)
    logger.info("Context query selected %d files", len(paths))
    return load_context_files(root, paths)


def extract_filenames_from_codebase(codebase: str) -> list[str]:
    """Return every ``--- X ---`` file header, skipping listing and replacement headers."""
    names = []
    for line in split_lines(codebase):
        if not (line.startswith("--- ") and line.endswith(" ---")) or len(line) < 8:
            continue
        name = line[4:-4]
        if name in ("FILENAMES", "END FILENAMES"):
            continue
        if name.startswith("FILE REPLACEMENT") or name.startswith("FILE REMOVED"):
            continue
        names.append(name)
    return names


def build_module_context(root: str | Path, module_dir: str | Path) -> str:
    """Every readable, non-ignored file directly inside ``module_dir``."""
    root = Path(root)
    directory = root / module_dir
    ignore = load_gitignore(root)
    parts = []
    for path in _visible_files(root, directory, ignore, include_hidden=True):
        try:
            content = read_file(path)
        except FileSystemError as e:
            logger.debug("Skipping unreadable module file %s: %s", path, e)
            continue
        parts.append(format_file_block(_rel(root, path), content))
    return "".join(parts)


def read_dependency_entries(dependency_file: Path) -> list[str]:
    """
    Non-blank, non-comment lines of a ModuleDependencies.md, trimmed.

    Raises:
        ConfigError: If the file cannot be read.
    """
    try:
        content = read_file(dependency_file)
    except FileSystemError as e:
        raise ConfigError(f"Failed to read dependencies from {dependency_file}: {e}") from e
    entries = []
    for line in split_lines(content):
        entry = line.strip()
        if entry and not entry.startswith("#"):
            entries.append(entry)
    return entries


def build_dependency_context(root: str | Path, module_dir: str | Path) -> str:
    """
    Top-level spec, root pyproject.toml, module files, then each dependency's
    UserSpecification.md and APISignatures.md.

    Raises:
        FileUpdateError: If a file that belongs in the context cannot be read.
        ConfigError: If the module's ModuleDependencies.md cannot be read.
    """
    root = Path(root)
    parts = []
    for name in ("UserSpecification.md", "pyproject.toml"):
        path = root / name
        if path.is_file() and Path(module_dir) != Path("."):
            parts.append(format_file_block(name, _read_context_file(root, path)))

    parts.append(build_module_context(root, module_dir))

    guard = ContextPathGuard(root)
    dependency_file = root / module_dir / "ModuleDependencies.md"
    if dependency_file.is_file():
        for entry in read_dependency_entries(dependency_file):
            for note in ("UserSpecification.md", "APISignatures.md"):
                rel_path = f"{entry.rstrip('/')}/{note}"
                if not guard.is_allowed(rel_path):
                    continue
                note_path = root / guard.validate(rel_path)
                if note_path.is_file():
                    content = _read_context_file(root, note_path)
                    parts.append(format_file_block(_rel(root, note_path), content))

    return "".join(parts)
