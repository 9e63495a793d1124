"""
Module dependency graph for the auto workflow.

Each module directory (one holding a UserSpecification.md) must list the
module directories it depends on in ModuleDependencies.md, one root-relative
path per line. Blank lines and ``#`` comments are ignored, and entries that
do not name a known module are dropped. A module's level is 0 without known
dependencies, otherwise one more than its deepest dependency.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from specloop.errors import ConfigError
from specloop.response_parser import split_lines
from specloop.utils.fs import FileSystemError, read_file

DEPENDENCIES_FILE = "ModuleDependencies.md"


@dataclass
class ModuleNode:
    """A module directory and its resolved dependencies (root-relative)."""
    path: str
    dependencies: list[str] = field(default_factory=list)
    level: int = 0


def module_dir_of(root: Path, spec_path: str | Path) -> str:
    """Root-relative POSIX directory of a specification file ("." for the root)."""
    spec = Path(spec_path)
    if spec.is_absolute():
        spec = spec.relative_to(root)
    parent = spec.parent.as_posix()
    return posixpath.normpath(parent) if parent else "."


def _normalize_entry(entry: str) -> str:
    return posixpath.normpath(entry.replace("\\", "/").rstrip("/") or ".")


def parse_dependencies(root: Path, module_dir: str) -> list[str]:
    """
    Read a module's ModuleDependencies.md.

    Raises:
        ConfigError: If the file is missing or unreadable.
    """
    dep_file = root / module_dir / DEPENDENCIES_FILE
    if not dep_file.is_file():
        raise ConfigError(f"Module {module_dir} is missing {DEPENDENCIES_FILE}")
    try:
        content = read_file(dep_file)
    except FileSystemError as e:
        raise ConfigError(f"Failed to read dependencies for {module_dir}: {e}")

    deps = []
    for line in split_lines(content):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        deps.append(_normalize_entry(trimmed))
    return deps


def build_dependency_graph(
    root: str | Path, spec_paths: Iterable[str | Path]
) -> list[ModuleNode]:
    """
    Build the graph and assign levels.

    Args:
        root: Project root.
        spec_paths: UserSpecification.md paths, absolute or root-relative.

    Returns:
        Nodes sorted by module path.

    Raises:
        ConfigError: If a module lacks ModuleDependencies.md or the
            dependencies form a cycle.
    """
    root = Path(root)
    module_dirs = sorted({module_dir_of(root, p) for p in spec_paths})
    known = set(module_dirs)

    nodes: dict[str, ModuleNode] = {}
    for module_dir in module_dirs:
        deps = [d for d in parse_dependencies(root, module_dir) if d in known]
        nodes[module_dir] = ModuleNode(path=module_dir, dependencies=deps)

    resolved: set[str] = set()
    on_stack: set[str] = set()

    for start in module_dirs:
        if start in resolved:
            continue
        # Explicit DFS stack of (module, pending dependencies) frames.
        on_stack.add(start)
        stack = [(start, iter(nodes[start].dependencies))]
        while stack:
            current, pending = stack[-1]
            dep = next(pending, None)
            if dep is None:
                node = nodes[current]
                node.level = max((nodes[d].level + 1 for d in node.dependencies), default=0)
                stack.pop()
                on_stack.discard(current)
                resolved.add(current)
            elif dep in on_stack:
                raise ConfigError(f"Dependency cycle detected involving {dep}")
            elif dep not in resolved:
                on_stack.add(dep)
                stack.append((dep, iter(nodes[dep].dependencies)))

    return [nodes[m] for m in module_dirs]
