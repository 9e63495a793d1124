"""
Project scaffolding for ``specloop init``.

This module provides:
- create_project: lays out a minimal project the workflows can run on

Existing files are never overwritten, so running it inside a project that is
already set up only fills in what is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path

from specloop.config import AGENT_CONFIG_DIR
from specloop.errors import FileUpdateError
from specloop.utils.fs import FileSystemError, ensure_dir, safe_write

logger = logging.getLogger(__name__)

GITIGNORE_TEMPLATE = """\
/agent-config
/target/
__pycache__/
*.pyc
.venv/
"""

BUILD_SH_TEMPLATE = """\
#!/usr/bin/env bash
set -euo pipefail

python3 -m compileall -q src
if [ -d tests ]; then
    python3 -m pytest -q tests
fi
"""

MAIN_PY_TEMPLATE = """\
def main():
    print("Hello from your new specloop project!")


if __name__ == "__main__":
    main()
"""

USER_SPEC_TEMPLATE = """\
# User Specification

Describe your project here. This document defines your project's requirements \
and must remain the source of truth for your implementation.
"""

MODULE_DEPENDENCIES_TEMPLATE = """\
# One module directory per line, relative to the project root.
"""


def pyproject_template(project_name: str) -> str:
    return (
        "[project]\n"
        f'name = "{project_name}"\n'
        'version = "0.1.0"\n'
        'requires-python = ">=3.10"\n'
        "dependencies = []\n"
    )


def _write_if_missing(path: Path, content: str) -> bool:
    if path.exists():
        return False
    safe_write(path, content)
    return True


def create_project(base_dir: str | Path, project_name: str) -> list[str]:
    """
    Create the scaffold in ``base_dir``.

    Args:
        base_dir: Directory to populate. Created if needed.
        project_name: Name written into pyproject.toml.

    Returns:
        Root-relative paths of the files that were created, in creation order.

    Raises:
        FileUpdateError: If a directory or file cannot be created.
    """
    base = Path(base_dir)
    files = {
        ".gitignore": GITIGNORE_TEMPLATE,
        "build.sh": BUILD_SH_TEMPLATE,
        "pyproject.toml": pyproject_template(project_name),
        "src/main.py": MAIN_PY_TEMPLATE,
        "UserSpecification.md": USER_SPEC_TEMPLATE,
        "ModuleDependencies.md": MODULE_DEPENDENCIES_TEMPLATE,
        f"{AGENT_CONFIG_DIR}/query.txt": "",
    }

    created = []
    try:
        for directory in (AGENT_CONFIG_DIR, f"{AGENT_CONFIG_DIR}/logs", "src"):
            ensure_dir(base / directory)
        for rel_path, content in files.items():
            if _write_if_missing(base / rel_path, content):
                created.append(rel_path)
            else:
                logger.debug("Keeping existing %s", rel_path)
        if "build.sh" in created:
            (base / "build.sh").chmod(0o755)
    except (FileSystemError, OSError) as e:
        raise FileUpdateError(f"Failed to initialize project: {e}") from e

    logger.info("Initialized project %s in %s", project_name, base)
    return created
