# tests/conftest.py

import pytest
from pathlib import Path
from typing import Optional

from specloop.build_runner import BuildResult


def write_file(root: Path, rel_path: str, content: str) -> Path:
    """Create ``root/rel_path`` (and parents) with ``content``."""
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def add_module(root: Path, module_dir: str, spec: str = "spec", deps: Optional[list[str]] = None) -> str:
    """Create a module directory with its specification and dependency list."""
    prefix = "" if module_dir == "." else f"{module_dir}/"
    write_file(root, f"{prefix}UserSpecification.md", spec)
    write_file(root, f"{prefix}ModuleDependencies.md", "\n".join(deps or []) + "\n")
    return f"{prefix}UserSpecification.md"


class ScriptedActions:
    """
    AgentActions double: replays canned model responses and build results.

    Every prompt is recorded with its log prefix for later assertions.
    """

    def __init__(self, responses: list[str], builds: Optional[list[BuildResult]] = None):
        self.responses = list(responses)
        self.builds = list(builds or [])
        self.prompts: list[tuple[str, str]] = []
        self.build_calls = 0

    def query_llm(self, prompt: str, log_prefix: str) -> str:
        self.prompts.append((log_prefix, prompt))
        if not self.responses:
            raise AssertionError(f"Unexpected LLM query: {log_prefix}")
        return self.responses.pop(0)

    def run_build(self) -> BuildResult:
        self.build_calls += 1
        if not self.builds:
            return BuildResult(success=True, output="STDOUT:\nok\n\nSTDERR:\n")
        return self.builds.pop(0)

    @property
    def log_prefixes(self) -> list[str]:
        return [prefix for prefix, _ in self.prompts]


def failed_build(message: str = "error: boom") -> BuildResult:
    return BuildResult(success=False, output=f"STDOUT:\n\n\nSTDERR:\n{message}", returncode=1)


def passed_build() -> BuildResult:
    return BuildResult(success=True, output="STDOUT:\nok\n\nSTDERR:\n")


@pytest.fixture
def project(tmp_path):
    """Project root with a .gitignore that protects agent-config/."""
    root = tmp_path / "project"
    root.mkdir()
    write_file(root, ".gitignore", "/agent-config\n")
    return root
