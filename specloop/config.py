"""
Configuration loading and validation for specloop.

This module handles:
- The .gitignore safety check protecting agent-config/ (keys and logs)
- Loading the optional agent-config/config.yaml
- Environment variable resolution (${VAR} syntax)
- Reading the API key for the selected backend
- Collecting the supervisor query from the user's editor
"""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from specloop.errors import ConfigError

AGENT_CONFIG_DIR = "agent-config"
AGENT_STATE_DIR = "agent-state"
DEFAULT_CONFIG_FILE = f"{AGENT_CONFIG_DIR}/config.yaml"
GITIGNORE_GUARD_LINES = ("/agent-config", "agent-config/")


class Backend(Enum):
    """LLM backend families. The value is the name accepted by --model."""

    GEMINI = "gemini-2.5-pro"
    GPT = "gpt-5"

    @classmethod
    def from_name(cls, name: str) -> Backend:
        """Resolve a --model value, raising ConfigError for unknown names."""
        for backend in cls:
            if backend.value == name:
                return backend
        raise ConfigError(f"Unsupported model: {name}")

    @property
    def key_file(self) -> str:
        """Key file, relative to the project root."""
        if self is Backend.GPT:
            return f"{AGENT_CONFIG_DIR}/openai-key.txt"
        return f"{AGENT_CONFIG_DIR}/gemini-key.txt"


@dataclass
class LlmConfig:
    """LLM backend configuration."""
    backend: Backend = Backend.GEMINI
    model: Optional[str] = None                # Overrides the backend's default model name
    api_key: str = ""
    timeout_seconds: float = 600.0             # Read timeout per request
    connect_timeout_seconds: float = 15.0


@dataclass
class LoopConfig:
    """Build-repair loop configuration."""
    max_attempts: int = 4                      # LLM round trips per run
    build_script: str = "build.sh"             # Run with bash from the project root
    extra_files_query: bool = True             # Ask for missing context after a failed build


@dataclass
class SpecloopConfig:
    """
    Main configuration for specloop.

    The query and system prompt text are opaque inputs handed to the
    build-repair loop.
    """
    repo_root: str = "."
    llm: LlmConfig = field(default_factory=LlmConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    query: str = ""
    system_prompts: str = ""

    def __post_init__(self) -> None:
        """Convert repo_root to an absolute path."""
        self.repo_root = str(Path(self.repo_root).absolute())

    @property
    def root_path(self) -> Path:
        return Path(self.repo_root)

    @property
    def agent_config_path(self) -> Path:
        """Absolute path to the agent-config directory."""
        return self.root_path / AGENT_CONFIG_DIR

    @property
    def logs_path(self) -> Path:
        """Absolute path to the run log directory."""
        return self.agent_config_path / "logs"

    @property
    def state_path(self) -> Path:
        """Absolute path to the stage cache directory."""
        return self.root_path / AGENT_STATE_DIR / "specifications"


def check_gitignore(base_dir: str | Path) -> None:
    """
    Ensure .gitignore exists and keeps agent-config/ out of version control.

    Raises:
        ConfigError: If .gitignore is missing, unreadable, or lacks the guard line.
    """
    gitignore_path = Path(base_dir) / ".gitignore"
    try:
        content = gitignore_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(
            "'.gitignore' file not found. It must exist and contain "
            "'/agent-config' to protect secrets."
        )
    except OSError as e:
        raise ConfigError(f"Failed to read file '.gitignore': {e}")

    if not any(line.strip() in GITIGNORE_GUARD_LINES for line in content.splitlines()):
        raise ConfigError(
            "Security check failed: Your .gitignore file must contain the line "
            "'/agent-config' to prevent accidental exposure of your API keys and logs."
        )


def _resolve_env_vars(value: Any) -> Any:
    """
    Resolve environment variables in a value.

    Supports ${VAR} syntax for environment variable substitution.
    Returns the original value if it's not a string.
    """
    if isinstance(value, str):
        pattern = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

        def replace(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable ${{{var_name}}} is not set")
            return env_value

        return pattern.sub(replace, value)

    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]

    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Read the optional YAML config. A missing file yields an empty dict."""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return _resolve_env_vars(raw_data)


def _read_api_key(base_dir: Path, backend: Backend, data: dict[str, Any]) -> str:
    """Resolve the API key: explicit value, then env var, then key file."""
    if data.get("api_key"):
        return str(data["api_key"]).strip()

    env_var = data.get("api_key_env_var")
    if env_var:
        value = os.environ.get(env_var, "")
        if not value:
            raise ConfigError(f"Environment variable {env_var} is not set")
        return value.strip()

    key_path = base_dir / backend.key_file
    try:
        return key_path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfigError(f"Failed to read file '{backend.key_file}': {e}")


def _parse_llm_config(
    base_dir: Path, data: dict[str, Any], backend: Optional[Backend]
) -> LlmConfig:
    """Parse LLM configuration from dict."""
    if backend is None:
        backend = Backend.from_name(data.get("backend", Backend.GEMINI.value))
    return LlmConfig(
        backend=backend,
        model=data.get("model"),
        api_key=_read_api_key(base_dir, backend, data),
        timeout_seconds=float(data.get("timeout_seconds", 600.0)),
        connect_timeout_seconds=float(data.get("connect_timeout_seconds", 15.0)),
    )


def _parse_loop_config(data: dict[str, Any]) -> LoopConfig:
    """Parse loop configuration from dict."""
    max_attempts = int(data.get("max_attempts", 4))
    if max_attempts < 1:
        raise ConfigError("loop.max_attempts must be at least 1")
    return LoopConfig(
        max_attempts=max_attempts,
        build_script=data.get("build_script", "build.sh"),
        extra_files_query=bool(data.get("extra_files_query", True)),
    )


def load_config(
    base_dir: str | Path = ".",
    backend: Optional[Backend] = None,
    query: str = "",
    system_prompts: str = "",
    config_path: Optional[str | Path] = None,
) -> SpecloopConfig:
    """
    Load configuration for a project.

    Args:
        base_dir: Project root.
        backend: Backend chosen on the command line; overrides llm.backend.
        query: Supervisor query text.
        system_prompts: Workflow-specific instruction text.
        config_path: Optional YAML path; defaults to agent-config/config.yaml.

    Returns:
        SpecloopConfig: Loaded and validated configuration.

    Raises:
        ConfigError: If the .gitignore check fails, the YAML is invalid, or no
            API key can be read.
    """
    base = Path(base_dir)
    check_gitignore(base)

    path = Path(config_path) if config_path is not None else base / DEFAULT_CONFIG_FILE
    data = _load_yaml(path)

    return SpecloopConfig(
        repo_root=str(base),
        llm=_parse_llm_config(base, data.get("llm") or {}, backend),
        loop=_parse_loop_config(data.get("loop") or {}),
        query=query,
        system_prompts=system_prompts,
    )


def get_query_from_editor() -> str:
    """
    Open the user's editor on a temporary Markdown file and return its text.

    Uses $VISUAL, then $EDITOR, then vi.

    Raises:
        ConfigError: If the editor cannot be launched or exits non-zero.
    """
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"

    fd, temp_path = tempfile.mkstemp(suffix=".md")
    os.close(fd)
    try:
        try:
            result = subprocess.run([editor, temp_path])
        except OSError as e:
            raise ConfigError(f"Failed to launch editor '{editor}': {e}")
        if result.returncode != 0:
            raise ConfigError("Editor exited with non-zero status.")

        # Re-open by path: editors often save by replacing the file.
        return Path(temp_path).read_text(encoding="utf-8").strip()
    finally:
        Path(temp_path).unlink(missing_ok=True)
