"""Tests for configuration loading, key resolution and the .gitignore check."""

from unittest.mock import MagicMock, patch

import pytest

from specloop.config import (
    Backend,
    SpecloopConfig,
    check_gitignore,
    get_query_from_editor,
    load_config,
)
from specloop.errors import ConfigError


def _write_key(root, backend=Backend.GEMINI, key="secret-key\n"):
    path = root / backend.key_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(key)


class TestCheckGitignore:
    """The agent-config/ guard line."""

    def test_missing_gitignore(self, tmp_path):
        with pytest.raises(ConfigError, match="'.gitignore' file not found"):
            check_gitignore(tmp_path)

    def test_missing_guard_line(self, tmp_path):
        (tmp_path / ".gitignore").write_text("target/\n")
        with pytest.raises(ConfigError, match="Security check failed"):
            check_gitignore(tmp_path)

    @pytest.mark.parametrize("line", ["/agent-config", "  agent-config/  "])
    def test_guard_line_accepted(self, tmp_path, line):
        """Either accepted spelling passes, surrounding whitespace ignored."""
        (tmp_path / ".gitignore").write_text(f"target/\n{line}\n")
        check_gitignore(tmp_path)


class TestBackend:
    def test_from_name(self):
        assert Backend.from_name("gpt-5") is Backend.GPT
        assert Backend.from_name("gemini-2.5-pro") is Backend.GEMINI

    def test_unknown_model(self):
        with pytest.raises(ConfigError, match="Unsupported model: claude"):
            Backend.from_name("claude")

    def test_key_files(self):
        assert Backend.GEMINI.key_file == "agent-config/gemini-key.txt"
        assert Backend.GPT.key_file == "agent-config/openai-key.txt"


class TestLoadConfig:
    """load_config with and without a YAML file."""

    def test_defaults_with_key_file(self, project):
        """Without config.yaml the defaults apply and the key is trimmed."""
        _write_key(project)
        config = load_config(project, query="do it")
        assert config.llm.backend is Backend.GEMINI
        assert config.llm.api_key == "secret-key"
        assert config.loop.max_attempts == 4
        assert config.loop.build_script == "build.sh"
        assert config.query == "do it"
        assert config.logs_path == project / "agent-config" / "logs"

    def test_command_line_backend_wins(self, project):
        _write_key(project, Backend.GPT, "sk-123")
        (project / "agent-config" / "config.yaml").write_text("llm:\n  backend: gemini-2.5-pro\n")
        config = load_config(project, backend=Backend.GPT)
        assert config.llm.backend is Backend.GPT
        assert config.llm.api_key == "sk-123"

    def test_yaml_values(self, project, monkeypatch):
        """YAML settings and ${VAR} substitution."""
        monkeypatch.setenv("SPECLOOP_TEST_KEY", "from-env")
        (project / "agent-config").mkdir()
        (project / "agent-config" / "config.yaml").write_text(
            "llm:\n"
            "  backend: gpt-5\n"
            "  api_key: ${SPECLOOP_TEST_KEY}\n"
            "  timeout_seconds: 30\n"
            "loop:\n"
            "  max_attempts: 2\n"
            "  build_script: ci.sh\n"
            "  extra_files_query: false\n"
        )
        config = load_config(project)
        assert config.llm.backend is Backend.GPT
        assert config.llm.api_key == "from-env"
        assert config.llm.timeout_seconds == 30.0
        assert config.loop.max_attempts == 2
        assert config.loop.build_script == "ci.sh"
        assert config.loop.extra_files_query is False

    def test_api_key_env_var(self, project, monkeypatch):
        monkeypatch.setenv("MY_GEMINI_KEY", " k ")
        (project / "agent-config").mkdir()
        (project / "agent-config" / "config.yaml").write_text(
            "llm:\n  api_key_env_var: MY_GEMINI_KEY\n"
        )
        assert load_config(project).llm.api_key == "k"

    def test_unset_env_var(self, project, monkeypatch):
        monkeypatch.delenv("SPECLOOP_UNSET_VAR", raising=False)
        (project / "agent-config").mkdir()
        (project / "agent-config" / "config.yaml").write_text(
            "llm:\n  api_key: ${SPECLOOP_UNSET_VAR}\n"
        )
        with pytest.raises(ConfigError, match="SPECLOOP_UNSET_VAR"):
            load_config(project)

    def test_missing_key_file(self, project):
        with pytest.raises(ConfigError, match="gemini-key.txt"):
            load_config(project)

    def test_invalid_yaml(self, project):
        _write_key(project)
        (project / "agent-config" / "config.yaml").write_text("llm: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(project)

    def test_non_mapping_yaml(self, project):
        _write_key(project)
        (project / "agent-config" / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config(project)

    def test_invalid_max_attempts(self, project):
        _write_key(project)
        (project / "agent-config" / "config.yaml").write_text("loop:\n  max_attempts: 0\n")
        with pytest.raises(ConfigError, match="max_attempts"):
            load_config(project)

    def test_gitignore_checked_first(self, tmp_path):
        """No key is read when the .gitignore check fails."""
        with pytest.raises(ConfigError, match=".gitignore"):
            load_config(tmp_path)

    def test_repo_root_made_absolute(self):
        assert SpecloopConfig(repo_root="relative").root_path.is_absolute()


class TestGetQueryFromEditor:
    """Collecting the supervisor query."""

    def test_reads_saved_text(self, monkeypatch):
        monkeypatch.setenv("VISUAL", "fake-editor")

        def fake_run(args):
            assert args[0] == "fake-editor"
            with open(args[1], "w") as f:
                f.write("  add a flag  \n")
            return MagicMock(returncode=0)

        with patch("specloop.config.subprocess.run", side_effect=fake_run):
            assert get_query_from_editor() == "add a flag"

    def test_editor_failure(self, monkeypatch):
        monkeypatch.setenv("VISUAL", "fake-editor")
        with patch("specloop.config.subprocess.run", return_value=MagicMock(returncode=1)):
            with pytest.raises(ConfigError, match="non-zero"):
                get_query_from_editor()

    def test_editor_not_found(self, monkeypatch):
        monkeypatch.delenv("VISUAL", raising=False)
        monkeypatch.setenv("EDITOR", "no-such-editor")
        with patch("specloop.config.subprocess.run", side_effect=FileNotFoundError("nope")):
            with pytest.raises(ConfigError, match="no-such-editor"):
                get_query_from_editor()
