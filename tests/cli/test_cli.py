"""Tests for the specloop command line interface."""

from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from conftest import add_module, write_file
from specloop import __version__
from specloop.auto_workflow import ExecutionResult, TaskOutcome
from specloop.cli import app
from specloop.discovery import Stage, Task, mark_stage_complete

runner = CliRunner()


def _invoke(project, *args):
    return runner.invoke(app, ["--project", str(project), *args])


def _write_gemini_key(project):
    write_file(project, "agent-config/gemini-key.txt", "test-key\n")


class TestAppBasics:
    """Help, version and project selection."""

    def test_help_lists_commands(self):
        """--help shows every command."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in (
            "commit", "auto", "status", "next", "check-paths", "consistency-check", "rollup", "init",
        ):
            assert command in result.output

    def test_version(self):
        """--version prints the package version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"specloop version {__version__}" in result.output

    def test_no_command_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "Usage" in result.output

    def test_missing_project_dir(self, tmp_path):
        result = runner.invoke(app, ["--project", str(tmp_path / "nope"), "status"])
        assert result.exit_code == 1
        assert "Project directory not found" in result.output


class TestCheckPaths:
    """check-paths command."""

    def test_allowed_paths(self, project):
        result = _invoke(project, "check-paths", "src/a.rs", "docs/x.md")
        assert result.exit_code == 0
        assert "src/a.rs" in result.output

    def test_rejected_path_exits_1(self, project):
        result = _invoke(project, "check-paths", "src/a.rs", "build.sh")
        assert result.exit_code == 1
        assert "build.sh" in result.output


class TestStatusAndNext:
    """status and next commands."""

    def test_status_table(self, project):
        add_module(project, "app", deps=["lib"])
        add_module(project, "lib")
        result = _invoke(project, "status")
        assert result.exit_code == 0
        assert "lib" in result.output
        assert "app" in result.output
        assert "0/4" in result.output

    def test_status_no_modules(self, project):
        result = _invoke(project, "status")
        assert result.exit_code == 0
        assert "No UserSpecification.md files found." in result.output

    def test_status_cycle_is_error(self, project):
        add_module(project, "a", deps=["b"])
        add_module(project, "b", deps=["a"])
        result = _invoke(project, "status")
        assert result.exit_code == 1
        assert "Dependency cycle detected" in result.output

    def test_next_task(self, project):
        add_module(project, "lib")
        result = _invoke(project, "next")
        assert result.exit_code == 0
        assert "Next task: lib/UserSpecification.md" in result.output
        assert "Self-consistent" in result.output

    def test_next_when_done(self, project):
        spec = add_module(project, "lib", spec="done")
        for stage in Stage.ordered():
            mark_stage_complete(project, spec, stage, "done")
        result = _invoke(project, "next")
        assert result.exit_code == 0
        assert "All modules have passed every stage." in result.output


class TestCommit:
    """commit command."""

    def test_missing_gitignore(self, tmp_path):
        result = _invoke(tmp_path, "commit", "-q", "do it", "--force")
        assert result.exit_code == 1
        assert "file not found" in result.output

    def test_unknown_model(self, project):
        result = _invoke(project, "commit", "-m", "claude", "-q", "x", "--force")
        assert result.exit_code == 1
        assert "Unsupported model: claude" in result.output

    def test_empty_query(self, project):
        result = _invoke(project, "commit", "-q", "   ", "--force")
        assert result.exit_code == 1
        assert "The supervisor query is empty." in result.output

    def test_dirty_tree_blocks_without_force(self, project):
        with patch("specloop.git_status.subprocess.run") as run:
            run.return_value = MagicMock(returncode=0, stdout=" M src/a.rs\n", stderr="")
            result = _invoke(project, "commit", "-q", "do it")
        assert result.exit_code == 1
        assert "--force" in result.output

    def test_successful_commit(self, project):
        _write_gemini_key(project)
        with patch("specloop.repair_loop.run_commit_workflow", return_value="done") as workflow:
            result = _invoke(project, "commit", "-q", "add a flag", "--force")
        assert result.exit_code == 0, result.output
        assert "Build successful." in result.output
        config = workflow.call_args.args[0]
        assert config.query == "add a flag"
        assert config.root_path == project

    def test_workflow_error_exits_1(self, project):
        from specloop.errors import MaxAttemptsReachedError

        _write_gemini_key(project)
        with patch(
            "specloop.repair_loop.run_commit_workflow",
            side_effect=MaxAttemptsReachedError(4),
        ):
            result = _invoke(project, "commit", "-q", "x", "--force")
        assert result.exit_code == 1
        assert "maximum number of attempts" in result.output


class TestAuto:
    """auto command."""

    def test_nothing_to_do(self, project):
        _write_gemini_key(project)
        result = _invoke(project, "auto")
        assert result.exit_code == 0, result.output
        assert "No more tasks to process" in result.output

    def test_failure_exits_1(self, project):
        _write_gemini_key(project)
        outcome = TaskOutcome(Task("a/UserSpecification.md", Stage.COMPLETE), ExecutionResult.FAILURE)
        with patch("specloop.auto_workflow.run", return_value=[outcome]):
            result = _invoke(project, "auto")
        assert result.exit_code == 1
        assert "Auto workflow task failed." in result.output

    def test_max_tasks_passed_through(self, project):
        _write_gemini_key(project)
        with patch("specloop.auto_workflow.run", return_value=[]) as run:
            result = _invoke(project, "auto", "--max-tasks", "3", "-m", "gemini-2.5-pro")
        assert result.exit_code == 0, result.output
        assert run.call_args.kwargs["max_tasks"] == 3

    def test_missing_key(self, project):
        result = _invoke(project, "auto")
        assert result.exit_code == 1
        assert "gemini-key.txt" in result.output


class TestConsistencyCheck:
    """consistency-check command."""

    def test_report_written(self, project):
        _write_gemini_key(project)
        write_file(project, "UserSpecification.md", "spec")
        with patch("specloop.llm_clients.LlmClient.query", return_value="all good") as query:
            result = _invoke(project, "consistency-check", "-q", "")
        assert result.exit_code == 0, result.output
        assert "Consistency report written to" in result.output
        assert (project / "agent-config/consistency-report.txt").read_text() == "all good"
        assert query.call_args.args[1] == "1-consistency-check"

    def test_query_from_editor(self, project):
        _write_gemini_key(project)
        with patch("specloop.config.get_query_from_editor", return_value="focus on auth"), patch(
            "specloop.consistency.run_consistency_check",
            return_value=project / "agent-config/consistency-report.txt",
        ) as check:
            result = _invoke(project, "consistency-check")
        assert result.exit_code == 0, result.output
        assert check.call_args.args[0].query == "focus on auth"

    def test_missing_gitignore(self, tmp_path):
        result = _invoke(tmp_path, "consistency-check", "-q", "x")
        assert result.exit_code == 1
        assert "file not found" in result.output


class TestRollup:
    """rollup command."""

    def test_writes_rollup(self, project):
        write_file(project, "src/main.py", "print('hi')")
        write_file(project, "Cargo.lock", "# lock")
        result = _invoke(project, "rollup")
        assert result.exit_code == 0, result.output
        assert "Codebase rollup saved to" in result.output
        content = (project / "agent-config/codebase.txt").read_text()
        assert "--- src/main.py ---" in content
        assert "Cargo.lock" not in content

    def test_full_includes_lock_file(self, project):
        write_file(project, "Cargo.lock", "# lock")
        result = _invoke(project, "rollup", "--full")
        assert result.exit_code == 0, result.output
        assert "--- Cargo.lock ---" in (project / "agent-config/codebase.txt").read_text()


class TestInit:
    """init command."""

    def test_scaffolds_project(self, tmp_path):
        result = _invoke(tmp_path, "init", "demo")
        assert result.exit_code == 0, result.output
        assert "created build.sh" in result.output
        assert 'name = "demo"' in (tmp_path / "pyproject.toml").read_text()

    def test_default_name_is_directory_name(self, tmp_path):
        target = tmp_path / "my-tool"
        target.mkdir()
        result = _invoke(target, "init")
        assert result.exit_code == 0, result.output
        assert 'name = "my-tool"' in (target / "pyproject.toml").read_text()

    def test_rerun_reports_nothing_to_do(self, tmp_path):
        _invoke(tmp_path, "init", "demo")
        result = _invoke(tmp_path, "init", "demo")
        assert result.exit_code == 0
        assert "already initialized" in result.output
