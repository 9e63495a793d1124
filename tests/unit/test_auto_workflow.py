"""Tests for the specification review workflow."""

import pytest

from conftest import ScriptedActions, add_module, failed_build, write_file
from specloop import auto_workflow
from specloop.auto_workflow import ExecutionResult, execute_task, task_log_name
from specloop.discovery import Stage, Task, get_cached_spec, mark_stage_complete, module_progress
from specloop.errors import FileUpdateError, MaxAttemptsReachedError, ResponseParsingError
from specloop.logger import RunLogger

SUCCESS = "Looks good.\n@@@@task-success@@@@\n"
REQUESTED = "%%%%comment%%%%\nSection 2 contradicts section 4.\n%%%%end%%%%\n@@@@changes-requested@@@@\n"


def _pass_stages(root, spec_path, stages):
    content = (root / spec_path).read_text()
    for stage in stages:
        mark_stage_complete(root, spec_path, stage, content)


class TestTaskLogName:
    def test_slashes_replaced(self):
        task = Task("src/a/UserSpecification.md", Stage.COMPLETE)
        assert task_log_name(task) == "auto-workflow-src+a+UserSpecification.md-complete"


class TestExecuteSelfConsistent:
    """The single-query stage."""

    def test_success_records_stage(self, project):
        spec = add_module(project, "a", spec="SPEC")
        actions = ScriptedActions([SUCCESS])
        outcome = execute_task(Task(spec, Stage.SELF_CONSISTENT), project, actions)
        assert outcome.result is ExecutionResult.SUCCESS
        assert get_cached_spec(project, spec, Stage.SELF_CONSISTENT) == "SPEC"
        assert actions.build_calls == 0
        assert actions.log_prefixes == ["auto-workflow-a+UserSpecification.md-self-consistent"]

    def test_changes_requested_comment(self, project):
        spec = add_module(project, "a")
        outcome = execute_task(Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions([REQUESTED]))
        assert outcome.result is ExecutionResult.CHANGES_REQUESTED
        assert outcome.comment == "Section 2 contradicts section 4."
        assert module_progress(project, spec) == 0

    def test_changes_attempted_applies_edits(self, project):
        spec = add_module(project, "a")
        response = "^^^a/notes.md\nclarified\n^^^end\n@@@@changes-attempted@@@@\n"
        outcome = execute_task(Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions([response]))
        assert outcome.result is ExecutionResult.CHANGES_ATTEMPTED
        assert (project / "a/notes.md").read_text() == "clarified"
        assert module_progress(project, spec) == 0

    def test_edits_without_changes_attempted(self, project):
        spec = add_module(project, "a")
        response = "^^^a/x.rs\ncode\n^^^end\n@@@@task-success@@@@\n"
        with pytest.raises(FileUpdateError, match="without 'changes-attempted' status"):
            execute_task(Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions([response]))
        assert not (project / "a/x.rs").exists()
        assert module_progress(project, spec) == 0

    def test_missing_status_is_failure(self, project, tmp_path):
        spec = add_module(project, "a")
        run_logger = RunLogger(tmp_path / "logs", "auto-workflow")
        outcome = execute_task(
            Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions(["I am unsure."]), run_logger
        )
        assert outcome.result is ExecutionResult.FAILURE
        error_log = run_logger.log_dir / "auto-workflow-a+UserSpecification.md-self-consistent_error.txt"
        assert error_log.read_text() == "I am unsure."

    def test_multiple_statuses_raise(self, project):
        spec = add_module(project, "a")
        response = "@@@@task-success@@@@\n@@@@changes-requested@@@@\n"
        with pytest.raises(ResponseParsingError, match="Multiple status tags"):
            execute_task(Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions([response]))

    def test_mismatched_comment_raises(self, project):
        spec = add_module(project, "a")
        response = "%%%%comment%%%%\nunterminated\n@@@@task-success@@@@\n"
        with pytest.raises(ResponseParsingError, match="Mismatched comment tags"):
            execute_task(Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions([response]))

    def test_forbidden_edit_rejected(self, project):
        spec = add_module(project, "a")
        response = "^^^a/UserSpecification.md\nrewritten\n^^^end\n@@@@changes-attempted@@@@\n"
        with pytest.raises(FileUpdateError, match="critical file"):
            execute_task(Task(spec, Stage.SELF_CONSISTENT), project, ScriptedActions([response]))
        assert (project / spec).read_text() == "spec"


class TestExecuteLaterStages:
    """Stages that go through the build-repair loop."""

    def test_success_after_build(self, project):
        spec = add_module(project, "a", spec="SPEC")
        _pass_stages(project, spec, [Stage.SELF_CONSISTENT])
        actions = ScriptedActions([SUCCESS])
        outcome = execute_task(Task(spec, Stage.PROJECT_CONSISTENT), project, actions)
        assert outcome.result is ExecutionResult.SUCCESS
        assert actions.build_calls == 1
        assert module_progress(project, spec) == 2
        assert actions.log_prefixes == [
            "auto-workflow-a+UserSpecification.md-project-consistent-1-initial-query"
        ]

    def test_changes_attempted_applied_once_through_loop(self, project):
        spec = add_module(project, "a")
        response = "^^^a/lib.rs\nfixed\n^^^end\n@@@@changes-attempted@@@@\n"
        actions = ScriptedActions([response])
        outcome = execute_task(Task(spec, Stage.COMPLETE), project, actions)
        assert outcome.result is ExecutionResult.CHANGES_ATTEMPTED
        assert (project / "a/lib.rs").read_text() == "fixed"
        assert actions.build_calls == 1

    def test_build_never_passes(self, project):
        spec = add_module(project, "a")
        actions = ScriptedActions(
            [SUCCESS, "%%%files\n%%%end\n", SUCCESS],
            [failed_build(), failed_build()],
        )
        with pytest.raises(MaxAttemptsReachedError):
            execute_task(Task(spec, Stage.SECURE), project, actions, max_attempts=2)
        assert get_cached_spec(project, spec, Stage.SECURE) is None


class TestRun:
    """The whole workflow loop."""

    def test_walks_all_stages(self, project):
        spec = add_module(project, "a", spec="SPEC")
        actions = ScriptedActions([SUCCESS] * 4)
        seen = []
        outcomes = auto_workflow.run(project, actions, on_outcome=seen.append)
        assert [o.task.stage for o in outcomes] == Stage.ordered()
        assert all(o.result is ExecutionResult.SUCCESS for o in outcomes)
        assert seen == outcomes
        assert module_progress(project, spec) == 4

    def test_lower_level_module_first(self, project):
        add_module(project, "app", deps=["lib"])
        add_module(project, "lib")
        outcomes = auto_workflow.run(project, ScriptedActions([SUCCESS, SUCCESS]), max_tasks=2)
        assert [o.task.spec_path for o in outcomes] == [
            "lib/UserSpecification.md",
            "app/UserSpecification.md",
        ]

    def test_stops_on_changes_requested(self, project):
        add_module(project, "a")
        add_module(project, "b")
        actions = ScriptedActions([REQUESTED, SUCCESS])
        outcomes = auto_workflow.run(project, actions)
        assert len(outcomes) == 1
        assert outcomes[0].result is ExecutionResult.CHANGES_REQUESTED
        assert actions.responses == [SUCCESS]

    def test_stops_on_failure(self, project):
        add_module(project, "a")
        outcomes = auto_workflow.run(project, ScriptedActions(["no status"]))
        assert [o.result for o in outcomes] == [ExecutionResult.FAILURE]

    def test_changes_attempted_retries_same_stage(self, project):
        spec = add_module(project, "a")
        attempted = "^^^a/notes.md\nv2\n^^^end\n@@@@changes-attempted@@@@\n"
        outcomes = auto_workflow.run(project, ScriptedActions([attempted, SUCCESS]), max_tasks=2)
        assert [(o.task.stage, o.result) for o in outcomes] == [
            (Stage.SELF_CONSISTENT, ExecutionResult.CHANGES_ATTEMPTED),
            (Stage.SELF_CONSISTENT, ExecutionResult.SUCCESS),
        ]
        assert module_progress(project, spec) == 1

    def test_nothing_to_do(self, project):
        spec = add_module(project, "a")
        _pass_stages(project, spec, Stage.ordered())
        assert auto_workflow.run(project, ScriptedActions([])) == []

    def test_edited_spec_restarts(self, project):
        """An edited specification is reviewed again from the first stage."""
        spec = add_module(project, "a", spec="v1")
        _pass_stages(project, spec, Stage.ordered())
        write_file(project, spec, "v2")
        outcomes = auto_workflow.run(project, ScriptedActions([SUCCESS]), max_tasks=1)
        assert outcomes[0].task == Task(spec, Stage.SELF_CONSISTENT)
        assert get_cached_spec(project, spec, Stage.SELF_CONSISTENT) == "v2"
