"""
Auto workflow: walks every module through the review stages.

This module provides:
- ExecutionResult / TaskOutcome for one executed task
- execute_task: prompt the model for one (module, stage) and act on its status
- run: repeat find_next_task + execute_task until done, blocked or failed

Status handling:
- task-success: the stage is recorded by caching the specification text
- changes-requested: a human must edit the specification; the run stops
- changes-attempted: the model's file replacements are applied and the same
  stage is reviewed again on the next iteration
- no status: the task failed; the run stops
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from specloop.discovery import (
    ModuleStatus,
    Stage,
    Task,
    find_next_task,
    mark_stage_complete,
    read_spec,
    select_lowest_level,
)
from specloop.errors import FileUpdateError
from specloop.file_updater import FileUpdater
from specloop.logger import RunLogger
from specloop.prompts import COMMITTING_CODE_INITIAL_QUERY
from specloop.repair_loop import MAX_ATTEMPTS, AgentActions, RepairLoop
from specloop.response_parser import (
    StatusSentinel,
    extract_comment,
    find_status_sentinels,
    has_pending_updates,
    parse_llm_response,
    validate_response_format,
)
from specloop.stage_prompts import build_stage_prompt

logger = logging.getLogger(__name__)


class ExecutionResult(Enum):
    SUCCESS = "success"
    CHANGES_REQUESTED = "changes-requested"
    CHANGES_ATTEMPTED = "changes-attempted"
    FAILURE = "failure"


@dataclass
class TaskOutcome:
    """What happened to one task."""
    task: Task
    result: ExecutionResult
    comment: Optional[str] = None


def task_log_name(task: Task) -> str:
    return f"auto-workflow-{task.spec_path.replace('/', '+')}-{task.stage}"


def execute_task(
    task: Task,
    root: str | Path,
    actions: AgentActions,
    run_logger: Optional[RunLogger] = None,
    max_attempts: int = MAX_ATTEMPTS,
    extra_files_query: bool = True,
) -> TaskOutcome:
    """
    Run one task.

    The self-consistent stage is a single model query. Later stages go
    through the build-repair loop, which applies file replacements and
    requires a passing build.

    Raises:
        FileUpdateError: If the response carries file replacements without
            the changes-attempted status, or a replacement is rejected.
        ResponseParsingError: If the response has several statuses or
            malformed comment markers.
        MaxAttemptsReachedError: If the build never passed.
    """
    root = Path(root)
    logger.info("Executing auto workflow: %s for %s", task.stage, task.spec_path)
    spec_content = read_spec(root, task.spec_path)
    prompt = build_stage_prompt(root, task, spec_content)
    log_name = task_log_name(task)

    if task.stage is Stage.SELF_CONSISTENT:
        response = actions.query_llm(prompt, log_name)
        already_applied = False
    else:
        loop = RepairLoop(
            root,
            actions,
            run_logger=run_logger,
            max_attempts=max_attempts,
            extra_files_query=extra_files_query,
            log_namespace=f"{log_name}-",
        )
        response = loop.run(prompt, COMMITTING_CODE_INITIAL_QUERY, "")
        already_applied = True

    if (
        has_pending_updates(response)
        and StatusSentinel.CHANGES_ATTEMPTED.value not in response
    ):
        raise FileUpdateError(
            "Code modifications provided without 'changes-attempted' status."
        )

    comment = extract_comment(response)
    comment = comment.strip() if comment is not None else None

    if not find_status_sentinels(response):
        logger.error("LLM response for %s did not contain a status", task.spec_path)
        if run_logger is not None:
            run_logger.log_text(f"{log_name}_error.txt", response)
            run_logger.error("task_failed", {"task": log_name})
        return TaskOutcome(task, ExecutionResult.FAILURE, comment)

    status = validate_response_format(response)
    if run_logger is not None and comment:
        run_logger.info("task_comment", {"task": log_name, "comment": comment})

    if status is StatusSentinel.TASK_SUCCESS:
        mark_stage_complete(root, task.spec_path, task.stage, spec_content)
        result = ExecutionResult.SUCCESS
    elif status is StatusSentinel.CHANGES_REQUESTED:
        result = ExecutionResult.CHANGES_REQUESTED
    else:
        if not already_applied:
            FileUpdater(root).apply_updates(parse_llm_response(response))
        result = ExecutionResult.CHANGES_ATTEMPTED

    if run_logger is not None:
        run_logger.info("task_complete", {"task": log_name, "result": result.value})
    return TaskOutcome(task, result, comment)


def run(
    root: str | Path,
    actions: AgentActions,
    run_logger: Optional[RunLogger] = None,
    max_tasks: Optional[int] = None,
    max_attempts: int = MAX_ATTEMPTS,
    extra_files_query: bool = True,
    select: Callable[[Sequence[ModuleStatus]], ModuleStatus] = select_lowest_level,
    on_outcome: Optional[Callable[[TaskOutcome], None]] = None,
) -> list[TaskOutcome]:
    """
    Execute tasks until none remain, the model requests changes, a task
    fails, or ``max_tasks`` tasks have run.

    Returns:
        Outcomes in execution order.
    """
    outcomes: list[TaskOutcome] = []
    while max_tasks is None or len(outcomes) < max_tasks:
        task = find_next_task(root, select=select)
        if task is None:
            logger.info("No more tasks in the specification review stages")
            break

        outcome = execute_task(
            task,
            root,
            actions,
            run_logger=run_logger,
            max_attempts=max_attempts,
            extra_files_query=extra_files_query,
        )
        outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(outcome)

        if outcome.result in (ExecutionResult.CHANGES_REQUESTED, ExecutionResult.FAILURE):
            break
    return outcomes
