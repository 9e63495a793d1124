"""Display helpers and formatters for the CLI.

Rich tables and colored labels for stages, module status and path checks.
"""
from __future__ import annotations

from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from specloop.auto_workflow import ExecutionResult, TaskOutcome
from specloop.discovery import ModuleStatus, Stage, Task

# Stage display names and colors
STAGE_DISPLAY: dict[Stage, tuple[str, str]] = {
    Stage.SELF_CONSISTENT: ("Self-consistent", "blue"),
    Stage.PROJECT_CONSISTENT: ("Project-consistent", "cyan"),
    Stage.COMPLETE: ("Complete", "yellow"),
    Stage.SECURE: ("Secure", "magenta"),
}

RESULT_DISPLAY: dict[ExecutionResult, tuple[str, str]] = {
    ExecutionResult.SUCCESS: ("Stage passed", "green"),
    ExecutionResult.CHANGES_ATTEMPTED: ("Changes applied", "cyan"),
    ExecutionResult.CHANGES_REQUESTED: ("Specification changes requested", "yellow bold"),
    ExecutionResult.FAILURE: ("Failed", "red bold"),
}


def format_stage(stage: Optional[Stage]) -> Text:
    """Format a stage as colored text; None means every stage has passed."""
    if stage is None:
        return Text("Done", style="green bold")
    display_name, style = STAGE_DISPLAY.get(stage, (stage.value, "white"))
    return Text(display_name, style=style)


def format_progress(progress: int) -> Text:
    total = len(Stage.ordered())
    style = "green" if progress == total else "dim" if progress == 0 else "white"
    return Text(f"{progress}/{total}", style=style)


def show_module_table(console: Console, statuses: Sequence[ModuleStatus]) -> None:
    """Render one row per module."""
    if not statuses:
        console.print("[dim]No UserSpecification.md files found.[/dim]")
        return

    table = Table(title="Modules")
    table.add_column("Module", style="bold")
    table.add_column("Level", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Next stage")

    for status in statuses:
        table.add_row(
            Text(status.module_dir),
            str(status.level),
            format_progress(status.progress),
            format_stage(status.next_stage),
        )
    console.print(table)


def show_task(console: Console, task: Optional[Task]) -> None:
    if task is None:
        console.print("[green]All modules have passed every stage.[/green]")
        return
    console.print(
        Text.assemble("Next task: ", (task.spec_path, "bold"), " -> ", format_stage(task.stage))
    )


def show_outcome(console: Console, outcome: TaskOutcome) -> None:
    """One line per executed task, followed by the model's comment if any."""
    label, style = RESULT_DISPLAY[outcome.result]
    console.print(
        Text.assemble(
            (f"{label}: ", style),
            outcome.task.spec_path,
            " ",
            format_stage(outcome.task.stage),
        )
    )
    if outcome.comment:
        console.print("\n[bold]Comment[/bold]")
        console.print(outcome.comment, markup=False, highlight=False)


def show_path_checks(console: Console, results: Sequence[tuple[str, Optional[str]]]) -> None:
    """``results`` pairs each path with None (allowed) or the rejection reason."""
    table = Table(title="Path checks")
    table.add_column("Path", style="bold")
    table.add_column("Allowed")
    table.add_column("Reason")
    for path, reason in results:
        allowed = Text("yes", style="green") if reason is None else Text("no", style="red")
        table.add_row(Text(path), allowed, Text(reason or ""))
    console.print(table)
