"""Main Typer app definition and commands.

This is the canonical entry point for the CLI:
    specloop commit       run the build-repair loop for a supervisor query
    specloop auto         walk modules through the review stages
    specloop status       show every module's stage progress
    specloop next         show the task ``auto`` would run next
    specloop check-paths  show which paths the model may modify
    specloop consistency-check  write a specification/code review report
    specloop rollup       save every project file to agent-config/codebase.txt
    specloop init         scaffold a new project
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from specloop import __version__
from specloop.cli.common import fail, get_console, get_project_dir, set_project_dir
from specloop.cli.display import show_module_table, show_outcome, show_path_checks, show_task
from specloop.errors import ConfigError, FileUpdateError, SpecloopError

# Create Typer app
app = typer.Typer(
    name="specloop",
    help="LLM build-repair loop and specification review workflow",
    add_completion=False,
)

# Rich console for output - use singleton from common module
console = get_console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"specloop version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(
        None,
        "--project",
        "-p",
        help="Project directory to operate on (default: current directory)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    specloop - drive an LLM through guarded edits until the build passes.

    Use --project/-p to operate on a different project directory.
    """
    set_project_dir(None)
    if project:
        project_path = Path(project)
        if not project_path.is_dir():
            console.print(f"[red]Error: Project directory not found: {project}[/red]")
            raise typer.Exit(1)
        set_project_dir(str(project_path.absolute()))

    # If no subcommand and no --help, show help
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)


def _backend_option(model: Optional[str]):
    from specloop.config import Backend

    return Backend.from_name(model) if model else None


MODEL_HELP = "Model to use: gemini-2.5-pro (default) or gpt-5"


@app.command()
def commit(
    model: Optional[str] = typer.Option(None, "--model", "-m", help=MODEL_HELP),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip the uncommitted-changes safety check"
    ),
    query: Optional[str] = typer.Option(
        None, "--query", "-q", help="Supervisor query (default: open $EDITOR)"
    ),
) -> None:
    """
    Apply a supervisor query to the codebase and repair until build.sh passes.
    """
    from specloop.config import get_query_from_editor, load_config
    from specloop.git_status import check_for_uncommitted_changes, verify_gitignore_protection
    from specloop.llm_clients import create_client
    from specloop.logger import RunLogger
    from specloop.prompts import COMMITTING_CODE_INITIAL_QUERY
    from specloop.repair_loop import run_commit_workflow

    root = get_project_dir()
    try:
        backend = _backend_option(model)
        verify_gitignore_protection(root)
        if not force:
            console.print("Checking for uncommitted changes...")
            check_for_uncommitted_changes(root)

        if query is None:
            query = get_query_from_editor()
        if not query.strip():
            raise ConfigError("The supervisor query is empty.")

        config = load_config(
            root,
            backend=backend,
            query=query,
            system_prompts=COMMITTING_CODE_INITIAL_QUERY,
        )
        run_logger = RunLogger(config.logs_path, "commit")
        console.print(f"[dim]Logging to {run_logger.log_dir}[/dim]")
        client = create_client(config, run_logger)

        console.print("Building codebase context and running the build-repair loop...")
        run_commit_workflow(config, client, run_logger)
    except SpecloopError as e:
        fail(e)

    console.print("[green]Build successful.[/green]")


@app.command()
def auto(
    model: Optional[str] = typer.Option(None, "--model", "-m", help=MODEL_HELP),
    max_tasks: Optional[int] = typer.Option(
        None, "--max-tasks", "-n", min=1, help="Stop after this many tasks"
    ),
) -> None:
    """
    Walk every module through the specification review stages.
    """
    from specloop import auto_workflow
    from specloop.config import load_config
    from specloop.llm_clients import create_client
    from specloop.logger import RunLogger
    from specloop.repair_loop import RealAgentActions

    root = get_project_dir()
    try:
        config = load_config(root, backend=_backend_option(model))
        run_logger = RunLogger(config.logs_path, "auto-workflow")
        console.print(f"[dim]Logging to {run_logger.log_dir}[/dim]")
        client = create_client(config, run_logger)
        actions = RealAgentActions(client, config.root_path, config.loop.build_script)

        outcomes = auto_workflow.run(
            config.root_path,
            actions,
            run_logger=run_logger,
            max_tasks=max_tasks,
            max_attempts=config.loop.max_attempts,
            extra_files_query=config.loop.extra_files_query,
            on_outcome=lambda outcome: show_outcome(console, outcome),
        )
    except SpecloopError as e:
        fail(e)

    if not outcomes:
        console.print("[green]No more tasks to process in the specification review stages.[/green]")
    elif outcomes[-1].result is auto_workflow.ExecutionResult.FAILURE:
        console.print("[red]Auto workflow task failed.[/red]")
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """
    Show each module's dependency level and stage progress.
    """
    from specloop.discovery import module_statuses

    try:
        statuses = module_statuses(get_project_dir())
    except SpecloopError as e:
        fail(e)
    show_module_table(console, statuses)


@app.command("next")
def next_task() -> None:
    """
    Show the task the auto workflow would run next.
    """
    from specloop.discovery import find_next_task

    try:
        task = find_next_task(get_project_dir())
    except SpecloopError as e:
        fail(e)
    show_task(console, task)


@app.command("consistency-check")
def consistency_check(
    model: Optional[str] = typer.Option(None, "--model", "-m", help=MODEL_HELP),
    query: Optional[str] = typer.Option(
        None, "--query", "-q", help="Optional focus for the review (default: open $EDITOR)"
    ),
) -> None:
    """
    Review the specifications against the code and write a consistency report.
    """
    from specloop.config import get_query_from_editor, load_config
    from specloop.consistency import run_consistency_check
    from specloop.llm_clients import create_client
    from specloop.logger import RunLogger

    console.print("Starting consistency check workflow...")
    root = get_project_dir()
    try:
        backend = _backend_option(model)
        if query is None:
            query = get_query_from_editor()
        config = load_config(root, backend=backend, query=query)
        run_logger = RunLogger(config.logs_path, "consistency")
        console.print(f"[dim]Logging to {run_logger.log_dir}[/dim]")
        client = create_client(config, run_logger)

        console.print("Assembling codebase and requesting the review...")
        report_path = run_consistency_check(config, client)
    except SpecloopError as e:
        fail(e)

    console.print(f"[green]Consistency report written to {report_path}[/green]")


@app.command()
def rollup(
    full: bool = typer.Option(False, "--full", help="Include Cargo.lock in the rollup"),
) -> None:
    """
    Save every non-ignored project file to agent-config/codebase.txt.
    """
    from specloop.rollup import write_rollup

    try:
        out_path = write_rollup(get_project_dir(), include_lock_files=full)
    except SpecloopError as e:
        fail(e)
    console.print(f"Codebase rollup saved to {out_path}")


@app.command()
def init(
    name: Optional[str] = typer.Argument(
        None, help="Project name for pyproject.toml (default: directory name)"
    ),
) -> None:
    """
    Scaffold a new project in the project directory. Existing files are kept.
    """
    from specloop.init_project import create_project

    root = get_project_dir()
    try:
        created = create_project(root, name or root.absolute().name)
    except SpecloopError as e:
        fail(e)

    if not created:
        console.print("[yellow]Project already initialized; nothing to create.[/yellow]")
        return
    for rel_path in created:
        console.print(f"  created {rel_path}")
    console.print(f"[green]Initialized project in {root}[/green]")


@app.command("check-paths")
def check_paths(
    paths: list[str] = typer.Argument(..., help="Project-relative paths to check"),
) -> None:
    """
    Show whether the model would be allowed to modify each path.

    Exits with status 1 if any path is rejected.
    """
    from specloop.path_guard import PathGuard

    try:
        guard = PathGuard(get_project_dir())
    except SpecloopError as e:
        fail(e)

    results: list[tuple[str, Optional[str]]] = []
    for path in paths:
        try:
            guard.validate(path)
            results.append((path, None))
        except FileUpdateError as e:
            results.append((path, str(e)))

    show_path_checks(console, results)
    if any(reason is not None for _, reason in results):
        raise typer.Exit(1)


def cli_main() -> None:
    """Entry point for the CLI."""
    app()


__all__ = ["app", "cli_main"]
