"""Common utilities and global state for the CLI.

Contains project directory management, the console singleton and the
error-to-exit-code mapping shared by every command.
"""
from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from specloop.errors import SpecloopError

# ============================================================================
# Global State
# ============================================================================

# Project directory override (set via --project)
_project_dir: Optional[str] = None

# Console singleton
_console: Optional[Console] = None


def get_project_dir() -> Path:
    """Project root: the --project override, else the current directory."""
    return Path(_project_dir) if _project_dir else Path.cwd()


def set_project_dir(path: Optional[str]) -> None:
    """Set (or clear, with None) the project directory override."""
    global _project_dir
    _project_dir = path


def get_console() -> Console:
    """Get or create the console singleton."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def fail(error: SpecloopError) -> NoReturn:
    """Print ``error`` in red and exit with status 1."""
    get_console().print(f"[red]{escape(str(error))}[/red]")
    raise typer.Exit(1)
