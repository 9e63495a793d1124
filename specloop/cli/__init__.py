"""CLI package for specloop.

Modules:
    app.py      - Typer app, version callback and every command
    display.py  - Rich formatting utilities (module table, stage labels)
    common.py   - Shared helpers (get_console, get_project_dir, fail)

Usage:
    from specloop.cli import app, cli_main
"""
from specloop.cli.app import app, cli_main

__all__ = ["app", "cli_main"]
