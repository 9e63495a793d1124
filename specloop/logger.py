"""
Run logging for specloop.

This module provides:
- One timestamped log directory per run under agent-config/logs/
- Raw text and pretty JSON artifacts (prompts, responses, build output)
- JSONL event logging with levels (debug, info, warn, error)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from specloop.utils.fs import ensure_dir, safe_write


class LogLevel:
    """Log level constants."""
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


EVENTS_FILE = "events.jsonl"


class RunLogger:
    """
    Per-run logger.

    Writes every artifact into ``<logs_root>/<YYYY-MM-DD-HH-MM-SS>-<suffix>/``:
    named text/JSON files for each LLM exchange and build, plus an
    ``events.jsonl`` stream. Each JSONL entry has:
    - timestamp: ISO format timestamp
    - level: Log level (debug, info, warn, error)
    - event_type: Type of event being logged
    - run: Name of the run directory
    - data: Additional event data (dict)
    """

    def __init__(
        self,
        logs_root: str | Path,
        suffix: str,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Create the run directory.

        Args:
            logs_root: Parent directory, usually agent-config/logs.
            suffix: Workflow name appended to the timestamp (e.g. "commit").
            now: Start time; defaults to the current local time.
        """
        started = now or datetime.now()
        self.run_name = f"{started.strftime('%Y-%m-%d-%H-%M-%S')}-{suffix}"
        self.log_dir = ensure_dir(Path(logs_root) / self.run_name)

    def log_text(self, name: str, text: str) -> Path:
        """Write a raw text artifact and return its path."""
        path = self.log_dir / name
        safe_write(path, text)
        return path

    def log_json(self, name: str, value: Any) -> Path:
        """Write a pretty-printed JSON artifact and return its path."""
        path = self.log_dir / name
        safe_write(path, json.dumps(value, indent=2, default=str))
        return path

    def log(
        self,
        event_type: str,
        data: Optional[dict[str, Any]] = None,
        level: str = LogLevel.INFO,
    ) -> None:
        """
        Append an event to events.jsonl.

        Args:
            event_type: Type of event (e.g., "attempt_start", "build_failed").
            data: Additional data to include in the log entry.
            level: Log level (debug, info, warn, error).
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "event_type": event_type,
            "run": self.run_name,
            "data": data or {},
        }
        with open(self.log_dir / EVENTS_FILE, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def debug(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log a debug event."""
        self.log(event_type, data, LogLevel.DEBUG)

    def info(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log an info event."""
        self.log(event_type, data, LogLevel.INFO)

    def warn(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log a warning event."""
        self.log(event_type, data, LogLevel.WARN)

    def error(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log an error event."""
        self.log(event_type, data, LogLevel.ERROR)

    def read_events(self) -> list[dict[str, Any]]:
        """Read back every event logged so far in this run."""
        path = self.log_dir / EVENTS_FILE
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
