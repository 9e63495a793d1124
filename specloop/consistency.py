"""Whole-project consistency review written to agent-config/consistency-report.txt."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from specloop.errors import FileUpdateError
from specloop.prompts import CONSISTENCY_CHECK, PROJECT_STRUCTURE
from specloop.rollup import build_rollup
from specloop.utils.fs import FileSystemError, safe_write

if TYPE_CHECKING:
    from specloop.config import SpecloopConfig
    from specloop.llm_clients import LlmClient

logger = logging.getLogger(__name__)

REPORT_FILE = "consistency-report.txt"
LOG_PREFIX = "1-consistency-check"


def build_consistency_prompt(query: str, codebase: str) -> str:
    return f"{PROJECT_STRUCTURE}\n{CONSISTENCY_CHECK}\n[query]\n{query}\n[codebase]\n{codebase}"


def run_consistency_check(config: SpecloopConfig, client: LlmClient) -> Path:
    """
    Send the whole project to the model and save its review.

    Returns:
        Path of the written report.

    Raises:
        FileUpdateError: If a project file cannot be read or the report
            cannot be written.
        NetworkError: If the model cannot be reached.
    """
    codebase = build_rollup(config.root_path)
    prompt = build_consistency_prompt(config.query, codebase)
    report = client.query(prompt, LOG_PREFIX)

    report_path = config.agent_config_path / REPORT_FILE
    try:
        safe_write(report_path, report)
    except FileSystemError as e:
        raise FileUpdateError(str(e), path=f"{config.agent_config_path.name}/{REPORT_FILE}") from e
    logger.info("Consistency report written to %s", report_path)
    return report_path
