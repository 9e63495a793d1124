"""
The build-repair loop.

This module provides:
- AgentActions: the two side effects the loop needs (ask the model, build)
- RealAgentActions: LlmClient + build_runner implementation
- Prompt builders for the initial, repair and extra-code queries
- RepairLoop: query -> parse -> apply -> build, up to a fixed attempt budget
- run_commit_workflow: the ``commit`` command end to end

Control flow per attempt:
1. Send the initial prompt (attempt 1) or the repair prompt (later attempts)
2. Parse the response; record and apply its mutations through PathGuard
3. Run the build; success ends the loop with the response text
4. On failure with attempts left, ask which extra files would help and
   append them to the codebase context
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol

from specloop.build_runner import BuildResult, run_build
from specloop.context_builder import (
    build_codebase_context,
    extract_filenames_from_codebase,
    format_file_block,
)
from specloop.errors import FileUpdateError, MaxAttemptsReachedError, ResponseParsingError
from specloop.file_updater import FileUpdater
from specloop.path_guard import ContextPathGuard
from specloop.prompts import (
    CODE_MODIFICATION_INSTRUCTIONS,
    COMMITTING_CODE_EXTRA_CODE_QUERY,
    COMMITTING_CODE_REPAIR_QUERY,
    PROJECT_STRUCTURE,
)
from specloop.response_parser import format_file_replacements, parse_extra_files_response, parse_response
from specloop.utils.fs import FileSystemError, read_file

if TYPE_CHECKING:
    from specloop.config import SpecloopConfig
    from specloop.llm_clients import LlmClient
    from specloop.logger import RunLogger


logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 4


class AgentActions(Protocol):
    """Side effects of one loop run."""

    def query_llm(self, prompt: str, log_prefix: str) -> str:
        """Send a prompt and return the model's text."""
        ...

    def run_build(self) -> BuildResult:
        """Run the project build."""
        ...


class RealAgentActions:
    """AgentActions backed by an LlmClient and ``bash build.sh``."""

    def __init__(self, client: LlmClient, root: str | Path, build_script: str = "build.sh") -> None:
        self.client = client
        self.root = Path(root)
        self.build_script = build_script

    def query_llm(self, prompt: str, log_prefix: str) -> str:
        return self.client.query(prompt, log_prefix)

    def run_build(self) -> BuildResult:
        return run_build(self.root, self.build_script)


# =============================================================================
# Prompts
# =============================================================================


def build_system_prompt(instructions: str) -> str:
    return f"{PROJECT_STRUCTURE}\n{CODE_MODIFICATION_INSTRUCTIONS}\n{instructions}"


def build_next_agent_prompt(system_prompts: str, query: str) -> str:
    """System prompt plus supervisor query; the context query sees this too."""
    return f"{build_system_prompt(system_prompts)}\n[supervisor query]\n{query}"


def build_initial_prompt(next_agent_prompt: str, codebase: str) -> str:
    return f"{next_agent_prompt}\n[codebase]\n{codebase}"


def build_repair_prompt(
    query: str,
    build_output: str,
    record: dict[str, Optional[str]],
    codebase: str,
) -> str:
    return (
        f"{build_system_prompt(COMMITTING_CODE_REPAIR_QUERY)}\n"
        f"[build.sh output]\n{build_output}\n"
        f"[supervisor query]\n{query}\n"
        f"[codebase]\n{codebase}\n"
        f"[file replacements]\n{format_file_replacements(record)}"
    )


def build_extra_code_prompt(codebase: str, build_output: str) -> str:
    file_list = "\n".join(extract_filenames_from_codebase(codebase))
    return (
        f"{COMMITTING_CODE_EXTRA_CODE_QUERY}\n[codebase file list]\n{file_list}\n"
        f"[build.sh output]\n{build_output}"
    )


# =============================================================================
# Loop
# =============================================================================


class RepairLoop:
    """
    Bounded build-repair loop over one project root.

    Usage:
        loop = RepairLoop(root, actions, run_logger=run_logger)
        response = loop.run(query, system_prompts, codebase)
    """

    def __init__(
        self,
        root: str | Path,
        actions: AgentActions,
        run_logger: Optional[RunLogger] = None,
        max_attempts: int = MAX_ATTEMPTS,
        extra_files_query: bool = True,
        updater: Optional[FileUpdater] = None,
        log_namespace: str = "",
    ) -> None:
        self.root = Path(root)
        self.log_namespace = log_namespace
        self.actions = actions
        self.run_logger = run_logger
        self.max_attempts = max_attempts
        self.extra_files_query = extra_files_query
        self.updater = updater or FileUpdater(self.root)

    def _log_text(self, name: str, text: str) -> None:
        if self.run_logger is not None:
            self.run_logger.log_text(name, text)

    def _event(self, event_type: str, data: dict, level: str = "info") -> None:
        if self.run_logger is not None:
            self.run_logger.log(event_type, data, level)

    def run(self, query: str, system_prompts: str, codebase: str = "") -> str:
        """
        Drive the model until the build passes.

        Args:
            query: Supervisor query.
            system_prompts: Instructions appended to the system prompt of the
                initial query.
            codebase: Pre-assembled codebase context.

        Returns:
            The text of the response whose changes made the build pass.

        Raises:
            MaxAttemptsReachedError: If no attempt produced a passing build.
            ResponseParsingError: If a response breaks the protocol.
            FileUpdateError: If a response touches a forbidden path.
            NetworkError: If the model cannot be reached.
        """
        next_agent_prompt = build_next_agent_prompt(system_prompts, query)
        record: dict[str, Optional[str]] = {}
        last_build_output = ""

        for attempt in range(1, self.max_attempts + 1):
            logger.info("Starting attempt %d/%d", attempt, self.max_attempts)
            if attempt == 1:
                prompt = build_initial_prompt(next_agent_prompt, codebase)
                log_prefix = f"{self.log_namespace}{attempt}-initial-query"
            else:
                prompt = build_repair_prompt(query, last_build_output, record, codebase)
                log_prefix = f"{self.log_namespace}{attempt}-repair"
            self._event("attempt_start", {"attempt": attempt, "log_prefix": log_prefix})

            response_text = self.actions.query_llm(prompt, log_prefix)
            parsed = parse_response(response_text)

            applied = self.updater.apply_updates(parsed.mutations)
            for mutation in applied:
                record[mutation.path] = mutation.content
            self._event(
                "mutations_applied",
                {"attempt": attempt, "paths": [m.path for m in applied]},
            )

            build = self.actions.run_build()
            self._log_text(f"{log_prefix}-build.txt", build.output)
            if build.success:
                logger.info("Build successful on attempt %d", attempt)
                self._event("build_passed", {"attempt": attempt})
                return response_text

            logger.warning("Build failed on attempt %d", attempt)
            self._event("build_failed", {"attempt": attempt}, level="warn")
            last_build_output = build.output

            if attempt < self.max_attempts and self.extra_files_query:
                codebase = self.run_extra_code_query(codebase, last_build_output, attempt)

        self._event("max_attempts_reached", {"attempts": self.max_attempts}, level="error")
        raise MaxAttemptsReachedError(self.max_attempts, last_build_output)

    def run_extra_code_query(self, codebase: str, build_output: str, attempt: int) -> str:
        """
        Ask which files are missing from the context and append them.

        Paths already in the codebase, rejected by ContextPathGuard, or not
        readable are skipped. A malformed reply adds nothing.

        Returns:
            The codebase, possibly extended with new ``--- path ---`` blocks.
        """
        response = self.actions.query_llm(
            build_extra_code_prompt(codebase, build_output), f"{self.log_namespace}{attempt}-extra-code"
        )
        try:
            requested = parse_extra_files_response(response)
        except ResponseParsingError as e:
            logger.warning("Ignoring malformed extra-files reply: %s", e)
            self._event("extra_files_malformed", {"attempt": attempt, "error": str(e)}, "warn")
            return codebase

        existing = set(extract_filenames_from_codebase(codebase))
        guard = ContextPathGuard(self.root)
        added = []
        for path in requested:
            if path in existing:
                continue
            try:
                normalized = guard.validate(path)
                content = read_file(self.root / normalized)
            except (FileUpdateError, FileSystemError) as e:
                logger.info("Skipping extra file %s: %s", path, e)
                continue
            codebase += format_file_block(path, content)
            existing.add(path)
            added.append(path)

        if added:
            logger.info("Added %d extra files to context", len(added))
            self._event("extra_files_added", {"attempt": attempt, "paths": added})
        return codebase


def run_commit_workflow(
    config: SpecloopConfig,
    client: LlmClient,
    run_logger: Optional[RunLogger] = None,
    actions: Optional[AgentActions] = None,
) -> str:
    """
    The ``commit`` command: select context, then run the repair loop.

    Working-tree checks are the caller's job (see git_status).

    Returns:
        The final response text.
    """
    root = config.root_path
    next_agent_prompt = build_next_agent_prompt(config.system_prompts, config.query)

    logger.info("Building codebase context")
    codebase = build_codebase_context(client, root, next_agent_prompt, "0-context-query")
    if run_logger is not None:
        run_logger.log_text("codebase.txt", codebase)

    loop = RepairLoop(
        root,
        actions or RealAgentActions(client, root, config.loop.build_script),
        run_logger=run_logger,
        max_attempts=config.loop.max_attempts,
        extra_files_query=config.loop.extra_files_query,
    )
    return loop.run(config.query, config.system_prompts, codebase)
