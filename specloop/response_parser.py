"""
Parser for the line-oriented protocol the model answers in.

This module provides:
- FileMutation / ParsedResponse / StatusSentinel types
- parse_llm_response: ``^^^path`` ... ``^^^end`` file blocks and ``^^^delete``
- parse_extra_files_response: the ``%%%files`` ... ``%%%end`` request block
- parse_response: file blocks plus status and comment checks
- extract_comment / validate_response_format for the auto workflow
- format_file_replacements: renders applied mutations for the repair prompt

Nothing here validates paths; that is PathGuard's job at apply time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from specloop.errors import ResponseParsingError

FILE_OPEN = "^^^"
FILE_END = "^^^end"
FILE_DELETE = "^^^delete"
FILES_OPEN = "%%%files"
FILES_END = "%%%end"
COMMENT_OPEN = "%%%%comment%%%%"
COMMENT_END = "%%%%end%%%%"


class StatusSentinel(Enum):
    """Status markers a stage response must carry exactly one of."""

    TASK_SUCCESS = "@@@@task-success@@@@"
    CHANGES_REQUESTED = "@@@@changes-requested@@@@"
    CHANGES_ATTEMPTED = "@@@@changes-attempted@@@@"


@dataclass
class FileMutation:
    """
    One requested change.

    ``content`` set means create-or-replace with exactly that text; None means
    delete the file if present.
    """
    path: str
    content: Optional[str] = None

    @property
    def is_delete(self) -> bool:
        return self.content is None


@dataclass
class ParsedResponse:
    """Everything extracted from one model response."""
    mutations: list[FileMutation] = field(default_factory=list)
    status: Optional[StatusSentinel] = None
    comment: Optional[str] = None


def split_lines(text: str) -> list[str]:
    """
    Split on ``\\n``, dropping one trailing ``\\r`` per line.

    A final newline does not produce a trailing empty line. Unlike
    str.splitlines(), form feeds and other separators stay inside lines.
    """
    if not text:
        return []
    parts = text.split("\n")
    if text.endswith("\n"):
        parts.pop()
    return [p[:-1] if p.endswith("\r") else p for p in parts]


def parse_llm_response(text: str) -> list[FileMutation]:
    """
    Extract file mutations in response order.

    A block with no ``^^^end`` runs to the end of the response. Lines merely
    containing a sigil, and stray ``^^^end``/``^^^delete`` lines, are inert.

    Raises:
        ResponseParsingError: If an opener has no filename.
    """
    mutations: list[FileMutation] = []
    lines = split_lines(text)
    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        if not line.startswith(FILE_OPEN) or line in (FILE_END, FILE_DELETE):
            continue

        path = line[len(FILE_OPEN):]
        if not path:
            raise ResponseParsingError("Found '^^^' without a filename.")

        if i < len(lines) and lines[i] == FILE_DELETE:
            i += 1
            mutations.append(FileMutation(path=path, content=None))
            continue

        body: list[str] = []
        while i < len(lines):
            current = lines[i]
            i += 1
            if current == FILE_END:
                break
            body.append(current)
        mutations.append(FileMutation(path=path, content="\n".join(body)))

    return mutations


def has_pending_updates(text: str) -> bool:
    """Return True if the response holds a terminated file block or a deletion."""
    open_block = False
    for line in split_lines(text):
        if line in (FILE_END, FILE_DELETE):
            if open_block:
                return True
        elif line.startswith(FILE_OPEN):
            open_block = True
    return False


def parse_extra_files_response(text: str) -> list[str]:
    """
    Extract the paths listed in the ``%%%files`` block.

    Raises:
        ResponseParsingError: If the block is missing, unterminated, or closed
            before it was opened.
    """
    in_block = False
    files: list[str] = []
    for line in split_lines(text):
        trimmed = line.strip()
        if trimmed == FILES_OPEN:
            in_block = True
            continue
        if trimmed == FILES_END:
            if in_block:
                return files
            raise ResponseParsingError("Found '%%%end' without a preceding '%%%files'.")
        if in_block and trimmed:
            files.append(trimmed)

    if in_block:
        raise ResponseParsingError("Found '%%%files' but no matching '%%%end'.")
    raise ResponseParsingError(
        "Could not find '%%%files'...'%%%end' block in LLM response."
    )


def find_status_sentinels(text: str) -> list[StatusSentinel]:
    """Return every distinct status sentinel present, in declaration order."""
    return [s for s in StatusSentinel if s.value in text]


def _check_comment_markers(text: str) -> None:
    opens = text.count(COMMENT_OPEN)
    closes = text.count(COMMENT_END)
    if opens > 1 or closes > 1:
        raise ResponseParsingError("Multiple comment sections found in response.")
    if opens != closes:
        raise ResponseParsingError("Mismatched comment tags.")


def extract_comment(text: str) -> Optional[str]:
    """Return the raw text between the comment markers, if both are present."""
    start = text.find(COMMENT_OPEN)
    if start < 0:
        return None
    start += len(COMMENT_OPEN)
    end = text.find(COMMENT_END, start)
    if end < 0:
        return None
    return text[start:end]


def validate_response_format(text: str) -> StatusSentinel:
    """
    Check a stage response: exactly one status and a well-formed comment.

    Returns:
        The single status sentinel found.

    Raises:
        ResponseParsingError: On zero or several statuses, or bad comment markers.
    """
    statuses = find_status_sentinels(text)
    if not statuses:
        raise ResponseParsingError("No status tag found in response.")
    if len(statuses) > 1:
        raise ResponseParsingError("Multiple status tags found in response.")
    _check_comment_markers(text)
    return statuses[0]


def parse_response(text: str) -> ParsedResponse:
    """
    Parse a whole response.

    Status and comment markers are checked before any mutation is returned,
    so a malformed response never yields mutations. A missing status is
    allowed here; validate_response_format() is the strict variant.

    Raises:
        ResponseParsingError: On several statuses, bad comment markers, or a
            file opener without a filename.
    """
    statuses = find_status_sentinels(text)
    if len(statuses) > 1:
        raise ResponseParsingError("Multiple status tags found in response.")
    _check_comment_markers(text)

    comment = extract_comment(text)
    return ParsedResponse(
        mutations=parse_llm_response(text),
        status=statuses[0] if statuses else None,
        comment=comment.strip() if comment is not None else None,
    )


def format_file_replacements(record: Mapping[str, Optional[str]]) -> str:
    """Render applied mutations (latest value per path), sorted by path."""
    parts: list[str] = []
    for path in sorted(record):
        content = record[path]
        if content is None:
            parts.append(f"--- FILE REMOVED {path} ---\n\n")
            continue
        if not content.endswith("\n"):
            content += "\n"
        parts.append(f"--- FILE REPLACEMENT {path} ---\n{content}\n")
    return "".join(parts)
