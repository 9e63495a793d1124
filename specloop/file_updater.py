"""
Applies parsed file mutations to the project tree.

Every path is validated before anything is touched; a single rejected path
aborts the whole batch with the tree unchanged.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from specloop.errors import FileUpdateError
from specloop.path_guard import PathGuard
from specloop.response_parser import FileMutation
from specloop.utils.fs import FileSystemError, remove_file, safe_write

logger = logging.getLogger(__name__)


class FileUpdater:
    """Guarded writer for one project root."""

    def __init__(self, root: str | Path, guard: Optional[PathGuard] = None) -> None:
        self.root = Path(root)
        self.guard = guard or PathGuard(self.root)

    def apply_updates(self, mutations: Iterable[FileMutation]) -> list[FileMutation]:
        """
        Validate then apply ``mutations`` in order.

        Args:
            mutations: Mutations in response order. Duplicate paths are
                applied in sequence, so the last one wins.

        Returns:
            The applied mutations with normalized paths.

        Raises:
            FileUpdateError: If any path is rejected (nothing is written) or an
                I/O operation fails (earlier mutations stay applied).
        """
        validated = [
            FileMutation(path=self.guard.validate(m.path), content=m.content)
            for m in mutations
        ]

        for mutation in validated:
            target = self.root / mutation.path
            try:
                if mutation.content is None:
                    if remove_file(target):
                        logger.info("Deleted file: %s", mutation.path)
                else:
                    safe_write(target, mutation.content)
                    logger.info("Updated file: %s", mutation.path)
            except FileSystemError as e:
                raise FileUpdateError(str(e), path=mutation.path) from e

        return validated
