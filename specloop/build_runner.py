"""
Runs the project's build script and judges the outcome.

A build passes only when the script exits 0 AND writes nothing but
whitespace to stderr, so warnings count as failures.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from specloop.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Outcome of one build."""
    success: bool
    output: str                 # "STDOUT:\n...\n\nSTDERR:\n..."
    returncode: int = 0


def format_build_output(stdout: str, stderr: str) -> str:
    return f"STDOUT:\n{stdout}\n\nSTDERR:\n{stderr}"


def run_build(
    root: str | Path,
    script: str = "build.sh",
    timeout: Optional[float] = None,
) -> BuildResult:
    """
    Run ``bash <script>`` in ``root``.

    Args:
        root: Project root used as the working directory.
        script: Build script path relative to root.
        timeout: Optional wall-clock limit in seconds; expiry is a failed build.

    Returns:
        BuildResult with the combined output.

    Raises:
        ConfigError: If bash cannot be started.
    """
    logger.debug("Running %s in %s", script, root)
    try:
        result = subprocess.run(
            ["bash", script],
            cwd=str(root),
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        stdout = (e.stdout or b"").decode("utf-8", errors="replace")
        stderr = (e.stderr or b"").decode("utf-8", errors="replace")
        stderr += f"\nBuild timed out after {timeout} seconds."
        return BuildResult(success=False, output=format_build_output(stdout, stderr), returncode=-1)
    except OSError as e:
        raise ConfigError(f"Failed to execute {script}. Is bash installed? Error: {e}")

    stdout = result.stdout.decode("utf-8", errors="replace")
    stderr = result.stderr.decode("utf-8", errors="replace")
    success = result.returncode == 0 and not stderr.strip()
    return BuildResult(
        success=success,
        output=format_build_output(stdout, stderr),
        returncode=result.returncode,
    )
