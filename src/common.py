"""Common utilities for packaging actions."""

import logging
import os
import subprocess
from pathlib import Path, PurePosixPath
from typing import Optional

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    No timeout is applied unless one is given: packaging tools run to
    completion.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def output_tail(stdout: str, stderr: str, lines: int = 20) -> str:
    """Return the last lines of combined command output for diagnostics."""
    combined = '\n'.join(part.rstrip('\n') for part in (stdout, stderr) if part)
    return '\n'.join(combined.splitlines()[-lines:])


def is_safe_relative(path: str) -> bool:
    """True if path is relative and stays inside its root (no '..')."""
    if not path or os.path.isabs(path) or path.startswith('/'):
        return False
    return '..' not in PurePosixPath(path).parts
