"""External packaging tool invocation.

Packaging tools are run once per request. A nonzero exit becomes a
ToolError carrying the tail of the tool's output; nothing is retried,
since actions such as a store push have effects outside this process.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from common import output_tail, run_command
from config import TuggerError

logger = logging.getLogger(__name__)


class ToolError(TuggerError):
    """External tool failed (nonzero exit)."""

    def __init__(self, tool: str, returncode: int, output: str = '', message: Optional[str] = None):
        self.tool = tool
        self.returncode = returncode
        self.output = output
        if message is None:
            message = f"{tool} exited with code {returncode}"
            if output:
                message += f"\n{output}"
        super().__init__(message)


class ToolNotFoundError(ToolError):
    """External tool executable is not on the search path."""

    def __init__(self, tool: str, search_path: str):
        self.search_path = search_path
        super().__init__(tool, 127, message=f"{tool} not found on search path: {search_path}")


class ToolInvoker:
    """Resolves and runs external tools from a configured search path."""

    def __init__(self, search_path: Optional[str] = None, env: Optional[dict] = None):
        self.search_path = search_path if search_path is not None else os.environ.get('PATH', os.defpath)
        self.env = env

    def resolve(self, tool: str) -> str:
        """Return the absolute path of a tool.

        Raises:
            ToolNotFoundError: If the tool is not on the search path
        """
        path = shutil.which(tool, path=self.search_path)
        if path is None:
            raise ToolNotFoundError(tool, self.search_path)
        return path

    def invoke(self, tool: str, args: list[str], cwd: Path) -> str:
        """Run tool with args inside cwd.

        Returns:
            Captured stdout

        Raises:
            ToolNotFoundError: Tool missing
            ToolError: Nonzero exit code
        """
        executable = self.resolve(tool)
        logger.info(f"Running {tool} {' '.join(args)} (in {cwd})")
        rc, out, err = run_command([executable, *args], cwd=cwd, env=self.env)

        for line in out.splitlines():
            logger.debug(f"{tool}: {line}")
        for line in err.splitlines():
            logger.debug(f"{tool} (stderr): {line}")

        if rc != 0:
            raise ToolError(tool, rc, output_tail(out, err))
        return out
