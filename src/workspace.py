"""Build workspace management.

One workspace root per pipeline run. The root is created lazily the first
time a step needs a staging directory; each step stages into its own
subdirectory so steps never collide.

A marker file in the root claims it for the current run. A second run
against the same root fails fast with WorkspaceBusyError instead of
sharing the tree. On release the marker is removed and the root is deleted
only if nothing is left in it, so staging from a failed step stays around
for inspection.
"""

import logging
import os
import shutil
from pathlib import Path, PurePosixPath

from config import TuggerError

logger = logging.getLogger(__name__)

MARKER_NAME = '.tugger-workspace'


class StageError(TuggerError):
    """I/O failure while staging files into a build directory."""


class WorkspaceBusyError(TuggerError):
    """Workspace root is already claimed by another run."""

    def __init__(self, root: Path, owner: str = ''):
        self.root = root
        self.owner = owner
        detail = f" (held by pid {owner})" if owner else ''
        super().__init__(
            f"Workspace {root} is in use{detail}. "
            f"Use a different build root, or remove {root / MARKER_NAME} "
            f"if no run is active."
        )


class Workspace:
    """Staging directory tree for a single pipeline run."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._acquired = False
        self._used: set[str] = set()

    @property
    def marker(self) -> Path:
        return self.root / MARKER_NAME

    @property
    def marker_present(self) -> bool:
        return self.marker.exists()

    @property
    def acquired(self) -> bool:
        return self._acquired

    def acquire(self) -> None:
        """Create the root (if needed) and claim it with the marker file.

        Idempotent within one run.

        Raises:
            WorkspaceBusyError: If another run holds the marker
            StageError: If the root cannot be created
        """
        if self._acquired:
            return

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StageError(f"Unable to create workspace {self.root}: {e}") from e

        try:
            fd = os.open(self.marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            try:
                owner = self.marker.read_text(encoding='utf-8').strip()
            except OSError:
                owner = ''
            raise WorkspaceBusyError(self.root, owner)
        except OSError as e:
            raise StageError(f"Unable to create workspace marker {self.marker}: {e}") from e

        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(f'{os.getpid()}\n')

        self._acquired = True
        logger.debug(f"Acquired workspace {self.root}")

    def _step_path(self, step_id: str) -> Path:
        parts = PurePosixPath(step_id).parts
        if not step_id or PurePosixPath(step_id).is_absolute() or '..' in parts:
            raise StageError(f"Invalid step directory '{step_id}': must be relative to the workspace root")
        return self.root.joinpath(*parts)

    def step_dir(self, step_id: str) -> Path:
        """Return the step's staging directory, creating it on first use.

        A directory already used earlier in this run is returned as-is, so a
        step kept with purge_build=False can feed a later step. A directory
        left over from a previous run is cleared first; staging is never
        reused across runs.

        Raises:
            StageError: On filesystem errors or an escaping step_id
        """
        self.acquire()
        path = self._step_path(step_id)
        try:
            if step_id not in self._used and path.exists():
                logger.info(f"Clearing stale staging directory {path}")
                shutil.rmtree(path)
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StageError(f"Unable to prepare staging directory {path}: {e}") from e
        self._used.add(step_id)
        return path

    def purge(self, step_id: str) -> None:
        """Remove a step's staging directory (and now-empty parents)."""
        path = self._step_path(step_id)
        self._used.discard(step_id)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise StageError(f"Unable to remove staging directory {path}: {e}") from e
        logger.debug(f"Purged staging directory {path}")

        parent = path.parent
        while parent != self.root and self.root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    def release(self) -> None:
        """Drop the marker and remove the root if it is empty."""
        if not self._acquired:
            return
        self._acquired = False

        try:
            self.marker.unlink()
        except FileNotFoundError:
            logger.warning(f"Workspace marker {self.marker} disappeared during run")

        try:
            self.root.rmdir()
            logger.debug(f"Removed empty workspace {self.root}")
        except OSError:
            logger.info(f"Keeping workspace {self.root} (not empty)")

    def __enter__(self) -> 'Workspace':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
