"""Debian .deb step with builtin and dpkg-deb backends."""

import logging
import time
from dataclasses import replace
from pathlib import Path

from archive import describe, installed_size_kib, write_deb_file
from config import EngineContext
from steps.types import DebianDebArchiveStep, StepResult
from tools import ToolError, ToolInvoker
from workspace import StageError, Workspace

logger = logging.getLogger(__name__)


def _stage_tree(step: DebianDebArchiveStep, staging: Path) -> None:
    """Lay out the manifest plus DEBIAN/control for dpkg-deb."""
    step.manifest.install(staging)
    control = step.control
    if not control.installed_size:
        control = replace(control, installed_size=str(installed_size_kib(step.manifest)))
    control_path = staging / 'DEBIAN' / 'control'
    try:
        control_path.parent.mkdir(parents=True, exist_ok=True)
        control_path.write_text(control.to_control_text(), encoding='utf-8')
    except OSError as e:
        raise StageError(f"Unable to write {control_path}: {e}") from e


def run_deb_archive(
    step: DebianDebArchiveStep,
    context: EngineContext,
    workspace: Workspace,
    tools: ToolInvoker,
) -> StepResult:
    """Build <package>_<version>_<arch>.deb into dist_path."""
    start = time.time()
    label = step.label
    dest = context.dist_path / step.control.deb_filename

    if step.backend == 'dpkg-deb':
        step_id = f'deb-{step.control.package}'
        staging = workspace.step_dir(step_id)
        logger.info(f"[{label}] Staging {len(step.manifest)} files into {staging}")
        _stage_tree(step, staging)
        try:
            context.dist_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StageError(f"Unable to create {context.dist_path}: {e}") from e
        tools.invoke('dpkg-deb', ['--build', '--root-owner-group', str(staging), str(dest)],
                     cwd=workspace.root)
        if not dest.is_file():
            raise ToolError('dpkg-deb', 0, message=f"dpkg-deb exited 0 but did not produce {dest}")
        workspace.purge(step_id)
    else:
        logger.info(f"[{label}] Writing {len(step.manifest)} files")
        write_deb_file(dest, step.control, step.manifest, context.source_date_epoch)

    logger.info(f"[{label}] Produced {describe(dest)}")
    return StepResult(
        message=f"Built {dest.name}",
        duration=time.time() - start,
        artifacts=[dest],
    )
