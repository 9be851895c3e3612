"""Snapcraft step: stage, describe, build."""

import logging
import shutil
import time
from pathlib import Path

from archive import describe, find_artifacts
from config import EngineContext
from steps.types import SnapcraftStep, StepResult
from tools import ToolInvoker
from workspace import StageError, Workspace

logger = logging.getLogger(__name__)

SNAPCRAFT_YAML = Path('snap') / 'snapcraft.yaml'


def write_snapcraft_yaml(step: SnapcraftStep, staging: Path) -> Path:
    """Write snap/snapcraft.yaml under the staging directory."""
    path = staging / SNAPCRAFT_YAML
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(step.descriptor.to_yaml(), encoding='utf-8')
    except OSError as e:
        raise StageError(f"Unable to write {path}: {e}") from e
    return path


def collect_snaps(staging: Path, dist_path: Path) -> list[Path]:
    """Copy *.snap files produced in staging into dist_path."""
    artifacts = []
    for snap_file in find_artifacts(staging, '.snap'):
        dest = dist_path / snap_file.name
        try:
            dist_path.mkdir(parents=True, exist_ok=True)
            shutil.copy2(snap_file, dest)
        except OSError as e:
            raise StageError(f"Unable to copy {snap_file} to {dist_path}: {e}") from e
        artifacts.append(dest)
    return artifacts


def run_snapcraft(
    step: SnapcraftStep,
    context: EngineContext,
    workspace: Workspace,
    tools: ToolInvoker,
) -> StepResult:
    """Execute a snapcraft step.

    The staging directory is kept when snapcraft fails, and when the step
    sets purge_build=False.
    """
    start = time.time()
    label = step.label

    staging = workspace.step_dir(step.build_dir)
    logger.info(f"[{label}] Staging {len(step.manifest)} files into {staging}")
    step.manifest.install(staging)
    write_snapcraft_yaml(step, staging)

    for app in step.descriptor.unresolved_commands(step.manifest.destinations):
        logger.warning(f"[{label}] App '{app}' command is not provided by any staged file")

    tools.invoke('snapcraft', list(step.args), cwd=staging)

    artifacts = collect_snaps(staging, context.dist_path)
    for artifact in artifacts:
        logger.info(f"[{label}] Produced {describe(artifact)}")

    if step.purge_build:
        workspace.purge(step.build_dir)
    else:
        logger.info(f"[{label}] Keeping build directory {staging}")

    return StepResult(
        message=f"snapcraft {' '.join(step.args)} completed",
        duration=time.time() - start,
        artifacts=artifacts,
    )
