"""Tar archive step."""

import logging
import time

from archive import describe, write_tar_file
from config import EngineContext
from steps.types import StepResult, TarArchiveStep
from tools import ToolInvoker
from workspace import Workspace

logger = logging.getLogger(__name__)


def run_tar_archive(
    step: TarArchiveStep,
    context: EngineContext,
    workspace: Workspace,
    tools: ToolInvoker,
) -> StepResult:
    start = time.time()
    dest = context.dist_path / step.name
    logger.info(f"[{step.label}] Writing {len(step.manifest)} entries to {dest}")
    write_tar_file(dest, step.manifest, context.source_date_epoch)
    logger.info(f"[{step.label}] Produced {describe(dest)}")
    return StepResult(
        message=f"Wrote {dest.name}",
        duration=time.time() - start,
        artifacts=[dest],
    )
