"""Step dispatch."""

import logging
from typing import Callable

from config import EngineContext
from steps.debian import run_deb_archive
from steps.snapcraft import run_snapcraft
from steps.tar import run_tar_archive
from steps.types import DebianDebArchiveStep, SnapcraftStep, Step, StepResult, TarArchiveStep
from tools import ToolInvoker
from workspace import Workspace

logger = logging.getLogger(__name__)

HANDLERS: dict[type, Callable[..., StepResult]] = {
    SnapcraftStep: run_snapcraft,
    DebianDebArchiveStep: run_deb_archive,
    TarArchiveStep: run_tar_archive,
}


class StepExecutor:
    """Runs a single step against a workspace and tool invoker.

    Attributes:
        context: Engine context (dist path, source date epoch)
        workspace: Workspace for the current run
        tools: External tool invoker
    """

    def __init__(self, context: EngineContext, workspace: Workspace, tools: ToolInvoker):
        self.context = context
        self.workspace = workspace
        self.tools = tools

    def execute(self, step: Step) -> StepResult:
        """Run step and return its result.

        Raises:
            TypeError: If step is not a known step variant
            TuggerError: Whatever the step handler raises
        """
        handler = HANDLERS.get(type(step))
        if handler is None:
            raise TypeError(f"Unknown step type: {type(step).__name__}")
        logger.debug(f"Dispatching {step.kind} step: {step.label}")
        return handler(step, self.context, self.workspace, self.tools)
