"""Pipeline runner.

Runs a named pipeline's steps strictly in order. The first failing step
stops the run; later steps never execute and completed steps are not rolled
back. The workspace root is released whether the run succeeds or fails,
and any staging left by a failed step stays on disk.
"""

import logging
from typing import Optional

from config import EngineContext, TuggerError
from pipeline.registry import PipelineRegistry
from pipeline.state import RunState
from steps.executor import StepExecutor
from steps.types import DebianDebArchiveStep, SnapcraftStep, TarArchiveStep
from tools import ToolInvoker
from workspace import StageError, Workspace

logger = logging.getLogger(__name__)


class PipelineRunError(TuggerError):
    """A pipeline step failed.

    Attributes:
        pipeline: Pipeline name
        step_index: Index of the failing step
        step_label: Label of the failing step
        cause: Underlying exception
        state: RunState at the time of failure
    """

    def __init__(self, pipeline: str, step_index: int, step_label: str,
                 cause: BaseException, state: RunState):
        self.pipeline = pipeline
        self.step_index = step_index
        self.step_label = step_label
        self.cause = cause
        self.state = state
        super().__init__(
            f"Pipeline '{pipeline}' failed at step {step_index} ({step_label}): {cause}"
        )


class PipelineRunner:
    """Executes pipelines from a registry.

    Attributes:
        registry: Registry produced by configuration evaluation
        context: Engine context
        tools: Tool invoker (defaults to one over context.tool_path)
    """

    def __init__(self, registry: PipelineRegistry, context: EngineContext,
                 tools: Optional[ToolInvoker] = None):
        self.registry = registry
        self.context = context
        self.tools = tools or ToolInvoker(search_path=context.tool_path)

    def run(self, name: str) -> RunState:
        """Run a pipeline to completion.

        Returns:
            Completed RunState

        Raises:
            ConfigError: Unknown pipeline name
            PipelineRunError: A step failed. Filesystem errors a step does not
                handle itself become the cause as StageError.
        """
        pipeline = self.registry.get(name)
        state = RunState(pipeline.name)
        for step in pipeline.steps:
            state.add_step(step.label, step.kind)

        workspace = Workspace(self.context.build_root)
        executor = StepExecutor(self.context, workspace, self.tools)

        logger.info(f"Running pipeline '{name}' ({len(pipeline)} steps)")
        state.start()
        try:
            for i, step in enumerate(pipeline.steps):
                step_state = state.steps[i]
                step_state.start()
                logger.info(f"Step {i + 1}/{len(pipeline)}: {step.label}")
                try:
                    result = executor.execute(step)
                except (TuggerError, OSError) as e:
                    error = e if isinstance(e, TuggerError) else StageError(str(e))
                    logger.error(f"[{step.label}] Failed: {error}")
                    state.fail(i, error)
                    raise PipelineRunError(name, i, step.label, error, state) from e
                step_state.complete(result.artifacts)
                logger.info(f"[{step.label}] {result.message} ({result.duration:.1f}s)")
        finally:
            workspace.release()

        state.complete()
        logger.info(f"Pipeline '{name}' completed in {state.duration:.1f}s")
        return state

    def preview(self, name: str) -> bool:
        """Show what would be executed without running. Returns True."""
        pipeline = self.registry.get(name)

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN: {pipeline.name}")
        print(f"  Dist path: {self.context.dist_path}")
        print(f"  Build root: {self.context.build_root}")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        print("Steps to execute:")
        for i, step in enumerate(pipeline.steps):
            print(f"  [{i:>2}] {step.label}")
            print(f"         Kind: {step.kind}")
            print(f"         Files: {len(step.manifest)}")
            if isinstance(step, SnapcraftStep):
                print(f"         Build dir: {self.context.build_root / step.build_dir}")
                print(f"         Purge: {'yes' if step.purge_build else 'no'}")
            elif isinstance(step, DebianDebArchiveStep):
                print(f"         Backend: {step.backend}")
                print(f"         Artifact: {self.context.dist_path / step.control.deb_filename}")
            elif isinstance(step, TarArchiveStep):
                print(f"         Artifact: {self.context.dist_path / step.name}")
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {len(pipeline)} steps")
        print("═══════════════════════════════════════════════════════════════")
        return True
