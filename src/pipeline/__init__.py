"""Pipeline registration and execution."""

from pipeline.executor import PipelineRunError, PipelineRunner
from pipeline.registry import Pipeline, PipelineRegistry
from pipeline.state import RunState, StepState

__all__ = [
    'Pipeline',
    'PipelineRegistry',
    'PipelineRunError',
    'PipelineRunner',
    'RunState',
    'StepState',
]
