"""Pipeline steps and their executors."""

from steps.executor import StepExecutor
from steps.types import (
    DEB_BACKENDS,
    STEP_TYPES,
    DebianDebArchiveStep,
    SnapcraftStep,
    Step,
    StepResult,
    TarArchiveStep,
)

__all__ = [
    'DEB_BACKENDS',
    'STEP_TYPES',
    'DebianDebArchiveStep',
    'SnapcraftStep',
    'Step',
    'StepExecutor',
    'StepResult',
    'TarArchiveStep',
]
