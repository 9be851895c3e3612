"""Run state for pipeline execution.

Tracks per-step status (pending, running, completed, failed) for one run of
one pipeline. A run moves Pending -> Running(i) -> Completed, or stops at
Failed(i, cause) where i is the failing step's index.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class StepState:
    """Per-step execution state.

    Attributes:
        index: Position of the step in the pipeline
        label: Human-readable step label
        kind: Step variant name (snapcraft, debian_deb_archive, tar_archive)
        status: pending, running, completed or failed
        started_at: Timestamp when execution started
        completed_at: Timestamp when execution ended
        error: Error message if failed
        artifacts: Paths of produced artifacts
    """
    index: int
    label: str
    kind: str
    status: str = 'pending'
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None
    artifacts: list[str] = field(default_factory=list)

    def start(self) -> None:
        self.status = 'running'
        self.started_at = time.time()

    def complete(self, artifacts: Optional[list] = None) -> None:
        self.status = 'completed'
        self.completed_at = time.time()
        if artifacts:
            self.artifacts = [str(a) for a in artifacts]

    def fail(self, error: str) -> None:
        self.status = 'failed'
        self.completed_at = time.time()
        self.error = error

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'index': self.index,
            'label': self.label,
            'kind': self.kind,
            'status': self.status,
        }
        if self.duration is not None:
            d['duration'] = round(self.duration, 3)
        if self.error is not None:
            d['error'] = self.error
        if self.artifacts:
            d['artifacts'] = self.artifacts
        return d


class RunState:
    """State of a single pipeline run."""

    def __init__(self, pipeline: str):
        self.pipeline = pipeline
        self.status = 'pending'
        self.steps: list[StepState] = []
        self.failed_index: Optional[int] = None
        self.cause: Optional[BaseException] = None
        self.started_at: Optional[float] = None
        self.completed_at: Optional[float] = None

    def add_step(self, label: str, kind: str) -> StepState:
        state = StepState(index=len(self.steps), label=label, kind=kind)
        self.steps.append(state)
        return state

    def start(self) -> None:
        self.status = 'running'
        self.started_at = time.time()

    def complete(self) -> None:
        self.status = 'completed'
        self.completed_at = time.time()

    def fail(self, index: int, cause: BaseException) -> None:
        self.status = 'failed'
        self.failed_index = index
        self.cause = cause
        self.completed_at = time.time()
        self.steps[index].fail(str(cause))

    @property
    def current_index(self) -> Optional[int]:
        """Index of the running step, if any."""
        for step in self.steps:
            if step.status == 'running':
                return step.index
        return None

    @property
    def artifacts(self) -> list[str]:
        return [a for step in self.steps for a in step.artifacts]

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'pipeline': self.pipeline,
            'status': self.status,
            'steps': [s.to_dict() for s in self.steps],
            'artifacts': self.artifacts,
        }
        if self.duration is not None:
            d['duration'] = round(self.duration, 3)
        if self.failed_index is not None:
            d['failed_step'] = self.failed_index
            d['error'] = str(self.cause)
            d['error_type'] = type(self.cause).__name__
        return d
