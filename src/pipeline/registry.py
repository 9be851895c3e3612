"""Named pipeline registry.

Populated during configuration evaluation and read-only afterwards.
"""

import logging
from dataclasses import dataclass

from config import ConfigError
from steps.types import STEP_TYPES, Step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pipeline:
    """Named, ordered sequence of steps."""
    name: str
    steps: tuple[Step, ...]

    def __len__(self) -> int:
        return len(self.steps)


class PipelineRegistry:
    """Pipelines keyed by unique name, in registration order."""

    def __init__(self):
        self._pipelines: dict[str, Pipeline] = {}

    def register(self, name, steps) -> Pipeline:
        """Register a pipeline.

        Raises:
            ConfigError: Empty or duplicate name, or a non-step entry
        """
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("pipeline name must be a non-empty string")
        if name in self._pipelines:
            raise ConfigError(f"Duplicate pipeline name: {name}")
        if isinstance(steps, (str, bytes)) or not isinstance(steps, (list, tuple)):
            raise ConfigError(f"pipeline '{name}': steps must be a list")
        for i, step in enumerate(steps):
            if not isinstance(step, STEP_TYPES):
                raise ConfigError(
                    f"pipeline '{name}': step {i} is a {type(step).__name__}, "
                    "expected snapcraft(), debian_deb_archive() or tar_archive()"
                )

        pipeline = Pipeline(name=name, steps=tuple(steps))
        self._pipelines[name] = pipeline
        logger.debug(f"Registered pipeline '{name}' with {len(pipeline)} steps")
        return pipeline

    def get(self, name: str) -> Pipeline:
        """Look up a pipeline by name.

        Raises:
            ConfigError: If no pipeline has that name
        """
        try:
            return self._pipelines[name]
        except KeyError:
            available = ', '.join(self._pipelines) or '(none)'
            raise ConfigError(f"Unknown pipeline '{name}'. Available: {available}") from None

    def names(self) -> list[str]:
        return list(self._pipelines)

    def __contains__(self, name: str) -> bool:
        return name in self._pipelines

    def __len__(self) -> int:
        return len(self._pipelines)
