"""Engine settings and evaluation context.

Settings are layered, lowest priority first:
- built-in defaults (relative to the configuration file's directory)
- tugger.yaml next to the configuration file (``settings:`` mapping)
- environment variables (TUGGER_DIST_PATH, TUGGER_BUILD_ROOT,
  TUGGER_TOOL_PATH, SOURCE_DATE_EPOCH)
- explicit overrides (CLI flags)

The resulting EngineContext is passed explicitly to the evaluator and the
pipeline runner; nothing reads the process working directory after this
point.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import yaml

# Conventional name of the configuration file
DEFAULT_CONFIG_NAME = 'tugger.ship'

# Optional settings file looked up next to the configuration file
SETTINGS_FILE_NAME = 'tugger.yaml'

SETTINGS_KEYS = {'dist_path', 'build_root', 'tool_path', 'source_date_epoch'}


class TuggerError(Exception):
    """Base exception for engine errors."""


class ConfigError(TuggerError):
    """Configuration error."""


@dataclass(frozen=True)
class EngineContext:
    """Explicit execution context threaded through evaluation and runs.

    Attributes:
        cwd: Directory relative patterns and paths resolve against
        dist_path: Directory receiving final artifacts
        build_root: Workspace root for staging trees
        tool_path: Search path for external tool executables
        source_date_epoch: Timestamp stamped on archive entries
    """
    cwd: Path
    dist_path: Path
    build_root: Path
    tool_path: str = field(default_factory=lambda: os.environ.get('PATH', os.defpath))
    source_date_epoch: int = 0

    def resolve(self, path) -> Path:
        """Resolve a path against cwd unless already absolute."""
        p = Path(path)
        if p.is_absolute():
            return p
        return self.cwd / p

    def with_overrides(self, **overrides) -> 'EngineContext':
        """Return a copy with non-None overrides applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        for key in ('dist_path', 'build_root'):
            if key in values:
                values[key] = self.resolve(values[key])
        return replace(self, **values)


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")


def _parse_epoch(value, source: str) -> int:
    try:
        epoch = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{source}: source_date_epoch must be an integer, got {value!r}")
    if epoch < 0:
        raise ConfigError(f"{source}: source_date_epoch must not be negative")
    return epoch


def load_settings_file(path: Path) -> dict:
    """Load the ``settings`` mapping from a tugger.yaml file.

    Returns:
        Dict of recognised settings (empty if the file does not exist)

    Raises:
        ConfigError: If the file is malformed or has unknown keys
    """
    if not path.exists():
        return {}

    data = _parse_yaml(path)
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a YAML object (dict)")

    settings = data.get('settings') or {}
    if not isinstance(settings, dict):
        raise ConfigError(f"{path}: 'settings' must be a mapping")

    unknown = set(settings) - SETTINGS_KEYS
    if unknown:
        raise ConfigError(
            f"{path}: unknown settings {sorted(unknown)}. "
            f"Supported: {sorted(SETTINGS_KEYS)}"
        )
    return settings


def find_config_file(explicit: Optional[str] = None, cwd: Optional[Path] = None) -> Path:
    """Discover the configuration file.

    Resolution order:
    1. Explicit path (-c/--config)
    2. $TUGGER_CONFIG environment variable
    3. ./tugger.ship in the invocation directory

    Raises:
        ConfigError: If no configuration file is found
    """
    cwd = cwd or Path.cwd()

    if explicit:
        path = Path(explicit)
        if not path.is_absolute():
            path = cwd / path
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")
        return path

    if env_path := os.environ.get('TUGGER_CONFIG'):
        path = Path(env_path)
        if path.is_file():
            return path
        raise ConfigError(f"TUGGER_CONFIG={env_path} does not exist")

    path = cwd / DEFAULT_CONFIG_NAME
    if path.is_file():
        return path

    raise ConfigError(
        f"{DEFAULT_CONFIG_NAME} not found in {cwd}. "
        "Pass --config or set TUGGER_CONFIG."
    )


def load_context(
    config_file: Path,
    invocation_dir: Optional[Path] = None,
    env: Optional[dict] = None,
) -> EngineContext:
    """Build the EngineContext for a configuration file.

    Args:
        config_file: Path to the configuration file being evaluated
        invocation_dir: Directory the tool was invoked from (default dist path)
        env: Environment mapping (defaults to os.environ)

    Returns:
        EngineContext with all layers merged
    """
    env = os.environ if env is None else env
    base_dir = config_file.resolve().parent
    invocation_dir = invocation_dir or Path.cwd()

    context = EngineContext(
        cwd=base_dir,
        dist_path=invocation_dir,
        build_root=base_dir / 'build',
        tool_path=env.get('PATH', os.defpath),
    )

    settings_path = base_dir / SETTINGS_FILE_NAME
    settings = load_settings_file(settings_path)
    if 'source_date_epoch' in settings:
        settings['source_date_epoch'] = _parse_epoch(
            settings['source_date_epoch'], str(settings_path))
    context = context.with_overrides(**settings)

    env_overrides = {
        'dist_path': env.get('TUGGER_DIST_PATH'),
        'build_root': env.get('TUGGER_BUILD_ROOT'),
        'tool_path': env.get('TUGGER_TOOL_PATH'),
    }
    if (epoch := env.get('SOURCE_DATE_EPOCH')) is not None:
        env_overrides['source_date_epoch'] = _parse_epoch(epoch, 'SOURCE_DATE_EPOCH')

    return context.with_overrides(**env_overrides)
