"""Snap descriptors rendered to snapcraft.yaml.

Field names follow the snapcraft metadata documentation with '-' replaced
by '_' (e.g. ``override-build`` is ``override_build``). Unset fields are
omitted from the rendered YAML.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import PurePosixPath
from typing import Any, Optional

import yaml

from config import ConfigError

logger = logging.getLogger(__name__)

# Plugins that copy their source tree into the snap unchanged
COPY_PLUGINS = {'dump'}


def _render(obj, skip: tuple[str, ...] = ()) -> dict[str, Any]:
    """Dataclass fields to snapcraft keys, dropping unset values."""
    d: dict[str, Any] = {}
    for f in fields(obj):
        if f.name in skip:
            continue
        value = getattr(obj, f.name)
        if value is None:
            continue
        d[f.name.replace('_', '-')] = value
    return d


def _optional_str(name: str, value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string; got {type(value).__name__}")
    return value


def _optional_str_list(name: str, value) -> Optional[list[str]]:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{name} must be a list of strings")
    return list(value)


def _optional_str_dict(name: str, value) -> Optional[dict[str, str]]:
    if value is None:
        return None
    if not isinstance(value, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise ConfigError(f"{name} must be a dict of strings")
    return dict(value)


def _required_str(name: str, value) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string; got {type(value).__name__}")
    if not value.strip():
        raise ConfigError(f"{name} must not be empty")
    return value


@dataclass(frozen=True)
class SnapPart:
    """A ``parts.<name>`` entry."""
    plugin: Optional[str] = None
    source: Optional[str] = None
    source_type: Optional[str] = None
    source_branch: Optional[str] = None
    source_tag: Optional[str] = None
    source_commit: Optional[str] = None
    source_subdir: Optional[str] = None
    source_checksum: Optional[str] = None
    after: Optional[list[str]] = None
    build_packages: Optional[list[str]] = None
    stage_packages: Optional[list[str]] = None
    override_pull: Optional[str] = None
    override_build: Optional[str] = None
    override_stage: Optional[str] = None
    override_prime: Optional[str] = None
    parse_info: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _render(self)


@dataclass(frozen=True)
class SnapApp:
    """An ``apps.<name>`` entry."""
    command: Optional[str] = None
    adapter: Optional[str] = None
    common_id: Optional[str] = None
    daemon: Optional[str] = None
    desktop: Optional[str] = None
    environment: Optional[dict[str, str]] = None
    listen_stream: Optional[str] = None
    plugs: Optional[list[str]] = None
    post_stop_command: Optional[str] = None
    restart_condition: Optional[str] = None
    stop_command: Optional[str] = None
    stop_timeout: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _render(self)

    @property
    def executable(self) -> Optional[str]:
        """Path named by the command, without $SNAP/ and arguments."""
        if not self.command:
            return None
        first = self.command.split()[0]
        for prefix in ('$SNAP/', '${SNAP}/'):
            if first.startswith(prefix):
                first = first[len(prefix):]
        return first.lstrip('/')


@dataclass(frozen=True)
class SnapDescriptor:
    """A complete snapcraft.yaml."""
    name: str
    description: str
    summary: str
    version: str
    base: Optional[str] = None
    parts: dict[str, SnapPart] = field(default_factory=dict)
    apps: dict[str, SnapApp] = field(default_factory=dict)
    adopt_info: Optional[str] = None
    confinement: Optional[str] = None
    grade: Optional[str] = None
    icon: Optional[str] = None
    license: Optional[str] = None
    title: Optional[str] = None
    snap_type: Optional[str] = None

    def to_snapcraft_dict(self) -> dict[str, Any]:
        """Render snapcraft.yaml content (name/version first, parts/apps last)."""
        d = _render(self, skip=('parts', 'apps', 'snap_type'))
        if self.snap_type is not None:
            d['type'] = self.snap_type
        d['parts'] = {name: part.to_dict() for name, part in self.parts.items()}
        if self.apps:
            d['apps'] = {name: app.to_dict() for name, app in self.apps.items()}
        return d

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_snapcraft_dict(), sort_keys=False, default_flow_style=False)

    def unresolved_commands(self, destinations: Optional[list[str]] = None) -> list[str]:
        """App names whose command cannot be traced to a part.

        Called by the snapcraft step once the manifest is staged; snap()
        itself has no file list to check against.

        Only parts using a copy plugin with a local source can be checked
        against the staged manifest; if any part builds its content some
        other way the check is inconclusive and nothing is reported.
        """
        if destinations is None:
            return []

        producible: set[str] = set()
        for part in self.parts.values():
            if part.plugin not in COPY_PLUGINS or part.source is None or '://' in part.source:
                return []
            root = PurePosixPath(part.source)
            for dest in destinations:
                p = PurePosixPath(dest)
                if str(root) == '.':
                    producible.add(str(p))
                elif root in p.parents:
                    producible.add(str(p.relative_to(root)))

        return sorted(
            name for name, app in self.apps.items()
            if app.executable and app.executable not in producible
        )


def snap_part(plugin=None, source=None, **kwargs) -> SnapPart:
    """Validate and build a SnapPart."""
    list_keys = {'after', 'build_packages', 'stage_packages'}
    valid = {f.name for f in fields(SnapPart)}
    unknown = set(kwargs) - valid
    if unknown:
        raise ConfigError(f"snap_part() got unexpected arguments: {sorted(unknown)}")

    values = {'plugin': _optional_str('plugin', plugin), 'source': _optional_str('source', source)}
    for key, value in kwargs.items():
        if key in list_keys:
            values[key] = _optional_str_list(key, value)
        else:
            values[key] = _optional_str(key, value)
    return SnapPart(**values)


def snap_app(command=None, **kwargs) -> SnapApp:
    """Validate and build a SnapApp."""
    valid = {f.name for f in fields(SnapApp)}
    unknown = set(kwargs) - valid
    if unknown:
        raise ConfigError(f"snap_app() got unexpected arguments: {sorted(unknown)}")

    values = {'command': _optional_str('command', command)}
    for key, value in kwargs.items():
        if key == 'plugs':
            values[key] = _optional_str_list(key, value)
        elif key == 'environment':
            values[key] = _optional_str_dict(key, value)
        else:
            values[key] = _optional_str(key, value)
    return SnapApp(**values)


def snap(name, description, summary, version, base=None, parts=None, apps=None, **kwargs) -> SnapDescriptor:
    """Validate and build a SnapDescriptor.

    An app with no command is logged as a warning. Whether a command names a
    staged file is only known at staging time (see unresolved_commands).

    Raises:
        ConfigError: Missing version, no parts, or wrongly typed values
    """
    valid = {'adopt_info', 'confinement', 'grade', 'icon', 'license', 'title', 'snap_type'}
    unknown = set(kwargs) - valid
    if unknown:
        raise ConfigError(f"snap() got unexpected arguments: {sorted(unknown)}")

    name = _required_str('name', name)
    version = _required_str('version', version)
    summary = _required_str('summary', summary)
    description = _required_str('description', description)

    parts = parts or {}
    if not isinstance(parts, dict) or not parts:
        raise ConfigError(f"snap '{name}' requires at least one part")
    for part_name, part in parts.items():
        if not isinstance(part_name, str) or not isinstance(part, SnapPart):
            raise ConfigError(f"snap '{name}': parts must map names to snap_part() values")

    apps = apps or {}
    if not isinstance(apps, dict):
        raise ConfigError(f"snap '{name}': apps must be a dict")
    for app_name, app in apps.items():
        if not isinstance(app_name, str) or not isinstance(app, SnapApp):
            raise ConfigError(f"snap '{name}': apps must map names to snap_app() values")

    optional = {key: _optional_str(key, value) for key, value in kwargs.items()}

    descriptor = SnapDescriptor(
        name=name,
        description=description,
        summary=summary,
        version=version,
        base=_optional_str('base', base),
        parts=dict(parts),
        apps=dict(apps),
        **optional,
    )
    for app_name, app in descriptor.apps.items():
        if not app.command:
            logger.warning(f"snap '{name}': app '{app_name}' has no command")
    return descriptor
