"""Debian binary package control metadata."""

import re
from dataclasses import dataclass
from typing import Optional

from config import ConfigError

# Debian policy 5.6.1: lowercase alphanumerics plus '.', '+', '-'
PACKAGE_NAME_RE = re.compile(r'^[a-z0-9][a-z0-9.+-]+$')

KNOWN_ARCHITECTURES = {
    'all', 'any', 'amd64', 'arm64', 'armel', 'armhf', 'i386',
    'mips64el', 'ppc64el', 'riscv64', 's390x',
}

# Relationship fields stored as ordered lists of opaque constraint strings
RELATIONSHIP_FIELDS = (
    ('depends', 'Depends'),
    ('pre_depends', 'Pre-Depends'),
    ('recommends', 'Recommends'),
    ('suggests', 'Suggests'),
    ('enhances', 'Enhances'),
    ('breaks', 'Breaks'),
    ('conflicts', 'Conflicts'),
)


@dataclass(frozen=True)
class DebianControl:
    """Control paragraph for a binary package."""
    package: str
    version: str
    architecture: str
    maintainer: str
    description: str
    homepage: Optional[str] = None
    section: Optional[str] = None
    priority: Optional[str] = None
    depends: tuple[str, ...] = ()
    source: Optional[str] = None
    essential: Optional[str] = None
    pre_depends: tuple[str, ...] = ()
    recommends: tuple[str, ...] = ()
    suggests: tuple[str, ...] = ()
    enhances: tuple[str, ...] = ()
    breaks: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()
    installed_size: Optional[str] = None
    built_using: Optional[str] = None

    @property
    def deb_filename(self) -> str:
        """Artifact name: <package>_<version without epoch>_<architecture>.deb"""
        version = self.version.split(':', 1)[1] if ':' in self.version else self.version
        return f'{self.package}_{version}_{self.architecture}.deb'

    def control_fields(self) -> list[tuple[str, str]]:
        """Control fields in conventional order."""
        entries = [('Package', self.package)]
        if self.source:
            entries.append(('Source', self.source))
        entries += [
            ('Version', self.version),
            ('Architecture', self.architecture),
            ('Maintainer', self.maintainer),
        ]
        if self.installed_size:
            entries.append(('Installed-Size', self.installed_size))
        for attr, key in RELATIONSHIP_FIELDS:
            values = getattr(self, attr)
            if values:
                entries.append((key, ', '.join(values)))
        for attr, key in (('section', 'Section'), ('priority', 'Priority'),
                          ('essential', 'Essential'), ('homepage', 'Homepage'),
                          ('built_using', 'Built-Using')):
            value = getattr(self, attr)
            if value:
                entries.append((key, value))
        entries.append(('Description', self.description))
        return entries

    def to_control_text(self) -> str:
        """Render the paragraph as a DEBIAN/control file."""
        lines = []
        for key, value in self.control_fields():
            first, *rest = value.split('\n')
            lines.append(f'{key}: {first}')
            for line in rest:
                lines.append(f' {line}' if line.strip() else ' .')
        return '\n'.join(lines) + '\n'


def _required(name: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"debian control field '{name}' is required and must be a non-empty string")
    return value.strip()


def _optional(name: str, value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"debian control field '{name}' must be a string; got {type(value).__name__}")
    return value.strip() or None


def _relationship(name: str, value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigError(f"debian control field '{name}' must be a list of strings")
    entries = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"debian control field '{name}' must be a list of strings")
        item = item.strip()
        if not item:
            raise ConfigError(f"debian control field '{name}' contains an empty entry")
        entries.append(item)
    return tuple(entries)


def debian_control_binary_package(
    package,
    version,
    architecture,
    maintainer,
    description,
    homepage=None,
    section=None,
    priority=None,
    depends=None,
    **kwargs,
) -> DebianControl:
    """Validate and build a DebianControl.

    Raises:
        ConfigError: Invalid package name, empty version, unknown architecture,
            or wrongly typed fields
    """
    relationship_keys = {attr for attr, _ in RELATIONSHIP_FIELDS} - {'depends'}
    scalar_keys = {'source', 'essential', 'installed_size', 'built_using'}
    unknown = set(kwargs) - relationship_keys - scalar_keys
    if unknown:
        raise ConfigError(f"debian_control_binary_package() got unexpected arguments: {sorted(unknown)}")

    if not isinstance(package, str) or not PACKAGE_NAME_RE.match(package):
        raise ConfigError(
            f"Invalid Debian package name {package!r}: must be lowercase "
            "alphanumerics, '.', '+' or '-', at least two characters"
        )

    version = _required('version', version)
    if any(c.isspace() for c in version):
        raise ConfigError(f"Invalid Debian version {version!r}: must not contain whitespace")

    if not isinstance(architecture, str) or architecture not in KNOWN_ARCHITECTURES:
        raise ConfigError(
            f"Unknown architecture {architecture!r}. "
            f"Known: {', '.join(sorted(KNOWN_ARCHITECTURES))}"
        )

    values = {}
    for key, value in kwargs.items():
        if key in relationship_keys:
            values[key] = _relationship(key, value)
        else:
            values[key] = _optional(key, value)

    return DebianControl(
        package=package,
        version=version,
        architecture=architecture,
        maintainer=_required('maintainer', maintainer),
        description=_required('description', description),
        homepage=_optional('homepage', homepage),
        section=_optional('section', section),
        priority=_optional('priority', priority),
        depends=_relationship('depends', depends),
        **values,
    )
