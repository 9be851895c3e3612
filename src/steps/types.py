"""Pipeline step variants.

The set of step kinds is closed: StepExecutor dispatches on the concrete
type, and adding a packaging backend means adding a variant here and a
handler there.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from descriptors.debian import DebianControl
from descriptors.snap import SnapDescriptor
from manifest import FileManifest

DEB_BACKENDS = ('builtin', 'dpkg-deb')


@dataclass(frozen=True)
class SnapcraftStep:
    """Stage a manifest, write snapcraft.yaml and run snapcraft."""
    args: tuple[str, ...]
    descriptor: SnapDescriptor
    build_dir: str
    manifest: FileManifest
    purge_build: bool = True
    kind: str = field(default='snapcraft', init=False)

    @property
    def label(self) -> str:
        return f"snapcraft {' '.join(self.args)}".strip()


@dataclass(frozen=True)
class DebianDebArchiveStep:
    """Produce <package>_<version>_<arch>.deb from a control and manifest."""
    control: DebianControl
    manifest: FileManifest
    backend: str = 'builtin'
    kind: str = field(default='debian_deb_archive', init=False)

    @property
    def label(self) -> str:
        return f"deb {self.control.deb_filename}"


@dataclass(frozen=True)
class TarArchiveStep:
    """Write the manifest into a reproducible tar archive."""
    name: str
    manifest: FileManifest
    kind: str = field(default='tar_archive', init=False)

    @property
    def label(self) -> str:
        return f"tar {self.name}"


Step = Union[SnapcraftStep, DebianDebArchiveStep, TarArchiveStep]

STEP_TYPES = (SnapcraftStep, DebianDebArchiveStep, TarArchiveStep)


@dataclass
class StepResult:
    """Outcome of a successfully executed step."""
    message: str = ''
    duration: float = 0.0
    artifacts: list[Path] = field(default_factory=list)
