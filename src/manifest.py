"""File manifests: resolving glob patterns into an install layout.

A FileManifest maps destination paths (relative, POSIX separators) to source
files on disk. Manifests are built once during evaluation and never mutated;
their iteration order is the order entries are staged and archived in.

Building a manifest only queries the filesystem (glob expansion, is_file);
file content is read later by the steps that stage or archive it.
"""

import glob as globlib
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Optional, Union

from common import is_safe_relative
from config import TuggerError
from workspace import StageError

logger = logging.getLogger(__name__)


class ManifestError(TuggerError):
    """Glob, collision or path-escape problem while building a manifest."""


@dataclass(frozen=True)
class SourceFile:
    """A file on disk matched by glob()."""
    path: Path

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class ManifestEntry:
    """One file in a manifest."""
    source_path: Path
    destination_path: str


@dataclass(frozen=True)
class GlobSpec:
    """Inputs to build(). Not retained after the manifest is produced."""
    include_patterns: tuple[str, ...]
    exclude_patterns: tuple[str, ...] = ()
    relative_to: Optional[Path] = None
    prefix: str = ''


@dataclass(frozen=True)
class FileManifest:
    """Ordered, immutable collection of manifest entries.

    Destination paths are unique within a manifest.
    """
    entries: tuple[ManifestEntry, ...] = field(default_factory=tuple)

    def __post_init__(self):
        seen: dict[str, Path] = {}
        for entry in self.entries:
            if entry.destination_path in seen:
                raise ManifestError(
                    f"Destination '{entry.destination_path}' produced by both "
                    f"{seen[entry.destination_path]} and {entry.source_path}"
                )
            seen[entry.destination_path] = entry.source_path

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def destinations(self) -> list[str]:
        return [e.destination_path for e in self.entries]

    def get(self, destination: str) -> Optional[Path]:
        """Source path for a destination, or None."""
        for entry in self.entries:
            if entry.destination_path == destination:
                return entry.source_path
        return None

    def install(self, dest_dir: Path) -> None:
        """Copy every entry into dest_dir, preserving file mode.

        Raises:
            ManifestError: If a destination escapes dest_dir
            StageError: On any filesystem error
        """
        for entry in self.entries:
            if not is_safe_relative(entry.destination_path):
                raise ManifestError(
                    f"Destination '{entry.destination_path}' escapes the staging directory"
                )
        for entry in self.entries:
            target = dest_dir / entry.destination_path
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(entry.source_path, target)
            except OSError as e:
                raise StageError(
                    f"Unable to stage {entry.source_path} as {target}: {e}"
                ) from e
        logger.debug(f"Installed {len(self.entries)} files into {dest_dir}")


def _absolute(path: Union[str, Path]) -> Path:
    """Absolute, normalised path without resolving symlinks."""
    return Path(os.path.abspath(path))


def _expand(pattern: str, cwd: Path) -> set[Path]:
    """Expand one pattern to the set of regular files it matches."""
    search = pattern if os.path.isabs(pattern) else str(cwd / pattern)
    matches = globlib.glob(search, recursive=True, include_hidden=True)
    return {_absolute(m) for m in matches if os.path.isfile(m)}


def resolve_patterns(
    include: Iterable[str],
    exclude: Iterable[str] = (),
    cwd: Optional[Path] = None,
) -> list[Path]:
    """Resolve include/exclude patterns to a sorted list of files.

    '**' matches any number of path segments, '*' exactly one. All includes
    are evaluated before excludes, so declaration order does not matter.
    """
    cwd = _absolute(cwd or Path.cwd())

    included: set[Path] = set()
    for pattern in include:
        included |= _expand(pattern, cwd)

    excluded: set[Path] = set()
    for pattern in exclude:
        excluded |= _expand(pattern, cwd)

    result = sorted(included - excluded)
    logger.debug(f"Resolved {len(result)} files ({len(included)} included, "
                 f"{len(included & excluded)} excluded)")
    return result


def glob(patterns, exclude=None, cwd: Optional[Path] = None) -> list[SourceFile]:
    """Resolve patterns to SourceFile values (backs the glob() builtin)."""
    if isinstance(patterns, str):
        patterns = [patterns]
    if exclude is None:
        exclude = []
    elif isinstance(exclude, str):
        exclude = [exclude]
    return [SourceFile(path=p) for p in resolve_patterns(patterns, exclude, cwd)]


def _destination(source: Path, relative_to: Path, prefix: str) -> str:
    try:
        rel = source.relative_to(relative_to)
    except ValueError:
        raise ManifestError(f"{source} is not relative to {relative_to}")

    dest = PurePosixPath(prefix) / PurePosixPath(*rel.parts) if prefix else PurePosixPath(*rel.parts)
    if not is_safe_relative(str(dest)):
        raise ManifestError(f"Destination '{dest}' for {source} escapes the install root (prefix: '{prefix}')")
    return str(dest)


def from_files(
    files: Iterable[Union[SourceFile, Path, str]],
    relative_to: Union[Path, str],
    prefix: str = '',
) -> FileManifest:
    """Build a manifest from explicit files.

    Entries keep the order of ``files``. The same source listed twice with
    the same destination collapses into one entry; distinct sources mapping
    to one destination raise ManifestError.

    Raises:
        ManifestError: Source outside relative_to, destination escaping the
            install root, or destination collision
    """
    relative_to = _absolute(relative_to)
    prefix = prefix.strip('/') if prefix else ''

    entries: list[ManifestEntry] = []
    by_dest: dict[str, Path] = {}
    for f in files:
        source = _absolute(f.path if isinstance(f, SourceFile) else f)
        dest = _destination(source, relative_to, prefix)
        if dest in by_dest:
            if by_dest[dest] == source:
                continue
            raise ManifestError(
                f"Destination '{dest}' produced by both {by_dest[dest]} and {source}"
            )
        by_dest[dest] = source
        entries.append(ManifestEntry(source_path=source, destination_path=dest))

    return FileManifest(entries=tuple(entries))


def build(
    include: Iterable[str],
    exclude: Iterable[str] = (),
    relative_to: Optional[Union[Path, str]] = None,
    prefix: str = '',
    cwd: Optional[Path] = None,
) -> FileManifest:
    """Resolve patterns into a FileManifest.

    Args:
        include: Glob patterns to include (relative to cwd unless absolute)
        exclude: Glob patterns removed from the include set
        relative_to: Directory destinations are computed from (default cwd)
        prefix: Path prepended to every destination
        cwd: Directory relative patterns resolve against

    Returns:
        FileManifest ordered by destination path

    Raises:
        ManifestError: On path escape or destination collision
    """
    cwd = _absolute(cwd or Path.cwd())
    spec = GlobSpec(
        include_patterns=tuple(include),
        exclude_patterns=tuple(exclude),
        relative_to=_absolute(cwd / relative_to) if relative_to is not None else cwd,
        prefix=prefix,
    )

    sources = resolve_patterns(spec.include_patterns, spec.exclude_patterns, cwd)
    manifest = from_files(sources, spec.relative_to, spec.prefix)
    ordered = sorted(manifest.entries, key=lambda e: e.destination_path)
    return FileManifest(entries=tuple(ordered))
