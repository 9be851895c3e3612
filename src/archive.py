"""In-process archive writers.

Both writers are reproducible: entries are written in manifest order with a
fixed mtime, root ownership and normalised modes (0755 when any execute bit
is set on the source, 0644 otherwise), so an unchanged manifest over
unchanged files produces byte-identical output.

The .deb layout follows deb(5): an ar container holding ``debian-binary``,
``control.tar.gz`` and ``data.tar.gz``, in that order.
"""

import gzip
import hashlib
import io
import logging
import os
import tarfile
import tempfile
from dataclasses import replace
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from common import is_safe_relative
from config import TuggerError
from descriptors.debian import DebianControl
from manifest import FileManifest, ManifestEntry

logger = logging.getLogger(__name__)

AR_MAGIC = b'!<arch>\n'
DEBIAN_BINARY = b'2.0\n'


class ArchiveError(TuggerError):
    """Malformed archive entry or unreadable source."""


def _check_destination(entry: ManifestEntry) -> None:
    if not is_safe_relative(entry.destination_path):
        raise ArchiveError(
            f"Destination '{entry.destination_path}' escapes the archive root "
            f"(source: {entry.source_path})"
        )


def _file_info(name: str, source: Path, mtime: int) -> tarfile.TarInfo:
    try:
        st = os.stat(source)
    except OSError as e:
        raise ArchiveError(f"Unable to read {source}: {e}") from e

    info = tarfile.TarInfo(name=name)
    info.type = tarfile.REGTYPE
    info.size = st.st_size
    info.mode = 0o755 if st.st_mode & 0o111 else 0o644
    info.mtime = mtime
    info.uid = info.gid = 0
    info.uname = info.gname = ''
    return info


def _dir_info(name: str, mtime: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.DIRTYPE
    info.mode = 0o755
    info.mtime = mtime
    info.uid = info.gid = 0
    info.uname = info.gname = ''
    return info


def _add_file(tar: tarfile.TarFile, info: tarfile.TarInfo, source: Path) -> None:
    try:
        with open(source, 'rb') as f:
            tar.addfile(info, f)
    except OSError as e:
        raise ArchiveError(f"Unable to add {source} to archive: {e}") from e


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes, mtime: int) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(data)
    info.mode = 0o644
    info.mtime = mtime
    info.uid = info.gid = 0
    info.uname = info.gname = ''
    tar.addfile(info, io.BytesIO(data))


def write_tar(
    fileobj: BinaryIO,
    manifest: FileManifest,
    mtime: int = 0,
    prefix: str = '',
    directories: bool = False,
) -> None:
    """Stream manifest entries into an uncompressed tar archive.

    Args:
        fileobj: Binary stream to write to
        manifest: Entries to add, in order
        mtime: Timestamp stamped on every entry
        prefix: Prefix for entry names (e.g. './' for Debian data.tar)
        directories: Emit parent directory entries before their first file

    Raises:
        ArchiveError: Escaping destination or unreadable source
    """
    emitted: set[str] = set()
    with tarfile.open(fileobj=fileobj, mode='w', format=tarfile.GNU_FORMAT) as tar:
        if directories and prefix:
            tar.addfile(_dir_info(prefix, mtime))
        for entry in manifest:
            _check_destination(entry)
            if directories:
                for parent in reversed(PurePosixPath(entry.destination_path).parents):
                    name = str(parent)
                    if name == '.' or name in emitted:
                        continue
                    emitted.add(name)
                    tar.addfile(_dir_info(f'{prefix}{name}/', mtime))
            info = _file_info(f'{prefix}{entry.destination_path}', entry.source_path, mtime)
            _add_file(tar, info, entry.source_path)


def write_tar_file(dest: Path, manifest: FileManifest, mtime: int = 0) -> Path:
    """Write a reproducible tar archive to dest atomically."""
    _atomic_write(dest, lambda f: write_tar(f, manifest, mtime))
    return dest


def _atomic_write(dest: Path, writer) -> None:
    """Write through a temporary file in dest's directory, then rename."""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f'.{dest.name}-', dir=dest.parent)
    except OSError as e:
        raise ArchiveError(f"Unable to create {dest}: {e}") from e

    try:
        with os.fdopen(fd, 'wb') as f:
            writer(f)
        os.chmod(tmp, 0o644)
        os.replace(tmp, dest)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _gzip(data: bytes, mtime: int) -> bytes:
    buf = io.BytesIO()
    with gzip.GzipFile(filename='', mode='wb', fileobj=buf, mtime=mtime, compresslevel=9) as gz:
        gz.write(data)
    return buf.getvalue()


def make_md5sums(manifest: FileManifest) -> bytes:
    """Content of DEBIAN/md5sums for the manifest."""
    lines = []
    for entry in manifest:
        digest = hashlib.md5()
        try:
            with open(entry.source_path, 'rb') as f:
                for chunk in iter(lambda: f.read(65536), b''):
                    digest.update(chunk)
        except OSError as e:
            raise ArchiveError(f"Unable to read {entry.source_path}: {e}") from e
        lines.append(f'{digest.hexdigest()}  {entry.destination_path}\n')
    return ''.join(lines).encode('utf-8')


def installed_size_kib(manifest: FileManifest) -> int:
    """Installed-Size estimate: total file size in KiB, rounded up."""
    total = 0
    for entry in manifest:
        try:
            total += os.stat(entry.source_path).st_size
        except OSError as e:
            raise ArchiveError(f"Unable to read {entry.source_path}: {e}") from e
    return (total + 1023) // 1024


def _ar_member(name: str, data: bytes, mtime: int) -> bytes:
    if len(name) > 16:
        raise ArchiveError(f"ar member name too long: {name}")
    header = (
        f'{name:<16}'
        f'{mtime:<12}'
        f'{0:<6}'
        f'{0:<6}'
        f'{0o100644:<8o}'
        f'{len(data):<10}'
        '`\n'
    ).encode('ascii')
    pad = b'\n' if len(data) % 2 else b''
    return header + data + pad


def build_control_tar(control: DebianControl, manifest: FileManifest, mtime: int = 0) -> bytes:
    """control.tar.gz holding control and md5sums."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode='w', format=tarfile.GNU_FORMAT) as tar:
        tar.addfile(_dir_info('./', mtime))
        _add_bytes(tar, './control', control.to_control_text().encode('utf-8'), mtime)
        _add_bytes(tar, './md5sums', make_md5sums(manifest), mtime)
    return _gzip(buf.getvalue(), mtime)


def build_data_tar(manifest: FileManifest, mtime: int = 0) -> bytes:
    """data.tar.gz holding the installed files under './'."""
    buf = io.BytesIO()
    write_tar(buf, manifest, mtime, prefix='./', directories=True)
    return _gzip(buf.getvalue(), mtime)


def write_deb(fileobj: BinaryIO, control: DebianControl, manifest: FileManifest, mtime: int = 0) -> None:
    """Write a complete .deb to fileobj.

    Installed-Size is computed from the manifest when the control does not
    set it.
    """
    if not control.installed_size:
        control = replace(control, installed_size=str(installed_size_kib(manifest)))

    control_tar = build_control_tar(control, manifest, mtime)
    data_tar = build_data_tar(manifest, mtime)

    fileobj.write(AR_MAGIC)
    fileobj.write(_ar_member('debian-binary', DEBIAN_BINARY, mtime))
    fileobj.write(_ar_member('control.tar.gz', control_tar, mtime))
    fileobj.write(_ar_member('data.tar.gz', data_tar, mtime))


def write_deb_file(dest: Path, control: DebianControl, manifest: FileManifest, mtime: int = 0) -> Path:
    """Write a .deb to dest atomically."""
    _atomic_write(dest, lambda f: write_deb(f, control, manifest, mtime))
    return dest


def read_ar_members(data: bytes) -> list[tuple[str, bytes]]:
    """Parse an ar archive into (name, content) pairs."""
    if not data.startswith(AR_MAGIC):
        raise ArchiveError("Not an ar archive")
    members = []
    offset = len(AR_MAGIC)
    while offset < len(data):
        header = data[offset:offset + 60]
        if len(header) < 60 or header[58:60] != b'`\n':
            raise ArchiveError(f"Malformed ar header at offset {offset}")
        name = header[:16].decode('ascii').rstrip().rstrip('/')
        size = int(header[48:58].decode('ascii').strip())
        start = offset + 60
        members.append((name, data[start:start + size]))
        offset = start + size + (size % 2)
    return members


def find_artifacts(directory: Path, suffix: str) -> list[Path]:
    """Files in directory (non-recursive) with the given suffix, sorted."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix))


def describe(path: Path) -> str:
    """Short artifact description for logs: name, size and sha256 prefix."""
    h = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            h.update(chunk)
    return f"{path.name} ({path.stat().st_size} bytes, sha256 {h.hexdigest()[:12]})"
