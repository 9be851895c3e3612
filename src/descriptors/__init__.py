"""Packaging target descriptors (snapcraft.yaml, Debian control)."""

from descriptors.debian import DebianControl, debian_control_binary_package
from descriptors.snap import SnapApp, SnapDescriptor, SnapPart, snap, snap_app, snap_part

__all__ = [
    'DebianControl',
    'debian_control_binary_package',
    'SnapApp',
    'SnapDescriptor',
    'SnapPart',
    'snap',
    'snap_app',
    'snap_part',
]
