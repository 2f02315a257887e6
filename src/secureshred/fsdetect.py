"""
secureshred.fsdetect
--------------------

Filesystem detection and erasure strategy selection.

The volume holding a path is resolved through psutil's mount table, falling
back to walking up the path until the device id changes. The raw filesystem
type name is normalised into a FilesystemType, and select_strategy() maps
the resulting VolumeInfo onto an ErasureStrategy:

    network volume                  -> UNLINK_ONLY
    copy-on-write (apfs, zfs, btrfs) -> CRYPTO
    anything else, including unknown -> OVERWRITE

Detection never raises; an unresolvable volume is reported as an unknown,
local, non-removable filesystem mounted at the root.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Iterable, Optional

import psutil

from .models import ErasureStrategy, FilesystemType, VolumeInfo

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# checked in order; "exfat" must win over "fat"
_TYPE_MARKERS: tuple[tuple[tuple[str, ...], FilesystemType], ...] = (
    (("apfs",), FilesystemType.APFS),
    (("hfs",), FilesystemType.HFS),
    (("exfat",), FilesystemType.EXFAT),
    (("msdos", "fat"), FilesystemType.FAT),
    (("ntfs",), FilesystemType.NTFS),
    (("ext",), FilesystemType.EXT),
    (("zfs",), FilesystemType.ZFS),
    (("btrfs",), FilesystemType.BTRFS),
)

_NETWORK_FSTYPES = frozenset({
    "nfs", "nfs4", "smbfs", "smb", "smb2", "smb3", "cifs", "afpfs", "afs",
    "webdav", "davfs", "sshfs", "9p", "ceph", "glusterfs", "lustre", "ncpfs",
    "rclone", "s3fs", "gcsfuse",
})


def classify_filesystem(raw_type: Optional[str]) -> FilesystemType:
    """Normalise a raw filesystem type name (case-insensitive substring match)."""
    if not raw_type:
        return FilesystemType.UNKNOWN
    lowered = raw_type.lower()
    for markers, fs_type in _TYPE_MARKERS:
        if any(marker in lowered for marker in markers):
            return fs_type
    return FilesystemType.UNKNOWN


def is_network_fstype(raw_type: Optional[str]) -> bool:
    if not raw_type:
        return False
    tokens = raw_type.lower().replace("-", ".").split(".")
    return any(token in _NETWORK_FSTYPES for token in tokens)


def select_strategy(info: VolumeInfo) -> ErasureStrategy:
    if info.is_network:
        return ErasureStrategy.UNLINK_ONLY
    if info.filesystem_type.is_cow:
        return ErasureStrategy.CRYPTO
    return ErasureStrategy.OVERWRITE


def _contains(mount_point: str, path: str) -> bool:
    if path == mount_point:
        return True
    prefix = mount_point if mount_point.endswith(os.sep) else mount_point + os.sep
    return path.startswith(prefix)


def _find_partition(path: str):
    best = None
    try:
        partitions = psutil.disk_partitions(all=True)
    except (psutil.Error, OSError) as e:
        logger.debug("Failed to read mount table: %s", e)
        return None
    for part in partitions:
        if not part.mountpoint or not _contains(part.mountpoint, path):
            continue
        if best is None or len(part.mountpoint) > len(best.mountpoint):
            best = part
    return best


def find_mount_point(path: str) -> str:
    """Walk up from ``path`` until the device id changes."""
    current = os.path.abspath(path)
    try:
        device = os.stat(current).st_dev
    except OSError:
        return os.path.abspath(os.sep)
    while True:
        parent = os.path.dirname(current)
        if parent == current:
            return current
        try:
            if os.stat(parent).st_dev != device:
                return current
        except OSError:
            return current
        current = parent


def _is_removable_device(device: str, opts: str) -> bool:
    if "removable" in opts.split(","):
        return True
    if not sys.platform.startswith("linux") or not device.startswith("/dev/"):
        return False
    name = os.path.basename(os.path.realpath(device))
    sysfs = os.path.join("/sys/class/block", name)
    if os.path.exists(os.path.join(sysfs, "partition")):
        sysfs = os.path.dirname(os.path.realpath(sysfs))
    try:
        with open(os.path.join(sysfs, "removable"), "r") as f:
            return f.read().strip() == "1"
    except OSError:
        return False


def _is_remote_mount(fstype: str, opts: str) -> bool:
    options = opts.split(",")
    if "remote" in options:
        return True
    if sys.platform == "darwin" and options and "local" not in options:
        return True
    return is_network_fstype(fstype)


def get_volume_info(path: str) -> VolumeInfo:
    """Describe the volume that holds ``path``."""
    resolved = os.path.realpath(path)
    part = _find_partition(resolved)
    if part is None:
        mount_point = find_mount_point(resolved)
        logger.debug("No mount table entry for %s; using %s", path, mount_point)
        return VolumeInfo(
            filesystem_type=FilesystemType.UNKNOWN,
            is_network=False,
            is_removable=False,
            mount_point=mount_point,
        )

    fstype = part.fstype or ""
    opts = part.opts or ""
    volume_name = os.path.basename(part.mountpoint.rstrip(os.sep)) or part.device or "Unknown"
    info = VolumeInfo(
        filesystem_type=classify_filesystem(fstype),
        is_network=_is_remote_mount(fstype, opts),
        is_removable=_is_removable_device(part.device or "", opts),
        mount_point=part.mountpoint,
        volume_name=volume_name,
        raw_type=fstype,
    )
    logger.debug("Volume for %s: %s", path, info)
    return info


def analyze_volumes(paths: Iterable[str]) -> list[VolumeInfo]:
    """Unique volumes for ``paths``, in first-seen order."""
    seen: set[str] = set()
    volumes: list[VolumeInfo] = []
    for path in paths:
        info = get_volume_info(path)
        if info.mount_point not in seen:
            seen.add(info.mount_point)
            volumes.append(info)
    return volumes


def has_network_volumes(paths: Iterable[str]) -> bool:
    return any(get_volume_info(path).is_network for path in paths)


class FilesystemClassifier:
    """Maps paths to volumes and erasure strategies."""

    def volume_info(self, path: str) -> VolumeInfo:
        return get_volume_info(path)

    def strategy_for(self, path: str) -> ErasureStrategy:
        return select_strategy(self.volume_info(path))
