import os
import pathlib
from types import SimpleNamespace

import psutil
import pytest
from hypothesis import given, strategies as st

from secureshred import fsdetect
from secureshred.fsdetect import (
    FilesystemClassifier,
    analyze_volumes,
    classify_filesystem,
    find_mount_point,
    get_volume_info,
    has_network_volumes,
    is_network_fstype,
    select_strategy,
)
from secureshred.models import ErasureStrategy, FilesystemType, VolumeInfo


def _part(mountpoint, fstype, opts="rw", device="none"):
    return SimpleNamespace(device=device, mountpoint=mountpoint, fstype=fstype, opts=opts)


@pytest.fixture
def mount_table(monkeypatch):
    """Replace psutil's mount table with a fixed list of partitions."""
    table = []
    monkeypatch.setattr(fsdetect.psutil, "disk_partitions", lambda all=False: list(table))
    monkeypatch.setattr(fsdetect.sys, "platform", "linux")
    return table


@pytest.fixture
def real_tmp(tmp_path):
    """tmp_path with symlinks resolved, the way mount points are compared."""
    return pathlib.Path(os.path.realpath(str(tmp_path)))


# ---------------------------------------------------------------------------
# Type classification
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    ("apfs", FilesystemType.APFS),
    ("APFS", FilesystemType.APFS),
    ("hfs", FilesystemType.HFS),
    ("exfat", FilesystemType.EXFAT),
    ("msdos", FilesystemType.FAT),
    ("vfat", FilesystemType.FAT),
    ("fat32", FilesystemType.FAT),
    ("ntfs", FilesystemType.NTFS),
    ("fuseblk.ntfs", FilesystemType.NTFS),
    ("ext4", FilesystemType.EXT),
    ("ext3", FilesystemType.EXT),
    ("zfs", FilesystemType.ZFS),
    ("btrfs", FilesystemType.BTRFS),
    ("tmpfs", FilesystemType.UNKNOWN),
    ("", FilesystemType.UNKNOWN),
    (None, FilesystemType.UNKNOWN),
])
def test_classify_filesystem(raw, expected):
    assert classify_filesystem(raw) is expected


def test_exfat_is_not_fat():
    assert classify_filesystem("exfat") is FilesystemType.EXFAT


@pytest.mark.parametrize("raw,network", [
    ("nfs", True),
    ("nfs4", True),
    ("smbfs", True),
    ("cifs", True),
    ("fuse.sshfs", True),
    ("fuse.rclone", True),
    ("ext4", False),
    ("fuse.gvfsd-fuse", False),
    ("", False),
])
def test_is_network_fstype(raw, network):
    assert is_network_fstype(raw) is network


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------

def _volume(fs_type, network=False, mount="/mnt"):
    return VolumeInfo(filesystem_type=fs_type, is_network=network, is_removable=False, mount_point=mount)


@pytest.mark.parametrize("fs_type,expected", [
    (FilesystemType.APFS, ErasureStrategy.CRYPTO),
    (FilesystemType.ZFS, ErasureStrategy.CRYPTO),
    (FilesystemType.BTRFS, ErasureStrategy.CRYPTO),
    (FilesystemType.HFS, ErasureStrategy.OVERWRITE),
    (FilesystemType.EXT, ErasureStrategy.OVERWRITE),
    (FilesystemType.FAT, ErasureStrategy.OVERWRITE),
    (FilesystemType.UNKNOWN, ErasureStrategy.OVERWRITE),
])
def test_select_strategy_local(fs_type, expected):
    assert select_strategy(_volume(fs_type)) is expected


@pytest.mark.fuzz
@given(fs_type=st.sampled_from(list(FilesystemType)), network=st.booleans())
def test_select_strategy_total_fuzz(fs_type, network):
    strategy = select_strategy(_volume(fs_type, network))
    if network:
        assert strategy is ErasureStrategy.UNLINK_ONLY
    elif fs_type.is_cow:
        assert strategy is ErasureStrategy.CRYPTO
    else:
        assert strategy is ErasureStrategy.OVERWRITE


def test_volume_info_equality_by_mount_point():
    a = _volume(FilesystemType.EXT, mount="/data")
    b = _volume(FilesystemType.UNKNOWN, network=True, mount="/data")
    assert a == b
    assert len({a, b}) == 1
    assert a != _volume(FilesystemType.EXT, mount="/other")


def test_security_note():
    assert "Network" in _volume(FilesystemType.EXT, network=True).security_note
    assert "crypto-shred" in _volume(FilesystemType.APFS).security_note
    assert "overwrite" in _volume(FilesystemType.EXT).security_note
    assert _volume(FilesystemType.UNKNOWN).security_note == "Unknown filesystem"


# ---------------------------------------------------------------------------
# Volume lookup
# ---------------------------------------------------------------------------

def test_get_volume_info_longest_mount_wins(mount_table, real_tmp):
    root = str(real_tmp)
    mount_table.extend([
        _part("/", "ext4", "rw"),
        _part(root, "btrfs", "rw,relatime", device="/dev/nonexistent-test-device"),
    ])
    info = get_volume_info(str(real_tmp / "file.txt"))
    assert info.mount_point == root
    assert info.filesystem_type is FilesystemType.BTRFS
    assert info.raw_type == "btrfs"
    assert info.is_network is False
    assert info.is_removable is False
    assert info.volume_name == os.path.basename(root)
    assert FilesystemClassifier().strategy_for(str(real_tmp / "file.txt")) is ErasureStrategy.CRYPTO


def test_get_volume_info_network_by_fstype(mount_table, real_tmp):
    mount_table.append(_part(str(real_tmp), "nfs4", "rw,vers=4.2"))
    info = get_volume_info(str(real_tmp))
    assert info.is_network
    assert select_strategy(info) is ErasureStrategy.UNLINK_ONLY


def test_get_volume_info_network_by_remote_option(mount_table, real_tmp):
    mount_table.append(_part(str(real_tmp), "ext4", "rw,remote"))
    assert get_volume_info(str(real_tmp)).is_network


def test_darwin_mount_without_local_flag_is_network(mount_table, monkeypatch, real_tmp):
    monkeypatch.setattr(fsdetect.sys, "platform", "darwin")
    mount_table.append(_part(str(real_tmp), "apfs", "rw,nobrowse"))
    assert get_volume_info(str(real_tmp)).is_network
    mount_table[0] = _part(str(real_tmp), "apfs", "rw,local,journaled")
    assert not get_volume_info(str(real_tmp)).is_network


def test_removable_option(mount_table, real_tmp):
    mount_table.append(_part(str(real_tmp), "exfat", "rw,removable"))
    info = get_volume_info(str(real_tmp))
    assert info.is_removable
    assert info.filesystem_type is FilesystemType.EXFAT


def test_sibling_prefix_is_not_a_match(mount_table, real_tmp):
    mount_table.extend([
        _part("/", "ext4"),
        _part(str(real_tmp), "zfs"),
    ])
    assert get_volume_info(str(real_tmp) + "-other").mount_point == "/"


def test_fallback_when_mount_table_unavailable(monkeypatch, tmp_path):
    def broken(all=False):
        raise psutil.Error("no mount table")

    monkeypatch.setattr(fsdetect.psutil, "disk_partitions", broken)
    info = get_volume_info(str(tmp_path))
    assert info.filesystem_type is FilesystemType.UNKNOWN
    assert info.is_network is False
    assert info.is_removable is False
    assert os.path.realpath(str(tmp_path)).startswith(info.mount_point)
    assert select_strategy(info) is ErasureStrategy.OVERWRITE


def test_find_mount_point_same_device(tmp_path):
    mount = find_mount_point(str(tmp_path))
    assert os.stat(mount).st_dev == os.stat(str(tmp_path)).st_dev


def test_analyze_volumes_dedupes(mount_table, real_tmp):
    a = real_tmp / "a"
    b = real_tmp / "b"
    mount_table.extend([_part("/", "ext4"), _part(str(b), "nfs")])
    volumes = analyze_volumes([str(a / "1"), str(a / "2"), str(b / "3")])
    assert [v.mount_point for v in volumes] == ["/", str(b)]
    assert has_network_volumes([str(b / "3")])
    assert not has_network_volumes([str(a / "1")])
