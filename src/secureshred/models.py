"""
secureshred.models
------------------

Value types passed between the discovery, classification, erasure and
reporting stages.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ShredError
from .utils import format_bytes


@dataclass(frozen=True)
class DiscoveredFile:
    """A regular file found during discovery."""

    path: str
    size: int
    link_count: int = 1

    @property
    def is_hard_linked(self) -> bool:
        return self.link_count > 1

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


class FilesystemType(enum.Enum):
    APFS = "apfs"
    HFS = "hfs"
    EXFAT = "exfat"
    FAT = "msdos"
    NTFS = "ntfs"
    EXT = "ext4"
    ZFS = "zfs"
    BTRFS = "btrfs"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_cow(self) -> bool:
        return self in COW_FILESYSTEMS


_DISPLAY_NAMES = {
    FilesystemType.APFS: "APFS",
    FilesystemType.HFS: "HFS+ (Mac OS Extended)",
    FilesystemType.EXFAT: "exFAT",
    FilesystemType.FAT: "FAT32",
    FilesystemType.NTFS: "NTFS",
    FilesystemType.EXT: "ext4",
    FilesystemType.ZFS: "ZFS",
    FilesystemType.BTRFS: "Btrfs",
    FilesystemType.UNKNOWN: "Unknown",
}

COW_FILESYSTEMS = frozenset({FilesystemType.APFS, FilesystemType.ZFS, FilesystemType.BTRFS})
TRADITIONAL_FILESYSTEMS = frozenset({
    FilesystemType.HFS,
    FilesystemType.EXFAT,
    FilesystemType.FAT,
    FilesystemType.NTFS,
    FilesystemType.EXT,
})


@dataclass(frozen=True, eq=False)
class VolumeInfo:
    """Filesystem facts about the volume holding a path. Equal by mount point."""

    filesystem_type: FilesystemType
    is_network: bool
    is_removable: bool
    mount_point: str
    volume_name: str = "Unknown"
    raw_type: str = ""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VolumeInfo):
            return NotImplemented
        return self.mount_point == other.mount_point

    def __hash__(self) -> int:
        return hash(self.mount_point)

    @property
    def is_cow(self) -> bool:
        return self.filesystem_type.is_cow

    @property
    def security_note(self) -> str:
        if self.is_network:
            return "Network volume - server may retain copies"
        if self.filesystem_type in COW_FILESYSTEMS:
            return "Copy-on-write filesystem - crypto-shred recommended"
        if self.filesystem_type in TRADITIONAL_FILESYSTEMS:
            return "Traditional filesystem - direct overwrite"
        return "Unknown filesystem"


class ErasureStrategy(enum.Enum):
    OVERWRITE = "overwrite"
    CRYPTO = "crypto"
    UNLINK_ONLY = "unlink-only"

    @property
    def provides_destruction(self) -> bool:
        return self is not ErasureStrategy.UNLINK_ONLY


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable copy of an OperationState, handed to progress listeners."""

    progress: float
    status: str
    current_file: str
    current_file_index: int
    total_files: int


@dataclass
class OperationState:
    """Mutable run state. Owned by the engine for the duration of a single run."""

    progress: float = 0.0
    current_file: str = ""
    current_file_index: int = 0
    total_files: int = 0
    status_message: str = ""
    is_running: bool = False
    is_cancelled: bool = False

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            progress=self.progress,
            status=self.status_message,
            current_file=self.current_file,
            current_file_index=self.current_file_index,
            total_files=self.total_files,
        )

    def reset(self) -> None:
        self.progress = 0.0
        self.current_file = ""
        self.current_file_index = 0
        self.total_files = 0
        self.status_message = ""
        self.is_running = False
        self.is_cancelled = False


@dataclass(frozen=True)
class FileResult:
    path: str
    strategy: ErasureStrategy
    success: bool
    error: Optional[ShredError] = None
    bytes_written: int = 0

    def __post_init__(self) -> None:
        if self.success == (self.error is not None):
            raise ValueError("a file result is either a success or carries an error")

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)


@dataclass(frozen=True)
class ShredResult:
    files_processed: int
    files_succeeded: int
    files_failed: int
    bytes_shredded: int
    file_results: tuple[FileResult, ...] = ()
    hard_linked_files: tuple[str, ...] = ()
    was_cancelled: bool = False
    duration: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of processed files that were shredded."""
        if self.files_processed == 0:
            return 0.0
        return self.files_succeeded / self.files_processed * 100

    @property
    def failed_files(self) -> list[tuple[str, str]]:
        return [(r.path, str(r.error)) for r in self.file_results if not r.success]

    @property
    def unlink_only_files(self) -> list[str]:
        """Removed files whose contents were not destroyed (remote volumes)."""
        return [
            r.path for r in self.file_results
            if r.success and not r.strategy.provides_destruction
        ]

    @property
    def summary(self) -> str:
        parts = []
        if self.files_succeeded > 0:
            plural = "" if self.files_succeeded == 1 else "s"
            parts.append(f"{self.files_succeeded} file{plural} shredded")
        if self.files_failed > 0:
            parts.append(f"{self.files_failed} failed")
        if self.was_cancelled:
            parts.append("cancelled")
        return ", ".join(parts)

    def report(self) -> list[str]:
        """Lines describing the run for display by the caller."""
        lines = [self.summary or "Nothing to shred"]
        lines.append(f"{format_bytes(self.bytes_shredded)} destroyed in {self.duration:.1f}s")
        for path, reason in self.failed_files:
            lines.append(f"Failed: {path}: {reason}")
        for path in self.unlink_only_files:
            lines.append(f"Removed without overwrite (network volume): {path}")
        for path in self.hard_linked_files:
            lines.append(f"Hard-linked, data may persist via another link: {path}")
        return lines


@dataclass
class ResultBuilder:
    """Accumulates per-file outcomes; frozen into a ShredResult once."""

    file_results: list[FileResult] = field(default_factory=list)
    hard_linked_files: list[str] = field(default_factory=list)
    bytes_shredded: int = 0
    files_succeeded: int = 0
    files_failed: int = 0

    def add(self, result: FileResult) -> None:
        self.file_results.append(result)
        if result.success:
            self.files_succeeded += 1
            self.bytes_shredded += result.bytes_written
        else:
            self.files_failed += 1

    def build(self, *, was_cancelled: bool, duration: float) -> ShredResult:
        return ShredResult(
            files_processed=len(self.file_results),
            files_succeeded=self.files_succeeded,
            files_failed=self.files_failed,
            bytes_shredded=self.bytes_shredded,
            file_results=tuple(self.file_results),
            hard_linked_files=tuple(self.hard_linked_files),
            was_cancelled=was_cancelled,
            duration=duration,
        )
