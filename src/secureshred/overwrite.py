"""
secureshred.overwrite
---------------------

In-place multi-pass overwrite for traditional (non copy-on-write) filesystems.

On filesystems such as ext4, HFS+, exFAT or FAT32 a write to an existing
offset lands in the same disk blocks, so overwriting the file destroys its
previous contents. Passes follow the DoD 5220.22-M cycle:

    1. all zeros (0x00)
    2. all ones  (0xFF)
    3. cryptographically random data

Main API:
    - pattern_sequence(passes)
    - OverwriteEraser().erase(path, passes=3, chunk_size=..., verify=True,
      progress=None, token=None)

Notes / limitations:
 - Each pass is flushed to the device (fsync + F_FULLFSYNC where available)
   before the next one starts.
 - Verification re-reads the final pass. On Linux the page cache is dropped
   first so the read comes from the device; elsewhere it may be served from
   cache.
 - Wear-levelled flash may keep stale copies of the data regardless.
"""

from __future__ import annotations

import enum
import errno
import hashlib
import io
import logging
import os
from typing import Optional

from .config import DEFAULT_CHUNK_SIZE
from .errors import OpenFailed, VerificationFailed, WriteFailed, from_os_error
from .fsops import clear_immutable, disable_write_cache, drop_page_cache, full_fsync, open_no_follow_flags
from .memory import SecureMemory, secure_alloc
from .progress import CancellationToken, ProgressCallback, _ignore_progress
from .utils import secure_compare

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class Pattern(enum.Enum):
    ZEROS = "zeros"
    ONES = "ones"
    RANDOM = "random"

    @property
    def display_name(self) -> str:
        if self is Pattern.ZEROS:
            return "zeros (0x00)"
        if self is Pattern.ONES:
            return "ones (0xFF)"
        return "random data"

    @property
    def fill_byte(self) -> Optional[int]:
        if self is Pattern.ZEROS:
            return 0x00
        if self is Pattern.ONES:
            return 0xFF
        return None


def pattern_sequence(passes: int) -> list[Pattern]:
    """
    The overwrite patterns for a pass count.

    - 1 pass:   [random]
    - 3 passes: [zeros, ones, random]
    - 7 passes: [zeros, ones, random, zeros, ones, random, random]
    - other N:  N // 3 full cycles, then [random] or [zeros, random] for the
      remainder, so the sequence always ends with random data
    """
    if passes <= 1:
        return [Pattern.RANDOM]

    full_cycles, remainder = divmod(passes, 3)
    patterns: list[Pattern] = []
    for _ in range(full_cycles):
        patterns.extend((Pattern.ZEROS, Pattern.ONES, Pattern.RANDOM))
    if remainder == 1:
        patterns.append(Pattern.RANDOM)
    elif remainder == 2:
        patterns.extend((Pattern.ZEROS, Pattern.RANDOM))
    return patterns


class OverwriteEraser:
    """Overwrites a file's existing blocks in place."""

    def erase(
        self,
        path: str,
        *,
        passes: int = 3,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        verify: bool = True,
        progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> int:
        """
        Overwrite ``path`` in place and return the file size.

        Raises:
            OpenFailed / FileNotFound / PermissionDenied: the file cannot be opened
                (symbolic links are refused)
            WriteFailed: seek, write or flush failure, including short writes
            VerificationFailed: the final pass did not read back as written
            Cancelled: ``token`` was cancelled at a pass or chunk boundary
        """
        progress = progress or _ignore_progress
        token = token or CancellationToken()
        patterns = pattern_sequence(passes)
        total = len(patterns)

        clear_immutable(path)

        with self._open(path) as f:
            fd = f.fileno()
            disable_write_cache(fd)
            try:
                size = os.fstat(fd).st_size
            except OSError as e:
                raise OpenFailed(path, f"fstat failed: {e.strerror}") from e

            if size == 0:
                progress(1.0, "Empty file, skipping")
                return 0

            with secure_alloc(chunk_size) as buf:
                written_digest: Optional[bytes] = None
                for pass_index, pattern in enumerate(patterns):
                    token.raise_if_cancelled(path)
                    track_hash = verify and pattern is Pattern.RANDOM and pass_index == total - 1
                    digest = self._write_pass(
                        f, path, size, pattern, buf,
                        label=f"Pass {pass_index + 1}/{total}: {pattern.display_name}",
                        base=pass_index / total,
                        weight=1.0 / total,
                        track_hash=track_hash,
                        progress=progress,
                        token=token,
                    )
                    if track_hash:
                        written_digest = digest
                    logger.debug("%s: pass %d/%d (%s) flushed", path, pass_index + 1, total, pattern.value)

                if verify:
                    progress(1.0, "Verifying final pass")
                    self._verify(f, path, size, patterns[-1], buf, written_digest, token)

        logger.info("Overwrote %s (%d bytes, %d passes)", path, size, total)
        progress(1.0, f"Overwrite complete ({total} passes)")
        return size

    # --- Private helpers ---------------------------------------------------
    def _open(self, path: str) -> io.FileIO:
        """Open for read+write without truncating, refusing symbolic links."""
        if os.path.islink(path):
            raise OpenFailed(path, "Refusing to follow symbolic link")
        try:
            fd = os.open(path, open_no_follow_flags())
        except OSError as e:
            if e.errno == errno.ELOOP:
                raise OpenFailed(path, "Refusing to follow symbolic link") from e
            raise from_os_error(e, path) from e
        return os.fdopen(fd, "r+b", buffering=0)

    def _seek_start(self, f: io.FileIO, path: str) -> None:
        try:
            f.seek(0, os.SEEK_SET)
        except OSError as e:
            raise WriteFailed(path, f"Failed to seek: {e.strerror}") from e

    def _write_pass(
        self,
        f: io.FileIO,
        path: str,
        size: int,
        pattern: Pattern,
        buf: SecureMemory,
        *,
        label: str,
        base: float,
        weight: float,
        track_hash: bool,
        progress: ProgressCallback,
        token: CancellationToken,
    ) -> Optional[bytes]:
        self._seek_start(f, path)
        hasher = hashlib.sha256() if track_hash else None
        if pattern.fill_byte is not None:
            buf.fill(pattern.fill_byte)

        remaining = size
        while remaining > 0:
            token.raise_if_cancelled(path)
            n = min(buf.size, remaining)
            if pattern is Pattern.RANDOM:
                buf.randomize(n)
            chunk = buf.view[:n]
            if hasher is not None:
                hasher.update(chunk)
            try:
                written = f.write(chunk)
            except OSError as e:
                raise WriteFailed(path, e.strerror or str(e)) from e
            finally:
                chunk.release()
            if written != n:
                raise WriteFailed(path, f"Short write: {written} of {n}")
            remaining -= n
            progress(base + weight * (size - remaining) / size, label)

        try:
            full_fsync(f.fileno())
        except OSError as e:
            raise WriteFailed(path, f"Failed to flush: {e.strerror}") from e
        return hasher.digest() if hasher is not None else None

    def _verify(
        self,
        f: io.FileIO,
        path: str,
        size: int,
        pattern: Pattern,
        buf: SecureMemory,
        expected_digest: Optional[bytes],
        token: CancellationToken,
    ) -> None:
        """Read the file back and compare it with the final pass."""
        drop_page_cache(f.fileno())
        try:
            f.seek(0, os.SEEK_SET)
        except OSError as e:
            raise VerificationFailed(path, f"Failed to seek: {e.strerror}") from e

        hasher = hashlib.sha256() if pattern is Pattern.RANDOM and expected_digest is not None else None
        expected_byte = pattern.fill_byte
        remaining = size
        while remaining > 0:
            token.raise_if_cancelled(path)
            n = min(buf.size, remaining)
            chunk = buf.view[:n]
            try:
                got = f.readinto(chunk)
                if got != n:
                    raise VerificationFailed(path, f"Short read: {got} of {n}")
                if expected_byte is not None and buf.count(expected_byte, n) != n:
                    raise VerificationFailed(path, f"Unexpected data in {pattern.value} pass")
                if hasher is not None:
                    hasher.update(chunk)
            except OSError as e:
                raise VerificationFailed(path, e.strerror or str(e)) from e
            finally:
                chunk.release()
            remaining -= n

        if hasher is not None and not secure_compare(hasher.digest(), expected_digest):
            raise VerificationFailed(path, "Read-back hash does not match written data")
        logger.debug("Verified final %s pass of %s", pattern.value, path)
