"""
secureshred.fsops
-----------------

Thin wrappers over OS primitives whose availability differs between
platforms: BSD file flags, full-device flushes and per-descriptor cache
control. Every helper degrades to a no-op where the primitive is missing.
"""

from __future__ import annotations

import logging
import os
import stat

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

IMMUTABLE_FLAGS = stat.UF_IMMUTABLE | stat.SF_IMMUTABLE
APPEND_FLAGS = stat.UF_APPEND | stat.SF_APPEND


def supports_file_flags() -> bool:
    return hasattr(os, "chflags")


def clear_immutable(path: str) -> bool:
    """
    Clear user and system immutable/append-only flags on ``path``.

    Best effort: system flags usually need elevated privileges, and a
    failure here surfaces later as an open or unlink error instead.
    Returns True when flags were present and cleared.
    """
    if not supports_file_flags():
        return False
    try:
        st = os.lstat(path)
    except OSError:
        return False
    flags = getattr(st, "st_flags", 0)
    if not flags & (IMMUTABLE_FLAGS | APPEND_FLAGS):
        return False
    new_flags = flags & ~(IMMUTABLE_FLAGS | APPEND_FLAGS)
    try:
        os.chflags(path, new_flags, follow_symlinks=False)
    except (OSError, NotImplementedError) as e:
        logger.warning("Could not clear immutable flags on %s: %s", path, e)
        return False
    logger.debug("Cleared immutable flags on %s", path)
    return True


def full_fsync(fd: int) -> None:
    """
    Flush ``fd`` through the OS cache and the drive's write cache.

    os.fsync only guarantees the data reached the device on Linux; macOS needs
    F_FULLFSYNC to force the drive to commit its own cache.
    """
    os.fsync(fd)
    if fcntl is not None and hasattr(fcntl, "F_FULLFSYNC"):
        try:
            fcntl.fcntl(fd, fcntl.F_FULLFSYNC)
        except OSError as e:
            # not supported by every filesystem (e.g. network mounts)
            logger.debug("F_FULLFSYNC failed on fd %d: %s", fd, e)


def disable_write_cache(fd: int) -> bool:
    """Ask the OS not to cache I/O on ``fd`` (F_NOCACHE on macOS)."""
    if fcntl is not None and hasattr(fcntl, "F_NOCACHE"):
        try:
            fcntl.fcntl(fd, fcntl.F_NOCACHE, 1)
            return True
        except OSError as e:
            logger.debug("F_NOCACHE failed on fd %d: %s", fd, e)
    return False


def drop_page_cache(fd: int) -> None:
    """Evict cached pages for ``fd`` once they are on disk (Linux)."""
    if hasattr(os, "posix_fadvise"):
        try:
            os.posix_fadvise(fd, 0, 0, os.POSIX_FADV_DONTNEED)
        except OSError as e:
            logger.debug("posix_fadvise failed on fd %d: %s", fd, e)


def open_no_follow_flags() -> int:
    flags = os.O_RDWR
    flags |= getattr(os, "O_NOFOLLOW", 0)
    flags |= getattr(os, "O_CLOEXEC", 0)
    flags |= getattr(os, "O_BINARY", 0)
    return flags
