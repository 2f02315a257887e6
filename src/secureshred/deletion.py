"""
secureshred.deletion
--------------------

Final removal of erased files.

SecureUnlinker strips what could outlive the data blocks (immutable flags,
extended attributes such as quarantine or provenance tags) and removes the
directory entry with a direct unlink, never a move to the trash.
UnlinkOnlyEraser is the "erasure" used for network volumes: it destroys
nothing, and the engine reports those files separately.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from .errors import DeletionFailed, FileNotFound, PermissionDenied
from .fsops import clear_immutable
from .progress import CancellationToken, ProgressCallback, _ignore_progress

if sys.platform != "win32":
    import xattr
else:  # no extended attribute API on Windows
    xattr = None

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class SecureUnlinker:

    def unlink(self, path: str) -> None:
        """
        Remove ``path`` after clearing its flags and extended attributes.

        Raises:
            FileNotFound: ``path`` no longer exists
            PermissionDenied / DeletionFailed: the directory entry could not be removed
        """
        clear_immutable(path)
        self.strip_extended_attributes(path)
        try:
            os.unlink(path)
        except FileNotFoundError:
            raise FileNotFound(path) from None
        except PermissionError as e:
            raise PermissionDenied(path, e.strerror) from e
        except OSError as e:
            raise DeletionFailed(path, e.strerror or str(e)) from e
        logger.debug("Unlinked %s", path)

    def strip_extended_attributes(self, path: str) -> int:
        """Remove every extended attribute on ``path``; return how many were removed."""
        if xattr is None:
            return 0
        try:
            names = xattr.listxattr(path, symlink=True)
        except OSError as e:
            logger.debug("Cannot list extended attributes of %s: %s", path, e)
            return 0

        removed = 0
        for name in names:
            try:
                xattr.removexattr(path, name, symlink=True)
                removed += 1
            except OSError as e:
                # e.g. security.* labels need privileges; keep going
                logger.warning("Could not remove extended attribute %s from %s: %s", name, path, e)
        if removed:
            logger.debug("Removed %d extended attribute(s) from %s", removed, path)
        return removed

    def remove_empty_directories(self, root: str) -> int:
        """
        Remove ``root`` and every directory below it that is empty once the
        erased files are gone. Failures are logged and ignored; directory
        cleanup is not part of the erasure guarantee.
        """
        if os.path.islink(root) or not os.path.isdir(root):
            return 0
        removed = 0
        for dirpath, _dirnames, _filenames in os.walk(root, topdown=False, followlinks=False):
            clear_immutable(dirpath)
            try:
                os.rmdir(dirpath)
                removed += 1
            except OSError as e:
                logger.info("Leaving directory %s in place: %s", dirpath, e.strerror or e)
        return removed


class UnlinkOnlyEraser:
    """
    No content destruction. Used for network volumes where the server decides
    what happens to the blocks; the directory entry is removed by the
    SecureUnlinker afterwards like any other file.
    """

    def erase(
        self,
        path: str,
        *,
        progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> int:
        progress = progress or _ignore_progress
        if token is not None:
            token.raise_if_cancelled(path)
        logger.warning("%s is on a network volume; removing without overwrite", path)
        progress(1.0, "Network volume - removing without overwrite")
        return 0
