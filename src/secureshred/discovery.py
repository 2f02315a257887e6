"""
secureshred.discovery
---------------------

Expand input paths into the flat list of regular files to erase.

Symbolic links are never followed or recorded: a symlinked root is skipped,
and a symlinked directory below a root is pruned without looking inside it,
so a link cannot pull files from outside the selection into the shred.
Hidden entries are included. Other non-regular files (fifos, sockets,
devices) are skipped.
"""

from __future__ import annotations

import logging
import os
import stat
from typing import Iterable, Sequence

from .errors import FileNotFound, PermissionDenied
from .models import DiscoveredFile

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class FileDiscoverer:

    def discover(self, paths: Sequence[str]) -> list[DiscoveredFile]:
        """
        Recursively discover all regular files in ``paths``.

        Raises:
            FileNotFound: an input path does not exist
            PermissionDenied: an input path or a directory below it cannot be read
        """
        found: list[DiscoveredFile] = []
        for path in paths:
            self._discover_root(os.fspath(path), found)

        # overlapping roots list the same file twice; hard links have distinct paths
        seen: set[str] = set()
        unique: list[DiscoveredFile] = []
        for file in found:
            key = os.path.abspath(os.path.normpath(file.path))
            if key in seen:
                logger.debug("Skipping duplicate entry %s", file.path)
                continue
            seen.add(key)
            unique.append(file)
        logger.info("Discovered %d file(s) in %d input path(s)", len(unique), len(paths))
        return unique

    def _discover_root(self, path: str, found: list[DiscoveredFile]) -> None:
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            raise FileNotFound(path) from None
        except PermissionError as e:
            raise PermissionDenied(path, e.strerror) from e

        if stat.S_ISLNK(st.st_mode):
            logger.info("Skipping symbolic link %s", path)
            return
        if stat.S_ISREG(st.st_mode):
            found.append(DiscoveredFile(path=path, size=st.st_size, link_count=st.st_nlink))
        elif stat.S_ISDIR(st.st_mode):
            self._walk(path, found)
        else:
            logger.info("Skipping special file %s", path)

    def _walk(self, directory: str, found: list[DiscoveredFile]) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except PermissionError as e:
            raise PermissionDenied(directory, e.strerror) from e
        except FileNotFoundError:
            raise FileNotFound(directory) from None

        for entry in entries:
            if entry.is_symlink():
                # prune: never descend through a link
                logger.debug("Skipping symbolic link %s", entry.path)
                continue
            try:
                st = os.lstat(entry.path)
            except FileNotFoundError:
                logger.debug("%s vanished during discovery", entry.path)
                continue
            except PermissionError as e:
                raise PermissionDenied(entry.path, e.strerror) from e

            if stat.S_ISDIR(st.st_mode):
                self._walk(entry.path, found)
            elif stat.S_ISREG(st.st_mode):
                found.append(DiscoveredFile(path=entry.path, size=st.st_size, link_count=st.st_nlink))
            else:
                logger.debug("Skipping special file %s", entry.path)


def total_size(files: Iterable[DiscoveredFile]) -> int:
    return sum(f.size for f in files)
