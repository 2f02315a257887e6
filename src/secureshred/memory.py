"""
secureshred.memory
------------------

Zeroizable buffers for key material and erasure I/O.

- SecureMemory(size) / SecureMemory.alloc(size)
- SecureMemory.from_bytes(data)
- secure_alloc(size) context manager
- close(), zero(), read(), write()
- fill(value, length), randomize(length) and a writable ``view`` for readinto()
- Raises SecureMemoryClosed after close()

Implementation:
- bytearray-backed, exposed through a memoryview so file I/O can read and
  write in place without intermediate copies.
- Best-effort mlock via _sodium so the contents stay out of swap.
- Deterministic zeroing via _sodium.sodium_memzero on zero() and close().
"""

from __future__ import annotations
import contextlib
import logging
import os
from typing import Iterator, Optional

from . import _sodium

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class SecureMemoryError(Exception):
    pass


class SecureMemoryClosed(SecureMemoryError):
    pass


class SecureMemory:
    """
    A fixed-size buffer that is zeroed before it is released.

    Public surface:
      - alloc(size) / from_bytes(data)
      - write(data, offset=0) / read(length=None, offset=0)
      - fill(value, length) / randomize(length)
      - view: writable memoryview over the whole buffer
      - zero(), close(), context manager
    """

    # keep close() safe on partially constructed instances
    _closed = True
    _locked = False
    _buf: Optional[bytearray] = None
    _mv: Optional[memoryview] = None

    def __init__(self, size: int):
        self.size = int(size)
        if self.size < 0:
            raise ValueError("size must be non-negative")
        self._closed = False
        self._buf: Optional[bytearray] = bytearray(self.size)
        self._mv: Optional[memoryview] = memoryview(self._buf)
        self._locked = _sodium.sodium_mlock(self._buf)
        if not self._locked and self.size:
            logger.debug("Could not lock %d byte buffer in memory", self.size)

    def _check_open(self) -> memoryview:
        if self._closed or self._mv is None:
            raise SecureMemoryClosed("buffer closed")
        return self._mv

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def view(self) -> memoryview:
        return self._check_open()

    # --- Basic operations ---
    def write(self, data: bytes, offset: int = 0) -> None:
        mv = self._check_open()
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError("data must be bytes-like")
        if offset < 0 or offset + len(data) > self.size:
            raise ValueError("write out of bounds")
        mv[offset: offset + len(data)] = data

    def read(self, length: int | None = None, offset: int = 0) -> bytes:
        mv = self._check_open()
        if length is None:
            length = self.size - offset
        if offset < 0 or length < 0 or offset + length > self.size:
            raise ValueError("read out of bounds")
        return bytes(mv[offset: offset + length])

    def fill(self, value: int, length: int | None = None) -> None:
        """Set the first ``length`` bytes to ``value``."""
        mv = self._check_open()
        n = self.size if length is None else length
        if n < 0 or n > self.size:
            raise ValueError("fill out of bounds")
        if value == 0:
            _sodium.sodium_memzero(mv[:n])
        else:
            mv[:n] = bytes((value,)) * n

    def randomize(self, length: int | None = None) -> None:
        """Fill the first ``length`` bytes from the OS CSPRNG."""
        mv = self._check_open()
        n = self.size if length is None else length
        if n < 0 or n > self.size:
            raise ValueError("randomize out of bounds")
        mv[:n] = os.urandom(n)

    def count(self, value: int, length: int | None = None) -> int:
        """Number of bytes equal to ``value`` among the first ``length``."""
        self._check_open()
        n = self.size if length is None else length
        return self._buf.count(value, 0, n)

    # --- Zeroing ---
    def zero(self) -> None:
        if self._closed or self._buf is None:
            return
        _sodium.sodium_memzero(self._buf)

    # --- Close / free ---
    def close(self) -> None:
        if self._closed:
            return
        try:
            self.zero()
        finally:
            if self._locked and self._buf is not None:
                _sodium.sodium_munlock(self._buf)
            if self._mv is not None:
                try:
                    self._mv.release()
                except BufferError:
                    logger.debug("Buffer view still exported at close; contents already zeroed")
            self._mv = None
            self._buf = None
            self._closed = True

    def __len__(self) -> int:
        return self.size

    def __enter__(self) -> "SecureMemory":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()

    # Convenience factories
    @classmethod
    def alloc(cls, size: int) -> "SecureMemory":
        return cls(size)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SecureMemory":
        sm = cls(len(data))
        if len(data):
            sm.write(data, 0)
        return sm


@contextlib.contextmanager
def secure_alloc(size: int) -> Iterator[SecureMemory]:
    """Allocate a SecureMemory buffer that is zeroed and closed on exit."""
    mem = SecureMemory.alloc(size)
    try:
        yield mem
    finally:
        mem.close()
