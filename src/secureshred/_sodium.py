"""
secureshred._sodium
-------------------

Shim for the libsodium primitives used to protect I/O buffers.

- Provides: have_libsodium, sodium_memzero, sodium_mlock, sodium_munlock
- If libsodium is unavailable, falls back to libc (explicit_bzero / mlock)
  and finally to ctypes.memset.

Notes:
- All functions take a writable bytes-like object (bytearray, writable memoryview).
- Zeroing goes through a foreign call so the interpreter cannot elide it.
- Locking is best-effort; failure to lock memory is logged, never fatal.
"""

from __future__ import annotations
import ctypes
import ctypes.util
import os
import logging
from typing import Optional, Union

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_libsodium = None
_have_sodium = False
_libc = None
_have_mlock = False
_have_explicit_bzero = False

c_void_p = ctypes.c_void_p
c_size_t = ctypes.c_size_t

Buffer = Union[bytearray, memoryview]


def _try_load_libsodium() -> Optional[ctypes.CDLL]:
    for name in ("sodium", "libsodium"):
        libname = ctypes.util.find_library(name)
        if libname:
            try:
                return ctypes.CDLL(libname)
            except OSError:
                pass
    return None


def _try_load_libc() -> Optional[ctypes.CDLL]:
    if os.name == "posix":
        for candidate in ("c", "libc.so.6", "libc.dylib"):
            try:
                return ctypes.CDLL(ctypes.util.find_library(candidate) or candidate)
            except OSError:
                continue
    return None


_libsodium = _try_load_libsodium()
if _libsodium:
    try:
        _libsodium.sodium_init.restype = ctypes.c_int
        # 0 = initialised, 1 = already initialised, -1 = failure
        _have_sodium = _libsodium.sodium_init() >= 0
    except AttributeError:
        _have_sodium = False

if _have_sodium:
    _libsodium.sodium_memzero.argtypes = (c_void_p, c_size_t)
    _libsodium.sodium_memzero.restype = None
    for _name in ("sodium_mlock", "sodium_munlock"):
        _fn = getattr(_libsodium, _name)
        _fn.argtypes = (c_void_p, c_size_t)
        _fn.restype = ctypes.c_int
else:
    _libc = _try_load_libc()
    if _libc:
        if hasattr(_libc, "explicit_bzero"):
            _libc.explicit_bzero.argtypes = (c_void_p, c_size_t)
            _libc.explicit_bzero.restype = None
            _have_explicit_bzero = True
        if hasattr(_libc, "mlock"):
            _libc.mlock.argtypes = (c_void_p, c_size_t)
            _libc.mlock.restype = ctypes.c_int
            _libc.munlock.argtypes = (c_void_p, c_size_t)
            _libc.munlock.restype = ctypes.c_int
            _have_mlock = True


def have_libsodium() -> bool:
    return _have_sodium


def _address_of(buf: Buffer) -> tuple[int, int, object]:
    """Return (address, size, keepalive) for a writable buffer."""
    size = len(buf) if not isinstance(buf, memoryview) else buf.nbytes
    if size == 0:
        return 0, 0, None
    c_arr = (ctypes.c_char * size).from_buffer(buf)
    return ctypes.addressof(c_arr), size, c_arr


def sodium_memzero(buf: Buffer) -> None:
    """Zero ``buf`` in place through a call the optimizer cannot remove."""
    addr, size, keepalive = _address_of(buf)
    if not size:
        return
    if _have_sodium:
        _libsodium.sodium_memzero(addr, size)
    elif _have_explicit_bzero:
        _libc.explicit_bzero(addr, size)
    else:
        ctypes.memset(addr, 0, size)
    del keepalive


def sodium_mlock(buf: Buffer) -> bool:
    """Try to keep ``buf`` out of swap. Returns True on success."""
    addr, size, keepalive = _address_of(buf)
    if not size:
        return False
    try:
        if _have_sodium:
            return _libsodium.sodium_mlock(addr, size) == 0
        if _have_mlock:
            return _libc.mlock(addr, size) == 0
        if os.name == "nt":
            return bool(ctypes.windll.kernel32.VirtualLock(c_void_p(addr), c_size_t(size)))
    except OSError as e:
        logger.debug("mlock failed: %s", e)
    finally:
        del keepalive
    return False


def sodium_munlock(buf: Buffer) -> None:
    addr, size, keepalive = _address_of(buf)
    if not size:
        return
    try:
        if _have_sodium:
            _libsodium.sodium_munlock(addr, size)
        elif _have_mlock:
            _libc.munlock(addr, size)
        elif os.name == "nt":
            ctypes.windll.kernel32.VirtualUnlock(c_void_p(addr), c_size_t(size))
    except OSError as e:
        logger.debug("munlock failed: %s", e)
    finally:
        del keepalive


__all__ = [
    "have_libsodium",
    "sodium_memzero",
    "sodium_mlock",
    "sodium_munlock",
]
