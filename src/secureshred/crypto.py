"""
secureshred.crypto
------------------

Cryptographic erasure (crypto-shredding) for copy-on-write filesystems.

On APFS, ZFS or Btrfs an in-place overwrite allocates new blocks and leaves
the old ones intact, so overwriting proves nothing. Instead the file is
re-encrypted with AES-256-GCM under a random key that only ever lives in
secure memory, the ciphertext replaces the original, and the key is
destroyed. Whatever old blocks survive on disk can no longer be tied to a
usable key for the new contents, and there is no decryption path afterwards.

Ciphertext layout, per plaintext chunk:

    nonce (12 bytes) || ciphertext || GCM tag (16 bytes)

so the encrypted file is CHUNK_OVERHEAD bytes per chunk larger than the
plaintext. The engine deletes it right after the swap.

Notes:
- CryptoKey stores its key in SecureMemory and hands it to AESGCM as a
  buffer view, so no immutable copy of the key is made in Python.
- The temporary file is removed on every exit path, cancellation included.
"""

from __future__ import annotations

import errno
import logging
import os
import stat
import tempfile
from typing import NamedTuple, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import DEFAULT_CHUNK_SIZE
from .errors import EncryptionFailed, OpenFailed, VerificationFailed, WriteFailed, from_os_error
from .fsops import clear_immutable, full_fsync
from .memory import SecureMemory, secure_alloc
from .progress import CancellationToken, ProgressCallback, _ignore_progress

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
CHUNK_OVERHEAD = NONCE_SIZE + TAG_SIZE
TEMP_PREFIX = ".ss.tmp."


# ---------------- Key Management ----------------

class CryptoKey:
    """
    A symmetric key stored in secure memory.
    Destroying this key = cryptographic erase of all data encrypted with it.
    """

    def __init__(self, key_bytes: bytes | bytearray):
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise TypeError("key_bytes must be bytes-like")
        if len(key_bytes) not in (16, 24, 32):
            raise ValueError("key_bytes must be 16, 24, or 32 bytes (AES-128/192/256)")
        self._mem: SecureMemory = SecureMemory.from_bytes(key_bytes)

    @classmethod
    def generate(cls, length: int = KEY_SIZE) -> "CryptoKey":
        """Generate a random key (default 32 bytes for AES-256) in secure memory."""
        if length not in (16, 24, 32):
            raise ValueError("AES key length must be 16, 24, or 32 bytes")
        key = cls.__new__(cls)
        key._mem = SecureMemory(length)
        key._mem.randomize()
        return key

    @property
    def destroyed(self) -> bool:
        return self._mem.closed

    def cipher(self) -> AESGCM:
        """AES-GCM instance keyed directly from the secure buffer."""
        return AESGCM(self._mem.view[:])

    def destroy(self) -> None:
        """Zero the key in memory (cryptographic erasure)."""
        self._mem.close()

    def __enter__(self) -> "CryptoKey":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()


class CipherText(NamedTuple):
    nonce: bytes
    ciphertext: bytes

    def combined(self) -> bytes:
        return self.nonce + self.ciphertext


def encrypt_data(
    plaintext: bytes | bytearray | memoryview,
    aes: AESGCM,
    associated_data: Optional[bytes] = None,
) -> CipherText:
    """
    Seal one buffer under a fresh random nonce.

    Returns:
        CipherText(nonce=..., ciphertext=...) where ciphertext includes the tag.
    """
    nonce = os.urandom(NONCE_SIZE)
    return CipherText(nonce, aes.encrypt(nonce, plaintext, associated_data))


def encrypted_size(size: int, chunk_size: int) -> int:
    """Size of the ciphertext file produced for ``size`` plaintext bytes."""
    chunks = -(-size // chunk_size)
    return size + chunks * CHUNK_OVERHEAD


# ---------------- File erasure ----------------

class CryptoEraser:
    """Re-encrypts a file under a throwaway key, then forgets the key."""

    def erase(
        self,
        path: str,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        verify: bool = True,
        progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> int:
        """
        Replace the contents of ``path`` with ciphertext and return the
        plaintext size.

        Raises:
            OpenFailed / FileNotFound / PermissionDenied: source cannot be read
            WriteFailed: temp file creation, write, flush or the final replace failed
            EncryptionFailed: a chunk could not be sealed
            VerificationFailed: the ciphertext file is empty or too small
            Cancelled: ``token`` was cancelled between chunks
        """
        progress = progress or _ignore_progress
        token = token or CancellationToken()

        size = self._source_size(path)
        if size == 0:
            progress(1.0, "Empty file, skipping")
            return 0

        token.raise_if_cancelled(path)
        key = CryptoKey.generate()
        tmp_path: Optional[str] = None
        try:
            progress(0.1, "Encrypting file...")
            fd, tmp_path = self._create_temp(path)
            chunks = self._encrypt_into(path, fd, tmp_path, key, size, chunk_size, progress, token)

            if verify:
                self._verify_output(path, tmp_path, size, chunks)

            progress(0.95, "Finalizing...")
            clear_immutable(path)
            try:
                os.replace(tmp_path, path)
            except OSError as e:
                raise WriteFailed(path, f"Failed to replace original: {e.strerror}") from e
            tmp_path = None
        finally:
            key.destroy()
            if tmp_path is not None:
                self._remove_temp(tmp_path)

        logger.info("Crypto-shredded %s (%d bytes, %d chunks)", path, size, chunks)
        progress(1.0, "Encryption complete")
        return size

    # --- Private helpers ---------------------------------------------------
    def _source_size(self, path: str) -> int:
        try:
            st = os.lstat(path)
        except OSError as e:
            raise from_os_error(e, path) from e
        if stat.S_ISLNK(st.st_mode):
            raise OpenFailed(path, "Refusing to follow symbolic link")
        return st.st_size

    def _create_temp(self, path: str) -> tuple[int, str]:
        directory = os.path.dirname(os.path.abspath(path))
        try:
            return tempfile.mkstemp(prefix=TEMP_PREFIX, dir=directory)
        except OSError as e:
            raise WriteFailed(
                os.path.join(directory, TEMP_PREFIX + "*"),
                f"Failed to create temporary file: {e.strerror}",
            ) from e

    def _open_source(self, path: str):
        flags = os.O_RDONLY | getattr(os, "O_NOFOLLOW", 0) | getattr(os, "O_BINARY", 0)
        try:
            fd = os.open(path, flags)
        except OSError as e:
            if e.errno == errno.ELOOP:
                raise OpenFailed(path, "Refusing to follow symbolic link") from e
            raise from_os_error(e, path) from e
        return os.fdopen(fd, "rb", buffering=0)

    def _encrypt_into(
        self,
        path: str,
        fd: int,
        tmp_path: str,
        key: CryptoKey,
        size: int,
        chunk_size: int,
        progress: ProgressCallback,
        token: CancellationToken,
    ) -> int:
        """Stream ``path`` into the temp file chunk by chunk; return the chunk count."""
        out = os.fdopen(fd, "wb", buffering=0)
        with out, self._open_source(path) as src, secure_alloc(chunk_size) as buf:
            aes = key.cipher()
            processed = 0
            chunks = 0
            while True:
                token.raise_if_cancelled(path)
                try:
                    n = src.readinto(buf.view)
                except OSError as e:
                    raise OpenFailed(path, f"Read error: {e.strerror}") from e
                if not n:
                    break

                plain = buf.view[:n]
                try:
                    sealed = encrypt_data(plain, aes)
                except (ValueError, TypeError, OverflowError) as e:
                    raise EncryptionFailed(path, str(e)) from e
                finally:
                    plain.release()

                self._write_all(out, sealed.combined(), tmp_path)
                processed += n
                chunks += 1
                progress(0.1 + 0.8 * min(processed / size, 1.0), "Writing encrypted data...")

            try:
                full_fsync(out.fileno())
            except OSError as e:
                raise WriteFailed(tmp_path, f"Failed to sync: {e.strerror}") from e
        logger.debug("Encrypted %s into %s (%d chunks)", path, tmp_path, chunks)
        return chunks

    def _write_all(self, out, data: bytes, tmp_path: str) -> None:
        view = memoryview(data)
        while view:
            try:
                written = out.write(view)
            except OSError as e:
                raise WriteFailed(tmp_path, e.strerror or str(e)) from e
            if not written:
                raise WriteFailed(tmp_path, f"Short write: 0 of {len(view)}")
            view = view[written:]

    def _verify_output(self, path: str, tmp_path: str, size: int, chunks: int) -> None:
        try:
            written = os.stat(tmp_path).st_size
        except OSError as e:
            raise VerificationFailed(path, e.strerror) from e
        expected = size + chunks * CHUNK_OVERHEAD
        if written == 0 or written < expected:
            raise VerificationFailed(path, f"Encrypted output is {written} bytes, expected {expected}")

    def _remove_temp(self, tmp_path: str) -> None:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove temporary file %s: %s", tmp_path, e)
