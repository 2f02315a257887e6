"""
secureshred.errors
------------------

Exception hierarchy for shred operations.

Every error a single file can run into derives from ShredError and carries
the affected path. The engine records those per file; only
InvalidConfiguration and discovery failures abort a run.
"""

from __future__ import annotations

import os
from typing import Optional


def _name(path: str) -> str:
    return os.path.basename(os.path.normpath(path)) or path


class ShredError(Exception):
    """Base exception for secureshred errors."""

    recovery_suggestion: Optional[str] = None

    def __init__(self, message: str, path: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.reason = reason


class InvalidConfiguration(ShredError):
    def __init__(self, detail: str = "Invalid shred configuration"):
        super().__init__(detail, reason=detail)


class FileNotFound(ShredError):
    def __init__(self, path: str):
        super().__init__(f"File not found: {_name(path)}", path)


class PermissionDenied(ShredError):
    recovery_suggestion = "Check file permissions and ensure you have write access"

    def __init__(self, path: str, reason: Optional[str] = None):
        super().__init__(f"Permission denied: {_name(path)}", path, reason)


class OpenFailed(ShredError):
    recovery_suggestion = "The file may be locked or in use by another application"

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to open {_name(path)}: {reason}", path, reason)


class WriteFailed(ShredError):
    recovery_suggestion = "The file may be locked or in use by another application"

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to write {_name(path)}: {reason}", path, reason)


class VerificationFailed(ShredError):
    recovery_suggestion = (
        "The file may be on a filesystem that doesn't support direct overwriting (like APFS)"
    )

    def __init__(self, path: str, reason: Optional[str] = None):
        super().__init__(f"Verification failed: {_name(path)}", path, reason)


class EncryptionFailed(ShredError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to encrypt {_name(path)}: {reason}", path, reason)


class DeletionFailed(ShredError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to delete {_name(path)}: {reason}", path, reason)


class Cancelled(ShredError):
    def __init__(self, path: Optional[str] = None):
        super().__init__("Operation cancelled", path)


class UnknownError(ShredError):
    def __init__(self, reason: str, path: Optional[str] = None):
        super().__init__(f"Unknown error: {reason}", path, reason)


def from_os_error(exc: OSError, path: str) -> ShredError:
    """Map an OSError raised while opening ``path`` onto the taxonomy."""
    if isinstance(exc, FileNotFoundError):
        return FileNotFound(path)
    if isinstance(exc, PermissionError):
        return PermissionDenied(path, exc.strerror or str(exc))
    return OpenFailed(path, exc.strerror or str(exc))
