"""
SecureShred: filesystem-aware secure deletion.

Overwrites files in place on traditional filesystems, crypto-shreds them on
copy-on-write filesystems, and removes them without trash semantics.
"""

from .config import ShredConfiguration
from .crypto import CryptoEraser, CryptoKey
from .deletion import SecureUnlinker, UnlinkOnlyEraser
from .discovery import FileDiscoverer, total_size
from .engine import EngineState, ShredEngine
from .errors import (
    Cancelled,
    DeletionFailed,
    EncryptionFailed,
    FileNotFound,
    InvalidConfiguration,
    OpenFailed,
    PermissionDenied,
    ShredError,
    UnknownError,
    VerificationFailed,
    WriteFailed,
)
from .fsdetect import (
    FilesystemClassifier,
    analyze_volumes,
    classify_filesystem,
    get_volume_info,
    has_network_volumes,
    select_strategy,
)
from .models import (
    DiscoveredFile,
    ErasureStrategy,
    FileResult,
    FilesystemType,
    OperationState,
    ProgressSnapshot,
    ShredResult,
    VolumeInfo,
)
from .overwrite import OverwriteEraser, Pattern, pattern_sequence
from .progress import CancellationToken, QueueProgressSink

__all__ = [
    # engine
    "ShredEngine",
    "EngineState",
    "ShredConfiguration",
    "CancellationToken",
    "QueueProgressSink",

    # components
    "FileDiscoverer",
    "total_size",
    "FilesystemClassifier",
    "get_volume_info",
    "analyze_volumes",
    "has_network_volumes",
    "classify_filesystem",
    "select_strategy",
    "OverwriteEraser",
    "Pattern",
    "pattern_sequence",
    "CryptoEraser",
    "CryptoKey",
    "UnlinkOnlyEraser",
    "SecureUnlinker",

    # models
    "DiscoveredFile",
    "ErasureStrategy",
    "FileResult",
    "FilesystemType",
    "OperationState",
    "ProgressSnapshot",
    "ShredResult",
    "VolumeInfo",

    # errors
    "ShredError",
    "InvalidConfiguration",
    "FileNotFound",
    "PermissionDenied",
    "OpenFailed",
    "WriteFailed",
    "VerificationFailed",
    "EncryptionFailed",
    "DeletionFailed",
    "Cancelled",
    "UnknownError",
]

__version__ = "1.0.0"
__license__ = "MIT"
