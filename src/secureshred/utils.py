"""
secureshred.utils

Small helpers shared by the erasers.
"""

from __future__ import annotations

import hmac


def secure_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison of two byte sequences.
    Returns True if equal, False otherwise.
    """
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


def format_bytes(size: int) -> str:
    """Human-readable byte count, e.g. ``1.5 MiB``."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(value) < 1024 or unit == "TiB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
