"""
secureshred.config
------------------

Run configuration for the shred engine.

ShredConfiguration is supplied by the caller for each run and validated once
before discovery starts.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import ClassVar

from .errors import InvalidConfiguration

DEFAULT_CHUNK_SIZE = 1024 * 1024


def _positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass(frozen=True)
class ShredConfiguration:
    """
    Attributes:
        verify_after_write: read back the final overwrite pass, and check the
            ciphertext written by a crypto-shred
        chunk_size: size of each I/O block in bytes
        overwrite_passes: number of overwrite passes (1, 3 or 7 recommended)
    """

    verify_after_write: bool = True
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overwrite_passes: int = 3

    DEFAULT: ClassVar["ShredConfiguration"]
    QUICK: ClassVar["ShredConfiguration"]
    EXTENDED: ClassVar["ShredConfiguration"]

    @property
    def is_valid(self) -> bool:
        return _positive_int(self.chunk_size) and _positive_int(self.overwrite_passes)

    def validate(self) -> "ShredConfiguration":
        if not _positive_int(self.chunk_size):
            raise InvalidConfiguration(f"chunk_size must be a positive integer, got {self.chunk_size!r}")
        if not _positive_int(self.overwrite_passes):
            raise InvalidConfiguration(
                f"overwrite_passes must be a positive integer, got {self.overwrite_passes!r}"
            )
        return self

    def with_overrides(self, **changes) -> "ShredConfiguration":
        return dataclasses.replace(self, **changes)

    @property
    def overwrite_description(self) -> str:
        if self.overwrite_passes == 1:
            return "1 pass (random)"
        if self.overwrite_passes == 3:
            return "3 passes (DoD 5220.22-M)"
        if self.overwrite_passes == 7:
            return "7 passes (DoD extended)"
        return f"{self.overwrite_passes} passes"


ShredConfiguration.DEFAULT = ShredConfiguration()
ShredConfiguration.QUICK = ShredConfiguration(verify_after_write=False, overwrite_passes=1)
ShredConfiguration.EXTENDED = ShredConfiguration(overwrite_passes=7)
