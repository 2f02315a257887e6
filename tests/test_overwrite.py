import os

import pytest
from hypothesis import given, strategies as st

from secureshred import overwrite
from secureshred.errors import Cancelled, FileNotFound, OpenFailed, VerificationFailed, WriteFailed
from secureshred.memory import SecureMemory
from secureshred.overwrite import OverwriteEraser, Pattern, pattern_sequence
from secureshred.progress import CancellationToken

Z, O, R = Pattern.ZEROS, Pattern.ONES, Pattern.RANDOM

# ---------------------------------------------------------------------------
# Pattern sequences
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("passes,expected", [
    (0, [R]),
    (1, [R]),
    (2, [Z, R]),
    (3, [Z, O, R]),
    (4, [Z, O, R, R]),
    (5, [Z, O, R, Z, R]),
    (7, [Z, O, R, Z, O, R, R]),
])
def test_pattern_sequence(passes, expected):
    assert pattern_sequence(passes) == expected


@pytest.mark.fuzz
@given(passes=st.integers(min_value=1, max_value=60))
def test_pattern_sequence_fuzz(passes):
    seq = pattern_sequence(passes)
    assert len(seq) == passes
    assert seq[-1] is Pattern.RANDOM
    full = passes // 3
    assert seq[: full * 3] == [Z, O, R] * full


def test_pattern_properties():
    assert Pattern.ZEROS.fill_byte == 0x00
    assert Pattern.ONES.fill_byte == 0xFF
    assert Pattern.RANDOM.fill_byte is None
    assert "0xFF" in Pattern.ONES.display_name


# ---------------------------------------------------------------------------
# Erasure
# ---------------------------------------------------------------------------

def _make(tmp_path, size, name="victim.bin"):
    p = tmp_path / name
    p.write_bytes(os.urandom(size))
    return p


def test_overwrite_10mib_three_passes(tmp_path):
    p = _make(tmp_path, 10 * 1024 * 1024)
    original = p.read_bytes()
    updates = []

    written = OverwriteEraser().erase(
        str(p), passes=3, chunk_size=1024 * 1024, verify=True,
        progress=lambda fraction, status: updates.append((fraction, status)),
    )

    assert written == 10 * 1024 * 1024
    assert p.stat().st_size == written
    assert p.read_bytes() != original
    statuses = [s for _, s in updates]
    assert any(s.startswith("Pass 1/3: zeros") for s in statuses)
    assert any(s.startswith("Pass 2/3: ones") for s in statuses)
    assert any(s.startswith("Pass 3/3: random") for s in statuses)
    assert "Verifying final pass" in statuses
    fractions = [f for f, _ in updates]
    assert all(0.0 <= f <= 1.0 for f in fractions)
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0


@pytest.mark.parametrize("pattern,byte", [(Pattern.ZEROS, 0x00), (Pattern.ONES, 0xFF)])
def test_constant_final_pass_leaves_pattern(tmp_path, monkeypatch, pattern, byte):
    monkeypatch.setattr(overwrite, "pattern_sequence", lambda passes: [pattern])
    p = _make(tmp_path, 5000)
    OverwriteEraser().erase(str(p), passes=1, chunk_size=1024, verify=True)
    assert p.read_bytes() == bytes([byte]) * 5000


def test_size_not_multiple_of_chunk(tmp_path):
    p = _make(tmp_path, 4096 + 17)
    assert OverwriteEraser().erase(str(p), passes=2, chunk_size=4096) == 4096 + 17
    assert p.stat().st_size == 4096 + 17


def test_empty_file_is_skipped(tmp_path):
    p = tmp_path / "empty"
    p.write_bytes(b"")
    updates = []
    assert OverwriteEraser().erase(str(p), progress=lambda f, s: updates.append((f, s))) == 0
    assert updates == [(1.0, "Empty file, skipping")]


@pytest.mark.skipif(os.name == "nt", reason="Symlinks need privileges on Windows")
def test_symlink_is_refused(tmp_path):
    target = _make(tmp_path, 64, "target.bin")
    before = target.read_bytes()
    link = tmp_path / "link.bin"
    link.symlink_to(target)
    with pytest.raises(OpenFailed) as exc:
        OverwriteEraser().erase(str(link))
    assert "symbolic link" in exc.value.reason
    assert target.read_bytes() == before


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFound):
        OverwriteEraser().erase(str(tmp_path / "missing"))


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def _corrupt_before_verify(monkeypatch, offset=10):
    def corrupting_drop(fd):
        os.pwrite(fd, b"\x01", offset)
        os.fsync(fd)

    monkeypatch.setattr(overwrite, "drop_page_cache", corrupting_drop)


@pytest.mark.skipif(not hasattr(os, "pwrite"), reason="os.pwrite unavailable")
@pytest.mark.parametrize("pattern", [Pattern.ZEROS, Pattern.ONES])
def test_verification_detects_corrupted_constant_pass(tmp_path, monkeypatch, pattern):
    monkeypatch.setattr(overwrite, "pattern_sequence", lambda passes: [pattern])
    _corrupt_before_verify(monkeypatch)
    p = _make(tmp_path, 4096)
    with pytest.raises(VerificationFailed):
        OverwriteEraser().erase(str(p), passes=1, chunk_size=1024, verify=True)


@pytest.mark.skipif(not hasattr(os, "pwrite"), reason="os.pwrite unavailable")
def test_verification_detects_corrupted_random_pass(tmp_path, monkeypatch):
    def flip_byte(fd):
        current = os.pread(fd, 1, 100)
        os.pwrite(fd, bytes([current[0] ^ 0xFF]), 100)

    monkeypatch.setattr(overwrite, "drop_page_cache", flip_byte)
    p = _make(tmp_path, 4096)
    with pytest.raises(VerificationFailed) as exc:
        OverwriteEraser().erase(str(p), passes=1, chunk_size=1024, verify=True)
    assert "hash" in exc.value.reason


@pytest.mark.skipif(not hasattr(os, "pwrite"), reason="os.pwrite unavailable")
def test_no_verification_when_disabled(tmp_path, monkeypatch):
    _corrupt_before_verify(monkeypatch)
    p = _make(tmp_path, 4096)
    assert OverwriteEraser().erase(str(p), passes=3, chunk_size=1024, verify=False) == 4096


# ---------------------------------------------------------------------------
# Failure and cancellation
# ---------------------------------------------------------------------------

class _ShortWriter:
    """Wraps a file object and writes one byte less than asked."""

    def __init__(self, f):
        self._f = f

    def write(self, data):
        return self._f.write(data[: len(data) - 1])

    def __getattr__(self, name):
        return getattr(self._f, name)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self._f.close()


def test_short_write_raises_write_failed(tmp_path, monkeypatch):
    real_open = OverwriteEraser._open
    monkeypatch.setattr(OverwriteEraser, "_open", lambda self, path: _ShortWriter(real_open(self, path)))
    p = _make(tmp_path, 2048)
    with pytest.raises(WriteFailed) as exc:
        OverwriteEraser().erase(str(p), passes=1, chunk_size=1024)
    assert "Short write" in exc.value.reason


def test_cancellation_between_chunks_zeroes_buffer(tmp_path, monkeypatch):
    buffers = []
    real_init = SecureMemory.__init__

    def tracking_init(self, size):
        real_init(self, size)
        buffers.append(self._buf)

    monkeypatch.setattr(SecureMemory, "__init__", tracking_init)
    token = CancellationToken()
    calls = []

    def progress(fraction, status):
        calls.append(fraction)
        if len(calls) == 3:
            token.cancel()

    p = _make(tmp_path, 8 * 1024)
    with pytest.raises(Cancelled):
        OverwriteEraser().erase(str(p), passes=3, chunk_size=1024, progress=progress, token=token)
    assert len(calls) == 3
    assert buffers and all(not any(b) for b in buffers)


def test_cancelled_before_start(tmp_path):
    p = _make(tmp_path, 1024)
    before = p.read_bytes()
    token = CancellationToken()
    token.cancel()
    with pytest.raises(Cancelled):
        OverwriteEraser().erase(str(p), token=token)
    assert p.read_bytes() == before
