"""
secureshred.engine
------------------

The shred pipeline: discover -> classify -> erase -> unlink, one file at a
time, in discovery order.

Usage:
    engine = ShredEngine()
    result = engine.start(["/path/to/folder"], ShredConfiguration.DEFAULT,
                          progress=lambda fraction, status: ...)

    # or from a UI thread
    future = engine.start_in_background(paths, config, progress=...)
    engine.cancel()
    result = future.result()

Failure policy:
- InvalidConfiguration, FileNotFound and PermissionDenied raised during
  discovery abort the run before anything is erased.
- Any error while erasing or unlinking a single file is recorded as that
  file's FileResult and the batch continues.
- Cancellation stops at the next file, pass or chunk boundary and returns a
  partial result. Files already erased stay erased.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Sequence

from .config import ShredConfiguration
from .crypto import CryptoEraser
from .deletion import SecureUnlinker, UnlinkOnlyEraser
from .discovery import FileDiscoverer
from .errors import Cancelled, InvalidConfiguration, ShredError, UnknownError
from .fsdetect import FilesystemClassifier
from .models import (
    DiscoveredFile,
    ErasureStrategy,
    FileResult,
    OperationState,
    ProgressSnapshot,
    ResultBuilder,
    ShredResult,
)
from .overwrite import OverwriteEraser
from .progress import CancellationToken, ProgressCallback

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

SnapshotListener = Callable[[ProgressSnapshot], None]


class EngineState(enum.Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED_TO_START = "failed-to-start"


class ShredEngine:
    """
    Orchestrates a shred run. Reusable across runs; each run gets a fresh
    OperationState, cancellation token and result accumulator.
    """

    def __init__(
        self,
        *,
        classifier: Optional[FilesystemClassifier] = None,
        discoverer: Optional[FileDiscoverer] = None,
        overwrite_eraser: Optional[OverwriteEraser] = None,
        crypto_eraser: Optional[CryptoEraser] = None,
        unlink_only_eraser: Optional[UnlinkOnlyEraser] = None,
        unlinker: Optional[SecureUnlinker] = None,
    ):
        self.classifier = classifier or FilesystemClassifier()
        self.discoverer = discoverer or FileDiscoverer()
        self.overwrite_eraser = overwrite_eraser or OverwriteEraser()
        self.crypto_eraser = crypto_eraser or CryptoEraser()
        self.unlink_only_eraser = unlink_only_eraser or UnlinkOnlyEraser()
        self.unlinker = unlinker or SecureUnlinker()

        self.state = EngineState.IDLE
        self.operation = OperationState()
        self._token = CancellationToken()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._progress: Optional[ProgressCallback] = None
        self._listener: Optional[SnapshotListener] = None

    # --- Control interface -------------------------------------------------
    def start(
        self,
        paths: Sequence[str],
        config: ShredConfiguration,
        progress: Optional[ProgressCallback] = None,
        *,
        listener: Optional[SnapshotListener] = None,
        cancel_event: Optional[threading.Event] = None,
        token: Optional[CancellationToken] = None,
    ) -> ShredResult:
        """
        Run the whole pipeline on the calling thread and return its result.

        ``progress`` receives ``(fraction, status)``; ``listener`` receives
        ProgressSnapshot copies (see QueueProgressSink). ``cancel_event`` is an
        external event that cancels the run when set.
        """
        if self.operation.is_running:
            raise RuntimeError("a shred run is already in progress")
        if not paths:
            raise InvalidConfiguration("No input paths given")
        config.validate()

        self._token = token or CancellationToken(external=cancel_event)
        self._progress = progress
        self._listener = listener
        self.operation = OperationState(is_running=True)
        started = time.monotonic()
        try:
            return self._run([os.fspath(p) for p in paths], config, started)
        finally:
            self.operation.is_running = False
            self._progress = None
            self._listener = None

    def start_in_background(
        self,
        paths: Sequence[str],
        config: ShredConfiguration,
        progress: Optional[ProgressCallback] = None,
        *,
        listener: Optional[SnapshotListener] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "Future[ShredResult]":
        """Run start() on the engine's single worker thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="secureshred")
        # created here so a cancel() issued before the worker starts is not lost
        token = CancellationToken(external=cancel_event)
        self._token = token
        return self._executor.submit(
            self.start, paths, config, progress, listener=listener, token=token
        )

    def cancel(self) -> None:
        """Request cancellation of the current run. Idempotent."""
        if not self._token.is_cancelled:
            logger.info("Cancellation requested")
        self._token.cancel()
        self.operation.is_cancelled = True

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    # --- Pipeline ----------------------------------------------------------
    def _run(self, paths: list[str], config: ShredConfiguration, started: float) -> ShredResult:
        op = self.operation
        self.state = EngineState.DISCOVERING
        self._set_status("Discovering files...")
        try:
            files = self.discoverer.discover(paths)
        except ShredError:
            self.state = EngineState.FAILED_TO_START
            raise

        builder = ResultBuilder()
        if not files:
            self.state = EngineState.COMPLETED
            op.progress = 1.0
            self._set_status("Nothing to shred")
            return builder.build(was_cancelled=False, duration=time.monotonic() - started)

        self.state = EngineState.PROCESSING
        op.total_files = len(files)
        logger.info("Shredding %d file(s) with %s", len(files), config)
        strategies: dict[int, ErasureStrategy] = {}

        for index, file in enumerate(files):
            if self._token.is_cancelled:
                return self._cancelled(builder, started)

            op.current_file_index = index
            op.current_file = file.name
            strategy = self._strategy_for(file, strategies)
            try:
                result = self._process(file, strategy, config, index, len(files))
            except Cancelled:
                logger.info("Cancelled while erasing %s", file.path)
                return self._cancelled(builder, started)

            builder.add(result)
            if file.is_hard_linked:
                builder.hard_linked_files.append(file.path)
            op.progress = (index + 1) / len(files)
            self._emit()

        self._set_status("Cleaning up directories...")
        for path in paths:
            if os.path.isdir(path) and not os.path.islink(path):
                self.unlinker.remove_empty_directories(path)

        self.state = EngineState.COMPLETED
        op.progress = 1.0
        self._set_status("Complete")
        result = builder.build(was_cancelled=False, duration=time.monotonic() - started)
        logger.info("Shred finished: %s", result.summary or "nothing shredded")
        return result

    def _cancelled(self, builder: ResultBuilder, started: float) -> ShredResult:
        self.state = EngineState.CANCELLED
        self.operation.is_cancelled = True
        self._set_status("Cancelled")
        result = builder.build(was_cancelled=True, duration=time.monotonic() - started)
        logger.info("Shred cancelled after %d file(s)", result.files_processed)
        return result

    def _strategy_for(self, file: DiscoveredFile, cache: dict[int, ErasureStrategy]) -> ErasureStrategy:
        """Classify per volume, identified by device id for the length of the run."""
        try:
            device = os.lstat(file.path).st_dev
        except OSError:
            return self.classifier.strategy_for(file.path)
        if device not in cache:
            cache[device] = self.classifier.strategy_for(file.path)
            logger.debug("Device %d -> %s", device, cache[device].value)
        return cache[device]

    def _process(
        self,
        file: DiscoveredFile,
        strategy: ErasureStrategy,
        config: ShredConfiguration,
        index: int,
        total: int,
    ) -> FileResult:
        def report(fraction: float, status: str) -> None:
            op = self.operation
            if status:
                op.status_message = status
            op.progress = (index + min(max(fraction, 0.0), 1.0)) / total
            self._emit()

        path = file.path
        try:
            if strategy is ErasureStrategy.OVERWRITE:
                written = self.overwrite_eraser.erase(
                    path,
                    passes=config.overwrite_passes,
                    chunk_size=config.chunk_size,
                    verify=config.verify_after_write,
                    progress=report,
                    token=self._token,
                )
            elif strategy is ErasureStrategy.CRYPTO:
                written = self.crypto_eraser.erase(
                    path,
                    chunk_size=config.chunk_size,
                    verify=config.verify_after_write,
                    progress=report,
                    token=self._token,
                )
            elif strategy is ErasureStrategy.UNLINK_ONLY:
                written = self.unlink_only_eraser.erase(path, progress=report, token=self._token)
            else:
                raise UnknownError(f"unhandled strategy {strategy!r}", path)
            self.unlinker.unlink(path)
        except Cancelled:
            raise
        except ShredError as e:
            logger.warning("Failed to shred %s: %s", path, e)
            return FileResult(path=path, strategy=strategy, success=False, error=e)
        except OSError as e:
            logger.warning("Failed to shred %s: %s", path, e)
            error = UnknownError(e.strerror or str(e), path)
            return FileResult(path=path, strategy=strategy, success=False, error=error)
        except Exception as e:
            logger.exception("Unexpected error shredding %s", path)
            error = UnknownError(str(e) or type(e).__name__, path)
            return FileResult(path=path, strategy=strategy, success=False, error=error)

        return FileResult(path=path, strategy=strategy, success=True, bytes_written=written)

    # --- Progress ----------------------------------------------------------
    def _set_status(self, status: str) -> None:
        self.operation.status_message = status
        self._emit()

    def _emit(self) -> None:
        op = self.operation
        if self._progress is not None:
            try:
                self._progress(op.progress, op.status_message)
            except Exception:
                logger.exception("Progress callback raised; continuing")
        if self._listener is not None:
            try:
                self._listener(op.snapshot())
            except Exception:
                logger.exception("Progress listener raised; continuing")
