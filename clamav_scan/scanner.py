"""Per-file scan operation and batch scanning on top of an engine handle."""

from __future__ import annotations

import logging
import os
import stat
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Union

from clamav_scan.engine import EngineHandle
from clamav_scan.exceptions import ClamAVScanError
from clamav_scan.models import (
    Clean,
    EngineFailure,
    FileUnreadable,
    Infected,
    RunStatistics,
    ScanResult,
    StatisticsSnapshot,
    Verdict,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Opening a FIFO must not block the scan.
_OPEN_FLAGS = os.O_RDONLY | getattr(os, "O_NONBLOCK", 0) | getattr(os, "O_BINARY", 0)


class Scanner:
    """Scans files with a ready :class:`EngineHandle` and keeps run counters.

    Each call to :meth:`scan` records exactly one event in
    :attr:`statistics`: an unreadable file, or a file that reached the
    engine.

    Args:
        handle: A handle that has loaded and compiled its database.
        statistics: Counter block to update; a fresh one seeded with the
            handle's signature count is created when omitted.

    Example::

        with open_engine(LibClamAVEngine()) as handle:
            scanner = Scanner(handle)
            for result in scanner.scan_all(DirectoryWalker(".")):
                print(result)
            print(scanner.snapshot())
    """

    def __init__(self, handle: EngineHandle, statistics: RunStatistics | None = None) -> None:
        self._handle = handle
        if statistics is None:
            statistics = RunStatistics(signatures_loaded=handle.signatures_loaded)
        self.statistics = statistics

    def snapshot(self) -> StatisticsSnapshot:
        """Return a read-only view of the counters."""
        return self.statistics.snapshot(self._handle.count_precision)

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    def scan(self, path: PathLike) -> ScanResult:
        """Scan one file and update :attr:`statistics`.

        Args:
            path: File to scan.

        Returns:
            One of :class:`Clean`, :class:`Infected`, :class:`EngineFailure`
            or :class:`FileUnreadable`.

        Raises:
            ClamAVEngineStateError: If the handle is not ready to scan.
        """
        return self._scan_into(os.fspath(path), self.statistics)

    def _scan_into(self, path: str, statistics: RunStatistics) -> ScanResult:
        self._handle.ensure_ready()

        try:
            stream = _open_regular(path)
        except OSError as exc:
            statistics.record_unreadable()
            message = exc.strerror or str(exc)
            logger.warning("Cannot open %s: %s", path, message)
            return FileUnreadable(message=message, path=path)

        with stream:
            try:
                reply = self._handle.scan_stream(stream, path)
            except ClamAVScanError as exc:
                statistics.record_scan(0)
                logger.error("Engine failed on %s: %s", path, exc.message)
                return EngineFailure(message=exc.message, path=path)

        infected = reply.verdict is Verdict.INFECTED
        statistics.record_scan(reply.bytes_scanned, infected=infected)

        if infected:
            signature = reply.signature or "UNKNOWN"
            logger.warning("Malware detected in %s: %s", path, signature)
            return Infected(signature_name=signature, path=path)
        if reply.verdict is Verdict.CLEAN:
            logger.debug("%s is clean", path)
            return Clean(path=path)
        logger.error("Engine failed on %s: %s", path, reply.message)
        return EngineFailure(message=reply.message, path=path)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def scan_all(
        self,
        paths: Iterable[PathLike],
        abort_on_engine_error: bool = True,
    ) -> Iterator[ScanResult]:
        """Scan *paths* one after another, yielding each result.

        With *abort_on_engine_error* the iteration stops right after the
        first :class:`EngineFailure` is yielded.
        """
        for path in paths:
            result = self.scan(path)
            yield result
            if abort_on_engine_error and isinstance(result, EngineFailure):
                logger.error("Stopping scan after engine failure")
                return

    def scan_parallel(
        self,
        paths: Iterable[PathLike],
        workers: int = 4,
        max_in_flight: int | None = None,
        abort_on_engine_error: bool = True,
    ) -> Iterator[ScanResult]:
        """Scan *paths* on a thread pool, yielding results as they finish.

        The engine handle is shared read-only between workers.  Each worker
        counts into a private :class:`RunStatistics` that is merged into
        :attr:`statistics` on the calling thread, so final counts do not
        depend on scheduling.  At most *max_in_flight* files (default
        ``2 * workers``) are open or queued at any time.

        With *abort_on_engine_error* no new files are submitted after the
        first :class:`EngineFailure`; files already in flight still finish
        and are yielded.
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        limit = max_in_flight or 2 * workers
        if limit < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {limit}")

        self._handle.ensure_ready()
        remaining = iter(paths)
        exhausted = False
        stopping = False
        pending: set[Future[tuple[ScanResult, RunStatistics]]] = set()

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="clamav-scan") as pool:
            while True:
                while not (exhausted or stopping) and len(pending) < limit:
                    try:
                        path = next(remaining)
                    except StopIteration:
                        exhausted = True
                        break
                    pending.add(pool.submit(self._scan_private, os.fspath(path)))

                if not pending:
                    return

                done, pending = wait(pending, return_when=FIRST_COMPLETED)
                # Merge the whole batch before re-raising a worker error.
                finished = []
                error: Exception | None = None
                for future in done:
                    try:
                        finished.append(future.result())
                    except Exception as exc:
                        if error is None:
                            error = exc
                for _, partial in finished:
                    self.statistics.merge(partial)
                if error is not None:
                    raise error

                for result, _ in finished:
                    if abort_on_engine_error and isinstance(result, EngineFailure):
                        if not stopping:
                            logger.error("Stopping scan after engine failure")
                        stopping = True
                    yield result

    def _scan_private(self, path: str) -> tuple[ScanResult, RunStatistics]:
        partial = RunStatistics()
        return self._scan_into(path, partial), partial


def _open_regular(path: str) -> BinaryIO:
    """Open *path* for reading, refusing anything that is not a regular file."""
    fd = os.open(path, _OPEN_FLAGS)
    try:
        mode = os.fstat(fd).st_mode
        if not stat.S_ISREG(mode):
            raise OSError(0, "Not a regular file", path)
        return os.fdopen(fd, "rb")
    except BaseException:
        os.close(fd)
        raise
