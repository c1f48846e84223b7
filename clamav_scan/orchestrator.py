"""One complete scan run: engine setup, directory walk, summary, teardown."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from clamav_scan.engine import EngineCapability, EngineHandle
from clamav_scan.exceptions import ClamAVDirectoryError, ClamAVEngineError
from clamav_scan.models import (
    EngineFailure,
    ExitCode,
    RunOutcome,
    ScanOptions,
    StatisticsSnapshot,
)
from clamav_scan.report import Reporter
from clamav_scan.scanner import Scanner
from clamav_scan.walker import DirectoryWalker

logger = logging.getLogger(__name__)


def classify_run(snapshot: StatisticsSnapshot, engine_failed: bool = False) -> ExitCode:
    """Map the final counters of a run to its exit code.

    Engine failures win over infections, infections over unreadable files.
    Unreadable files only decide the outcome when no file reached the
    engine at all.
    """
    if engine_failed:
        return ExitCode.ENGINE_ERROR
    if snapshot.files_infected:
        return ExitCode.INFECTED
    if snapshot.files_unreadable and not snapshot.files_scanned:
        return ExitCode.FILE_UNREADABLE
    return ExitCode.OK


def run_scan(
    capability: EngineCapability,
    directory: Union[str, Path] = ".",
    database: str | None = None,
    options: ScanOptions | None = None,
    workers: int = 1,
    abort_on_engine_error: bool = True,
    reporter: Reporter | None = None,
) -> RunOutcome:
    """Scan every regular file in *directory* and report the results.

    The engine is released on every path out of this function.

    Args:
        capability: Engine implementation to scan with.
        directory: Directory whose regular files are scanned.
        database: Signature database location; engine default when ``None``.
        options: Scan configuration; all parsers plus heuristics by default.
        workers: ``1`` scans sequentially; more uses a thread pool.
        abort_on_engine_error: Stop the walk at the first engine failure.
            When ``False`` the failure is reported and the walk continues.
        reporter: Output sink; writes to standard output when omitted.

    Returns:
        A :class:`RunOutcome` with the exit code, final counters and
        per-file results.
    """
    reporter = reporter or Reporter()
    reporter.starting(capability.name)

    try:
        handle = EngineHandle.initialize(capability)
        signatures = handle.load_and_compile(database, options)
    except ClamAVEngineError as exc:
        logger.error("Engine setup failed: %s", exc.message)
        reporter.engine_failed("load_engine", exc.message)
        return RunOutcome(exit_code=ExitCode.ENGINE_ERROR)

    with handle:
        reporter.engine_ready(capability.name, signatures)
        scanner = Scanner(handle)
        walker = DirectoryWalker(directory)
        outcome = RunOutcome(exit_code=ExitCode.OK)

        try:
            files = iter(walker)
        except ClamAVDirectoryError as exc:
            logger.error("%s", exc)
            reporter.directory_error(str(exc))
            outcome.exit_code = ExitCode.DIRECTORY_ERROR
            outcome.statistics = scanner.snapshot()
            return outcome

        reporter.scanning()
        if workers > 1:
            results = scanner.scan_parallel(
                files, workers=workers, abort_on_engine_error=abort_on_engine_error
            )
        else:
            results = scanner.scan_all(files, abort_on_engine_error=abort_on_engine_error)

        engine_failed = False
        for result in results:
            outcome.results.append(result)
            reporter.result(result)
            if isinstance(result, EngineFailure):
                engine_failed = True
                outcome.aborted = abort_on_engine_error

        for message in walker.warnings:
            reporter.warning(message)
        outcome.warnings.extend(walker.warnings)

        snapshot = scanner.snapshot()
        outcome.statistics = snapshot
        outcome.exit_code = classify_run(snapshot, engine_failed)
        if not outcome.aborted:
            reporter.summary(snapshot)

    logger.info("Scan finished with %s", outcome.exit_code.name)
    return outcome
