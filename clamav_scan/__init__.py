"""clamav-scan — scan a directory for malware with a ClamAV engine."""

from clamav_scan.engine import EngineCapability, EngineHandle, open_engine
from clamav_scan.exceptions import (
    ClamAVBadRequestError,
    ClamAVCompileError,
    ClamAVConnectionError,
    ClamAVDatabaseLoadError,
    ClamAVDirectoryError,
    ClamAVEngineError,
    ClamAVEngineStateError,
    ClamAVError,
    ClamAVFileTooLargeError,
    ClamAVInitializationError,
    ClamAVScanError,
    ClamAVServiceUnavailableError,
    ClamAVTimeoutError,
)
from clamav_scan.models import (
    Clean,
    EngineFailure,
    EngineReply,
    ExitCode,
    FileUnreadable,
    Infected,
    RunOutcome,
    RunStatistics,
    ScanOptions,
    ScanResult,
    StatisticsSnapshot,
    Verdict,
)
from clamav_scan.orchestrator import classify_run, run_scan
from clamav_scan.scanner import Scanner
from clamav_scan.walker import DirectoryWalker

__all__ = [
    "EngineCapability",
    "EngineHandle",
    "open_engine",
    "Scanner",
    "DirectoryWalker",
    "run_scan",
    "classify_run",
    "LibClamAVEngine",
    "RestEngine",
    "ScanOptions",
    "EngineReply",
    "Verdict",
    "Clean",
    "Infected",
    "EngineFailure",
    "FileUnreadable",
    "ScanResult",
    "RunStatistics",
    "StatisticsSnapshot",
    "RunOutcome",
    "ExitCode",
    "ClamAVError",
    "ClamAVEngineError",
    "ClamAVInitializationError",
    "ClamAVDatabaseLoadError",
    "ClamAVCompileError",
    "ClamAVScanError",
    "ClamAVEngineStateError",
    "ClamAVDirectoryError",
    "ClamAVConnectionError",
    "ClamAVTimeoutError",
    "ClamAVServiceUnavailableError",
    "ClamAVFileTooLargeError",
    "ClamAVBadRequestError",
]


def __getattr__(name: str) -> object:
    """Lazy-import engine backends so ``requests`` / libclamav are optional at import time."""
    if name == "LibClamAVEngine":
        from clamav_scan.backends.libclamav import LibClamAVEngine

        return LibClamAVEngine
    if name == "RestEngine":
        from clamav_scan.backends.rest import RestEngine

        return RestEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
