"""Data models for scan configuration, results and run statistics."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union

MEGABYTE = 1024 * 1024


class ParseOption(enum.IntFlag):
    """File-format parsers the engine may apply (``CL_SCAN_PARSE_*``)."""

    ARCHIVE = 0x1
    ELF = 0x2
    PDF = 0x4
    SWF = 0x8
    HWP3 = 0x10
    XMLDOCS = 0x20
    MAIL = 0x40
    OLE2 = 0x80
    HTML = 0x100
    PE = 0x200
    # Every parse bit, including parsers newer than the members above.
    ALL = 0xFFFFFFFF


class GeneralOption(enum.IntFlag):
    """General engine behaviour flags (``CL_SCAN_GENERAL_*``)."""

    ALLMATCHES = 0x1
    COLLECT_METADATA = 0x2
    HEURISTICS = 0x4
    HEURISTIC_PRECEDENCE = 0x8
    UNPRIVILEGED = 0x10


ALL_PARSERS = int(ParseOption.ALL)


@dataclass(frozen=True, slots=True)
class ScanOptions:
    """Immutable engine configuration threaded into every scan call.

    Mirrors libclamav's ``struct cl_scan_options``.

    Attributes:
        general: :class:`GeneralOption` bits.
        parse: :class:`ParseOption` bits; all parsers by default.
        heuristic: Heuristic-alert bits.
        mail: Mail-scanning bits.
        dev: Developer bits.
    """

    general: int = int(GeneralOption.HEURISTICS)
    parse: int = ALL_PARSERS
    heuristic: int = 0
    mail: int = 0
    dev: int = 0

    @classmethod
    def default(cls, heuristics: bool = True) -> ScanOptions:
        """Return the standard configuration: all parsers, heuristics on."""
        general = GeneralOption.HEURISTICS if heuristics else 0
        return cls(general=int(general), parse=ALL_PARSERS)

    @property
    def heuristics_enabled(self) -> bool:
        return bool(self.general & GeneralOption.HEURISTICS)


class Verdict(str, enum.Enum):
    """Raw outcome reported by an engine capability."""

    CLEAN = "clean"
    INFECTED = "infected"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class EngineReply:
    """What an engine capability returns from one ``scan_stream`` call.

    Attributes:
        verdict: Clean, infected or engine-internal error.
        bytes_scanned: Amount of data the engine processed, in units of the
            capability's ``count_precision``.
        signature: Matched signature name; only set for ``INFECTED``.
        message: Engine diagnostic; only set for ``ERROR``.
    """

    verdict: Verdict
    bytes_scanned: int = 0
    signature: str = ""
    message: str = ""


# ------------------------------------------------------------------
# Per-file results
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Clean:
    """The engine found nothing in the file."""

    path: str = ""


@dataclass(frozen=True, slots=True)
class Infected:
    """The engine matched a malware signature.

    Attributes:
        signature_name: Name of the matched signature; never empty.
        path: File that was scanned.
    """

    signature_name: str
    path: str = ""

    def __post_init__(self) -> None:
        if not self.signature_name:
            raise ValueError("Infected result requires a signature name")


@dataclass(frozen=True, slots=True)
class EngineFailure:
    """The engine failed while scanning the file.

    Attributes:
        message: Engine diagnostic.
        path: File that was being scanned.
    """

    message: str
    path: str = ""


@dataclass(frozen=True, slots=True)
class FileUnreadable:
    """The file could not be opened; the engine was never called.

    Attributes:
        message: Operating-system error description.
        path: File that could not be opened.
    """

    message: str
    path: str = ""


ScanResult = Union[Clean, Infected, EngineFailure, FileUnreadable]


# ------------------------------------------------------------------
# Run statistics
# ------------------------------------------------------------------


def scanned_size_in_units(
    bytes_scanned: int,
    count_precision: int,
    unit_divisor: int = MEGABYTE,
) -> float:
    """Convert an engine scan counter into size units (megabytes by default).

    Engines count scanned data in blocks of *count_precision* bytes
    (libclamav uses 4096), so the counter is scaled before dividing.
    """
    return bytes_scanned * count_precision / unit_divisor


@dataclass(slots=True)
class RunStatistics:
    """Counters accumulated over one run.

    Every scan attempt records exactly one event: either
    :meth:`record_unreadable` or :meth:`record_scan`.  Counters only grow.
    """

    signatures_loaded: int = 0
    files_scanned: int = 0
    files_unreadable: int = 0
    files_infected: int = 0
    bytes_scanned: int = 0

    def record_unreadable(self) -> None:
        self.files_unreadable += 1

    def record_scan(self, bytes_scanned: int, infected: bool = False) -> None:
        if bytes_scanned < 0:
            raise ValueError(f"bytes_scanned must be >= 0, got {bytes_scanned}")
        self.files_scanned += 1
        self.bytes_scanned += bytes_scanned
        if infected:
            self.files_infected += 1

    def merge(self, other: RunStatistics) -> None:
        """Add the per-file counters of *other* into this block.

        ``signatures_loaded`` is not summed; partial blocks produced by
        workers leave it at zero.
        """
        self.files_scanned += other.files_scanned
        self.files_unreadable += other.files_unreadable
        self.files_infected += other.files_infected
        self.bytes_scanned += other.bytes_scanned

    def snapshot(self, count_precision: int = 1) -> StatisticsSnapshot:
        return StatisticsSnapshot(
            signatures_loaded=self.signatures_loaded,
            files_scanned=self.files_scanned,
            files_unreadable=self.files_unreadable,
            files_infected=self.files_infected,
            bytes_scanned=self.bytes_scanned,
            count_precision=count_precision,
        )


@dataclass(frozen=True, slots=True)
class StatisticsSnapshot:
    """Read-only view of :class:`RunStatistics` used for the summary report.

    Attributes:
        signatures_loaded: Signatures in the compiled database.
        files_scanned: Files that reached the engine.
        files_unreadable: Files that could not be opened.
        files_infected: Files with a signature match.
        bytes_scanned: Engine scan counter, in ``count_precision`` units.
        count_precision: Bytes per unit of ``bytes_scanned``.
    """

    signatures_loaded: int
    files_scanned: int
    files_unreadable: int
    files_infected: int
    bytes_scanned: int
    count_precision: int = 1

    @property
    def files_total(self) -> int:
        return self.files_scanned + self.files_unreadable

    @property
    def megabytes_scanned(self) -> float:
        return scanned_size_in_units(self.bytes_scanned, self.count_precision)


class ExitCode(enum.IntEnum):
    """Process exit status of a scan run."""

    OK = 0
    INFECTED = 1
    ENGINE_ERROR = 2
    FILE_UNREADABLE = 3
    DIRECTORY_ERROR = 4


@dataclass(slots=True)
class RunOutcome:
    """Everything a finished (or aborted) run produced.

    Attributes:
        exit_code: Status to return to the shell.
        statistics: Final counters, or ``None`` when the engine never
            became ready.
        results: Per-file results in the order they completed.
        warnings: Non-fatal run-level problems, e.g. directory read errors.
        aborted: ``True`` when the walk stopped early on an engine error.
    """

    exit_code: ExitCode
    statistics: StatisticsSnapshot | None = None
    results: list[ScanResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    aborted: bool = False
