"""Engine capability interface and the engine handle lifecycle.

An :class:`EngineCapability` wraps a concrete scanning engine (libclamav,
a ClamAV API server, a test double).  The orchestrator never touches the
engine instance directly; it goes through an :class:`EngineHandle`, which
enforces the lifecycle::

    NEW --load_and_compile--> READY --teardown--> RELEASED

Any failure while loading or compiling releases the engine before the
error propagates, so a half-loaded engine is never left behind.

Usage::

    with open_engine(LibClamAVEngine()) as handle:
        scanner = Scanner(handle)
        result = scanner.scan("sample.bin")
"""

from __future__ import annotations

import abc
import enum
import logging
from contextlib import contextmanager
from typing import Any, BinaryIO, Iterator

from clamav_scan.exceptions import (
    ClamAVCompileError,
    ClamAVDatabaseLoadError,
    ClamAVEngineStateError,
    ClamAVInitializationError,
)
from clamav_scan.models import EngineReply, ScanOptions

logger = logging.getLogger(__name__)


class EngineCapability(abc.ABC):
    """Abstract interface to an external scanning engine.

    Implementations own no per-run state beyond what :meth:`initialize`
    returns; the returned engine instance is opaque to callers and is
    passed back into every other method.  Once compiled, an instance must
    be safe to scan from several threads at once.

    Attributes:
        name: Short engine identifier used in logs.
        count_precision: Bytes per unit of ``EngineReply.bytes_scanned``.
    """

    name: str = "engine"
    count_precision: int = 1

    @abc.abstractmethod
    def initialize(self) -> Any:
        """Create a fresh engine instance.

        Raises:
            ClamAVInitializationError: If no instance can be produced.
        """

    @abc.abstractmethod
    def load_database(self, engine: Any, location: str | None) -> int:
        """Load signature definitions into *engine*.

        Args:
            engine: Instance returned by :meth:`initialize`.
            location: Database path; ``None`` selects the engine default.

        Returns:
            The number of signatures loaded.

        Raises:
            ClamAVDatabaseLoadError: If the definitions cannot be loaded.
        """

    @abc.abstractmethod
    def compile(self, engine: Any) -> None:
        """Compile the loaded signatures so *engine* can scan.

        Raises:
            ClamAVCompileError: If compilation fails.
        """

    @abc.abstractmethod
    def scan_stream(
        self,
        engine: Any,
        stream: BinaryIO,
        path: str,
        options: ScanOptions,
    ) -> EngineReply:
        """Scan the open *stream* and report the verdict.

        Engine-internal failures are reported as ``Verdict.ERROR`` replies
        so the processed byte count is not lost.  Failures that prevent the
        engine from producing any reply raise
        :class:`~clamav_scan.exceptions.ClamAVScanError`.
        """

    @abc.abstractmethod
    def release(self, engine: Any) -> None:
        """Free every resource held by *engine*."""


class EngineState(str, enum.Enum):
    NEW = "new"
    READY = "ready"
    RELEASED = "released"


class EngineHandle:
    """Owns one engine instance from creation to release.

    Create handles with :meth:`initialize`; do not call the constructor
    directly.  A handle is a context manager that tears itself down on
    exit.

    Args:
        capability: The engine implementation.
        engine: Opaque instance returned by ``capability.initialize()``.
    """

    def __init__(self, capability: EngineCapability, engine: Any) -> None:
        self._capability = capability
        self._engine = engine
        self._state = EngineState.NEW
        self._options: ScanOptions | None = None
        self._signatures = 0

    @classmethod
    def initialize(cls, capability: EngineCapability) -> EngineHandle:
        """Acquire a fresh engine instance from *capability*.

        Raises:
            ClamAVInitializationError: If the capability cannot create one.
        """
        try:
            engine = capability.initialize()
        except ClamAVInitializationError:
            raise
        except Exception as exc:
            raise ClamAVInitializationError(str(exc)) from exc
        if engine is None:
            raise ClamAVInitializationError(f"{capability.name}: cannot create a new engine")
        logger.info("Initialized %s engine", capability.name)
        return cls(capability, engine)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    @property
    def options(self) -> ScanOptions:
        if self._options is None:
            raise ClamAVEngineStateError("engine has no scan configuration yet")
        return self._options

    @property
    def signatures_loaded(self) -> int:
        return self._signatures

    @property
    def count_precision(self) -> int:
        return self._capability.count_precision

    @property
    def engine_name(self) -> str:
        return self._capability.name

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load_and_compile(
        self,
        database: str | None = None,
        options: ScanOptions | None = None,
    ) -> int:
        """Load and compile the signature database, then apply *options*.

        On any failure the engine is released before the error propagates.

        Args:
            database: Database location; ``None`` for the engine default.
            options: Scan configuration; defaults to all parsers with
                heuristics enabled.

        Returns:
            The number of signatures loaded.

        Raises:
            ClamAVDatabaseLoadError: If loading fails.
            ClamAVCompileError: If compiling fails.
            ClamAVEngineStateError: If the handle is not freshly initialized.
        """
        if self._state is not EngineState.NEW:
            raise ClamAVEngineStateError(
                f"cannot load a database into a {self._state.value} engine"
            )

        # Any failure releases the engine, ClamAV errors or not.
        try:
            signatures = self._capability.load_database(self._engine, database)
        except Exception as exc:
            self.teardown()
            if isinstance(exc, ClamAVDatabaseLoadError):
                raise
            raise ClamAVDatabaseLoadError(str(exc)) from exc

        try:
            self._capability.compile(self._engine)
        except Exception as exc:
            self.teardown()
            if isinstance(exc, ClamAVCompileError):
                raise
            raise ClamAVCompileError(str(exc)) from exc

        self._options = options or ScanOptions.default()
        self._signatures = signatures
        self._state = EngineState.READY
        logger.info(
            "%s engine ready: %d signatures, heuristics=%s",
            self._capability.name,
            signatures,
            self._options.heuristics_enabled,
        )
        return signatures

    def ensure_ready(self) -> None:
        """Raise :class:`ClamAVEngineStateError` unless the engine can scan."""
        if self._state is not EngineState.READY:
            raise ClamAVEngineStateError(f"cannot scan with a {self._state.value} engine")

    def scan_stream(self, stream: BinaryIO, path: str) -> EngineReply:
        """Scan an open *stream* with the handle's configuration."""
        self.ensure_ready()
        return self._capability.scan_stream(self._engine, stream, path, self.options)

    def teardown(self) -> None:
        """Release the engine.  Calls after the first one do nothing."""
        if self._state is EngineState.RELEASED:
            logger.debug("%s engine already released", self._capability.name)
            return
        engine, self._engine = self._engine, None
        self._state = EngineState.RELEASED
        self._capability.release(engine)
        logger.info("Released %s engine", self._capability.name)

    def __enter__(self) -> EngineHandle:
        return self

    def __exit__(self, *args: object) -> None:
        self.teardown()

    def __repr__(self) -> str:
        return (
            f"EngineHandle(engine={self._capability.name!r}, state={self._state.value!r}, "
            f"signatures={self._signatures})"
        )


@contextmanager
def open_engine(
    capability: EngineCapability,
    database: str | None = None,
    options: ScanOptions | None = None,
) -> Iterator[EngineHandle]:
    """Initialize, load and compile an engine; release it on exit.

    Raises:
        ClamAVInitializationError: If the engine cannot be created.
        ClamAVDatabaseLoadError: If the database cannot be loaded.
        ClamAVCompileError: If the database cannot be compiled.
    """
    handle = EngineHandle.initialize(capability)
    handle.load_and_compile(database, options)
    try:
        yield handle
    finally:
        handle.teardown()
