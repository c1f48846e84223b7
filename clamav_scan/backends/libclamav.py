"""In-process engine backed by the native ``libclamav`` shared library.

The library is bound with :mod:`ctypes`; nothing is compiled at install
time.  Only the handful of entry points the scanner needs are declared::

    cl_init            cl_engine_new      cl_load
    cl_engine_compile  cl_scandesc        cl_engine_free
    cl_strerror        cl_retdbdir

``cl_scandesc`` reports scanned data in blocks of ``CL_COUNT_PRECISION``
bytes, which is why :attr:`LibClamAVEngine.count_precision` is 4096.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os
import threading
from typing import Any, BinaryIO

from clamav_scan.engine import EngineCapability
from clamav_scan.exceptions import (
    ClamAVCompileError,
    ClamAVDatabaseLoadError,
    ClamAVInitializationError,
)
from clamav_scan.models import EngineReply, ScanOptions, Verdict

logger = logging.getLogger(__name__)

CL_INIT_DEFAULT = 0x0

CL_SUCCESS = 0
CL_CLEAN = 0
CL_VIRUS = 1

CL_DB_PHISHING = 0x2
CL_DB_PHISHING_URLS = 0x8
CL_DB_BYTECODE = 0x2000
CL_DB_STDOPT = CL_DB_PHISHING | CL_DB_PHISHING_URLS | CL_DB_BYTECODE

CL_COUNT_PRECISION = 4096

_UINT32_MASK = 0xFFFFFFFF


class _ClScanOptions(ctypes.Structure):
    """``struct cl_scan_options``."""

    _fields_ = [
        ("general", ctypes.c_uint32),
        ("parse", ctypes.c_uint32),
        ("heuristic", ctypes.c_uint32),
        ("mail", ctypes.c_uint32),
        ("dev", ctypes.c_uint32),
    ]

    @classmethod
    def from_options(cls, options: ScanOptions) -> _ClScanOptions:
        return cls(
            general=options.general & _UINT32_MASK,
            parse=options.parse & _UINT32_MASK,
            heuristic=options.heuristic & _UINT32_MASK,
            mail=options.mail & _UINT32_MASK,
            dev=options.dev & _UINT32_MASK,
        )


def load_library(path: str | None = None) -> ctypes.CDLL:
    """Load ``libclamav`` and declare the prototypes used by this module.

    Args:
        path: Explicit library path; located with
            :func:`ctypes.util.find_library` when omitted.

    Raises:
        ClamAVInitializationError: If the library cannot be found or loaded.
    """
    name = path or ctypes.util.find_library("clamav")
    if not name:
        raise ClamAVInitializationError("Cannot find libclamav; install ClamAV or pass its path")
    try:
        lib = ctypes.CDLL(name)
    except OSError as exc:
        raise ClamAVInitializationError(f"Cannot load {name}: {exc}") from exc

    lib.cl_init.argtypes = [ctypes.c_uint]
    lib.cl_init.restype = ctypes.c_int
    lib.cl_engine_new.argtypes = []
    lib.cl_engine_new.restype = ctypes.c_void_p
    lib.cl_load.argtypes = [
        ctypes.c_char_p,
        ctypes.c_void_p,
        ctypes.POINTER(ctypes.c_uint),
        ctypes.c_uint,
    ]
    lib.cl_load.restype = ctypes.c_int
    lib.cl_engine_compile.argtypes = [ctypes.c_void_p]
    lib.cl_engine_compile.restype = ctypes.c_int
    lib.cl_engine_free.argtypes = [ctypes.c_void_p]
    lib.cl_engine_free.restype = ctypes.c_int
    lib.cl_scandesc.argtypes = [
        ctypes.c_int,
        ctypes.c_char_p,
        ctypes.POINTER(ctypes.c_char_p),
        ctypes.POINTER(ctypes.c_ulong),
        ctypes.c_void_p,
        ctypes.POINTER(_ClScanOptions),
    ]
    lib.cl_scandesc.restype = ctypes.c_int
    lib.cl_strerror.argtypes = [ctypes.c_int]
    lib.cl_strerror.restype = ctypes.c_char_p
    lib.cl_retdbdir.argtypes = []
    lib.cl_retdbdir.restype = ctypes.c_char_p
    return lib


class LibClamAVEngine(EngineCapability):
    """Engine capability calling libclamav in-process.

    Args:
        library_path: Path to ``libclamav.so``; auto-detected when omitted.
        library: Pre-loaded library object, mainly for tests.  Takes
            precedence over *library_path*.
        db_options: ``CL_DB_*`` flags passed to ``cl_load``.

    Example::

        with open_engine(LibClamAVEngine(), "/var/lib/clamav") as handle:
            ...
    """

    name = "clamav"
    count_precision = CL_COUNT_PRECISION

    def __init__(
        self,
        library_path: str | None = None,
        library: Any = None,
        db_options: int = CL_DB_STDOPT,
    ) -> None:
        self._library_path = library_path
        self._lib = library
        self._db_options = db_options
        self._lib_initialized = False
        self._lock = threading.Lock()

    @property
    def lib(self) -> Any:
        if self._lib is None:
            self._lib = load_library(self._library_path)
        return self._lib

    def strerror(self, code: int) -> str:
        raw = self.lib.cl_strerror(code)
        return _decode(raw) if raw else f"error code {code}"

    def default_database(self) -> str:
        """Return libclamav's compiled-in database directory."""
        return _decode(self.lib.cl_retdbdir())

    # ------------------------------------------------------------------
    # EngineCapability interface
    # ------------------------------------------------------------------

    def initialize(self) -> Any:
        lib = self.lib
        with self._lock:
            if not self._lib_initialized:
                ret = lib.cl_init(CL_INIT_DEFAULT)
                if ret != CL_SUCCESS:
                    raise ClamAVInitializationError(
                        f"Cannot initialize libclamav: {self.strerror(ret)}"
                    )
                self._lib_initialized = True

        engine = lib.cl_engine_new()
        if not engine:
            raise ClamAVInitializationError("Cannot create a new engine")
        return engine

    def load_database(self, engine: Any, location: str | None) -> int:
        location = location or self.default_database()
        signatures = ctypes.c_uint(0)
        ret = self.lib.cl_load(
            os.fsencode(location),
            engine,
            ctypes.pointer(signatures),
            self._db_options,
        )
        if ret != CL_SUCCESS:
            raise ClamAVDatabaseLoadError(f"cl_load error: {self.strerror(ret)}")
        logger.info("Loaded %d signatures from %s", signatures.value, location)
        return signatures.value

    def compile(self, engine: Any) -> None:
        ret = self.lib.cl_engine_compile(engine)
        if ret != CL_SUCCESS:
            raise ClamAVCompileError(f"Database initialization error: {self.strerror(ret)}")

    def scan_stream(
        self,
        engine: Any,
        stream: BinaryIO,
        path: str,
        options: ScanOptions,
    ) -> EngineReply:
        virname = ctypes.c_char_p()
        scanned = ctypes.c_ulong(0)
        c_options = _ClScanOptions.from_options(options)

        ret = self.lib.cl_scandesc(
            stream.fileno(),
            os.fsencode(path),
            ctypes.pointer(virname),
            ctypes.pointer(scanned),
            engine,
            ctypes.pointer(c_options),
        )

        if ret == CL_VIRUS:
            return EngineReply(
                verdict=Verdict.INFECTED,
                bytes_scanned=scanned.value,
                signature=_decode(virname.value) if virname.value else "",
            )
        if ret == CL_CLEAN:
            return EngineReply(verdict=Verdict.CLEAN, bytes_scanned=scanned.value)
        return EngineReply(
            verdict=Verdict.ERROR,
            bytes_scanned=scanned.value,
            message=f"Error: {self.strerror(ret)}",
        )

    def release(self, engine: Any) -> None:
        ret = self.lib.cl_engine_free(engine)
        if ret != CL_SUCCESS:
            logger.warning("cl_engine_free failed: %s", self.strerror(ret))


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")
