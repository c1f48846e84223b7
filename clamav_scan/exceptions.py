"""Exception hierarchy for clamav-scan."""

from __future__ import annotations


class ClamAVError(Exception):
    """Base exception for all clamav-scan errors."""


class ClamAVEngineError(ClamAVError):
    """Raised when the scanning engine itself fails.

    Attributes:
        message: Diagnostic text reported by the engine.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClamAVInitializationError(ClamAVEngineError):
    """Raised when the engine capability cannot produce an engine instance."""


class ClamAVDatabaseLoadError(ClamAVEngineError):
    """Raised when the signature database cannot be loaded into the engine."""


class ClamAVCompileError(ClamAVEngineError):
    """Raised when the loaded signatures cannot be compiled."""


class ClamAVScanError(ClamAVEngineError):
    """Raised by an engine capability when a single scan fails internally.

    The scanner converts it into an :class:`~clamav_scan.models.EngineFailure`
    result; it never escapes :meth:`Scanner.scan`.
    """


class ClamAVEngineStateError(ClamAVError):
    """Raised when an engine handle is used in the wrong lifecycle state.

    For example scanning before the database is compiled, or after teardown.
    """


class ClamAVDirectoryError(ClamAVError):
    """Raised when the target directory cannot be enumerated."""


class ClamAVConnectionError(ClamAVScanError):
    """Raised when the REST engine cannot reach the ClamAV API server."""


class ClamAVTimeoutError(ClamAVScanError):
    """Raised when a scan request times out.

    Corresponds to HTTP 504 or a client-side request timeout.
    """


class ClamAVServiceUnavailableError(ClamAVScanError):
    """Raised when the ClamAV daemon behind the API server is not running.

    Corresponds to HTTP 502.
    """


class ClamAVFileTooLargeError(ClamAVScanError):
    """Raised when the uploaded file exceeds the server's size limit.

    Corresponds to HTTP 413.
    """


class ClamAVBadRequestError(ClamAVScanError):
    """Raised for malformed requests.

    Corresponds to HTTP 400.
    """
