"""Engine backed by a ClamAV API server over REST.

The server owns and compiles its own signature database, so loading is
a health check and compiling is a no-op.  Each scan streams the file to
``/api/stream-scan`` as ``application/octet-stream``.
"""

from __future__ import annotations

import logging
import os
from typing import Any, BinaryIO

import requests

from clamav_scan.engine import EngineCapability
from clamav_scan.exceptions import (
    ClamAVBadRequestError,
    ClamAVConnectionError,
    ClamAVDatabaseLoadError,
    ClamAVError,
    ClamAVFileTooLargeError,
    ClamAVScanError,
    ClamAVServiceUnavailableError,
    ClamAVTimeoutError,
)
from clamav_scan.models import EngineReply, ScanOptions, Verdict

logger = logging.getLogger(__name__)

_STATUS_VERDICTS = {
    "OK": Verdict.CLEAN,
    "FOUND": Verdict.INFECTED,
    "ERROR": Verdict.ERROR,
}


class RestEngine(EngineCapability):
    """Engine capability for the ClamAV REST API.

    Args:
        base_url: Root URL of the ClamAV API server.
        timeout: Request timeout in seconds.
        session: Optional pre-configured :class:`requests.Session` for
            custom authentication headers.  When omitted each engine
            instance opens (and later closes) its own session.

    Example::

        with open_engine(RestEngine("http://localhost:6000")) as handle:
            result = Scanner(handle).scan("/tmp/sample.txt")
    """

    name = "clamav-api"
    count_precision = 1

    def __init__(
        self,
        base_url: str = "http://localhost:6000",
        timeout: float = 300,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session

    # ------------------------------------------------------------------
    # EngineCapability interface
    # ------------------------------------------------------------------

    def initialize(self) -> requests.Session:
        return self._session or requests.Session()

    def load_database(self, engine: requests.Session, location: str | None) -> int:
        if location:
            logger.info("Ignoring database %s; %s manages its own signatures", location, self._base_url)
        try:
            health = self._get(engine, "/api/health-check")
        except ClamAVError as exc:
            raise ClamAVDatabaseLoadError(f"ClamAV API at {self._base_url} unavailable: {exc}") from exc
        if health.get("message") != "ok":
            raise ClamAVDatabaseLoadError(
                f"ClamAV API at {self._base_url} unhealthy: {health.get('message', '')}"
            )

        try:
            version = self._get(engine, "/api/version")
        except ClamAVError as exc:
            logger.warning("Cannot read ClamAV API version: %s", exc)
        else:
            logger.info(
                "Connected to ClamAV API %s (commit %s)",
                version.get("version", "?"),
                version.get("commit", "?"),
            )
        # The API does not report a signature count.
        return 0

    def compile(self, engine: requests.Session) -> None:
        return None

    def scan_stream(
        self,
        engine: requests.Session,
        stream: BinaryIO,
        path: str,
        options: ScanOptions,
    ) -> EngineReply:
        pos = stream.tell()
        stream.seek(0, os.SEEK_END)
        content_length = stream.tell() - pos
        stream.seek(pos)

        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(content_length),
        }
        data = self._post_stream(engine, "/api/stream-scan", stream, headers)

        verdict = _STATUS_VERDICTS.get(data.get("status", "ERROR"), Verdict.ERROR)
        message = data.get("message", "")
        if verdict is Verdict.INFECTED:
            return EngineReply(verdict, bytes_scanned=content_length, signature=message)
        if verdict is Verdict.ERROR:
            return EngineReply(
                verdict,
                bytes_scanned=content_length,
                message=f"Error: {message or 'unknown engine error'}",
            )
        return EngineReply(verdict, bytes_scanned=content_length)

    def release(self, engine: requests.Session) -> None:
        # A caller-supplied session belongs to the caller.
        if engine is not self._session:
            engine.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, session: requests.Session, path: str) -> dict:
        try:
            resp = session.get(f"{self._base_url}{path}", timeout=self._timeout)
        except requests.ConnectionError as exc:
            raise ClamAVConnectionError(str(exc)) from exc
        except requests.Timeout as exc:
            raise ClamAVTimeoutError(str(exc)) from exc
        except requests.RequestException as exc:
            # InvalidSchema, MissingSchema, InvalidURL...
            raise ClamAVConnectionError(str(exc)) from exc

        self._raise_for_status(resp)
        return self._json_object(resp)

    def _post_stream(
        self,
        session: requests.Session,
        path: str,
        body: BinaryIO,
        headers: dict,
    ) -> dict:
        try:
            resp = session.post(
                f"{self._base_url}{path}",
                data=body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.ConnectionError as exc:
            raise ClamAVConnectionError(str(exc)) from exc
        except requests.Timeout as exc:
            raise ClamAVTimeoutError(str(exc)) from exc
        except requests.RequestException as exc:
            raise ClamAVConnectionError(str(exc)) from exc

        self._raise_for_status(resp)
        return self._json_object(resp)

    @staticmethod
    def _json_object(resp: requests.Response) -> dict:
        """Decode a JSON object body or raise :class:`ClamAVScanError`."""
        try:
            body = resp.json()
        except ValueError as exc:
            raise ClamAVScanError(f"Invalid JSON reply from {resp.url}: {exc}") from exc
        if not isinstance(body, dict):
            raise ClamAVScanError(f"Unexpected reply from {resp.url}: {body!r}")
        return body

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.status_code == 200:
            return
        body: Any = {}
        if resp.headers.get("content-type", "").startswith("application/json"):
            try:
                body = resp.json()
            except ValueError:
                body = {}
        msg = body.get("message", resp.text) if isinstance(body, dict) else resp.text
        if resp.status_code == 400:
            raise ClamAVBadRequestError(msg)
        if resp.status_code == 413:
            raise ClamAVFileTooLargeError(msg)
        if resp.status_code == 502:
            raise ClamAVServiceUnavailableError(msg)
        if resp.status_code == 504:
            raise ClamAVTimeoutError(msg)
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            raise ClamAVScanError(str(exc)) from exc
