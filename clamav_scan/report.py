"""Terminal output for a scan run."""

from __future__ import annotations

import os
from typing import IO

import click

from clamav_scan.models import (
    Clean,
    EngineFailure,
    FileUnreadable,
    Infected,
    ScanResult,
    StatisticsSnapshot,
)

CHECK_MARK = "✔"


def format_summary(snapshot: StatisticsSnapshot) -> str:
    """Render the end-of-run summary block."""
    return "\n".join(
        [
            "",
            "------",
            f"Loaded {snapshot.signatures_loaded} signatures",
            f"Files scanned: {snapshot.files_scanned}",
            f"Files not accessible: {snapshot.files_unreadable}",
            f"Files infected: {snapshot.files_infected}",
            f"Total data scanned: {snapshot.megabytes_scanned:.2f} MB",
        ]
    )


class Reporter:
    """Writes progress lines, per-file verdicts and the summary.

    Args:
        out: Stream to write to; standard output when omitted.
        color: Force ANSI colors on or off; ``None`` lets click decide
            from the terminal.
    """

    def __init__(self, out: IO[str] | None = None, color: bool | None = None) -> None:
        self._out = out
        self._color = color

    def _echo(self, message: str) -> None:
        click.echo(message, file=self._out, color=self._color)

    def starting(self, engine_name: str) -> None:
        self._echo(f"Starting {engine_name} engine...")

    def engine_ready(self, engine_name: str, signatures: int) -> None:
        self._echo(f"{engine_name} started: loaded {signatures} signatures")

    def engine_failed(self, step: str, message: str) -> None:
        self._echo(f"{step}: {message}")

    def scanning(self) -> None:
        self._echo("Scanning files:\n")

    def result(self, result: ScanResult) -> None:
        name = os.path.basename(result.path) or result.path
        if isinstance(result, Clean):
            self._echo(f"{name} - " + click.style(CHECK_MARK, fg="green", bold=True))
        elif isinstance(result, Infected):
            self._echo(click.style(f"{name} - Virus detected: {result.signature_name}", fg="red"))
        elif isinstance(result, FileUnreadable):
            self._echo(f"{name} - " + click.style(result.message, fg="red"))
        elif isinstance(result, EngineFailure):
            self._echo(f"scan_file: {name} - {result.message}")

    def warning(self, message: str) -> None:
        self._echo(click.style(message, fg="yellow"))

    def directory_error(self, message: str) -> None:
        self._echo(message)

    def summary(self, snapshot: StatisticsSnapshot) -> None:
        self._echo(format_summary(snapshot))
