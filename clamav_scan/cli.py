"""Command-line entry point: ``clamav-scan [DIRECTORY]``."""

from __future__ import annotations

import locale
import logging

import click

from clamav_scan.engine import EngineCapability
from clamav_scan.models import ScanOptions
from clamav_scan.orchestrator import run_scan
from clamav_scan.report import Reporter

logger = logging.getLogger(__name__)

ENGINES = ("libclamav", "rest")


def build_engine(engine: str, library: str | None, url: str, timeout: float) -> EngineCapability:
    """Instantiate the engine capability selected on the command line."""
    if engine == "rest":
        from clamav_scan.backends.rest import RestEngine

        return RestEngine(url, timeout=timeout)
    from clamav_scan.backends.libclamav import LibClamAVEngine

    return LibClamAVEngine(library_path=library)


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@click.command(context_settings={"auto_envvar_prefix": "CLAMAV_SCAN"})
@click.argument("directory", default=".", type=click.Path(file_okay=False, path_type=str))
@click.option(
    "--engine",
    type=click.Choice(ENGINES),
    default="libclamav",
    show_default=True,
    help="Scanning engine backend.",
)
@click.option("--database", "-d", default=None, help="Signature database location (engine default if unset).")
@click.option("--library", default=None, help="Path to libclamav (auto-detected if unset).")
@click.option("--url", default="http://localhost:6000", show_default=True, help="ClamAV API server URL.")
@click.option("--timeout", default=300.0, show_default=True, help="REST request timeout in seconds.")
@click.option("--workers", "-j", default=1, show_default=True, type=click.IntRange(min=1), help="Parallel scan workers.")
@click.option(
    "--continue-on-error",
    is_flag=True,
    default=False,
    help="Keep scanning after an engine error instead of aborting the run.",
)
@click.option("--no-heuristics", is_flag=True, default=False, help="Disable heuristic detection.")
@click.option("--color/--no-color", default=None, help="Force colored output on or off.")
@click.option("--verbose", "-v", count=True, help="Log more (repeat for debug output).")
@click.pass_context
def main(
    ctx: click.Context,
    directory: str,
    engine: str,
    database: str | None,
    library: str | None,
    url: str,
    timeout: float,
    workers: int,
    continue_on_error: bool,
    no_heuristics: bool,
    color: bool | None,
    verbose: int,
) -> None:
    """Scan the regular files in DIRECTORY for malware."""
    try:
        locale.setlocale(locale.LC_ALL, "")
    except locale.Error as exc:
        logger.debug("Cannot set locale from environment: %s", exc)
    _configure_logging(verbose)

    outcome = run_scan(
        build_engine(engine, library, url, timeout),
        directory=directory,
        database=database,
        options=ScanOptions.default(heuristics=not no_heuristics),
        workers=workers,
        abort_on_engine_error=not continue_on_error,
        reporter=Reporter(color=color),
    )
    ctx.exit(int(outcome.exit_code))
