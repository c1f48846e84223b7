"""Enumeration of the regular files in a single directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Union

from clamav_scan.exceptions import ClamAVDirectoryError

logger = logging.getLogger(__name__)


class DirectoryWalker:
    """Lazily yields the regular files directly inside *root*.

    Symlinks, sub-directories, sockets and other special files are
    skipped; the walk does not descend into sub-directories.  Each call to
    ``iter()`` starts a fresh enumeration.

    Errors on individual entries, or a failure partway through reading the
    directory, do not raise: they are appended to :attr:`warnings` and the
    walk ends or continues with what it has.  Only a directory that cannot
    be opened at all raises.

    Args:
        root: Directory to enumerate.
    """

    def __init__(self, root: Union[str, Path] = ".") -> None:
        self.root = Path(root)
        self.warnings: list[str] = []

    def __iter__(self) -> Iterator[Path]:
        """Open the directory and return an iterator over its regular files.

        Raises:
            ClamAVDirectoryError: If the directory cannot be opened.
        """
        try:
            entries = os.scandir(self.root)
        except OSError as exc:
            raise ClamAVDirectoryError(
                f"Cannot access the files in directory {self.root}: {exc.strerror or exc}"
            ) from exc
        return self._regular_files(entries)

    def _regular_files(self, entries: Iterator[os.DirEntry]) -> Iterator[Path]:
        with entries:  # type: ignore[attr-defined]
            while True:
                try:
                    entry = next(entries)
                except StopIteration:
                    return
                except OSError as exc:
                    self._warn(f"Errors were found while reading the files: {exc.strerror or exc}")
                    return

                try:
                    if entry.is_file(follow_symlinks=False):
                        yield Path(entry.path)
                    else:
                        logger.debug("Skipping non-regular entry %s", entry.path)
                except OSError as exc:
                    self._warn(f"Cannot stat {entry.path}: {exc.strerror or exc}")

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)
