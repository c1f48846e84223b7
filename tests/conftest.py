"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from clamav_scan.engine import EngineHandle

from .fakes import EICAR, FakeEngine


@pytest.fixture()
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture()
def ready_handle(fake_engine: FakeEngine) -> Iterator[EngineHandle]:
    handle = EngineHandle.initialize(fake_engine)
    handle.load_and_compile("/var/lib/clamav")
    yield handle
    handle.teardown()


@pytest.fixture()
def sample_bytes() -> bytes:
    return b"Hello, ClamAV!"


@pytest.fixture()
def eicar_bytes() -> bytes:
    """EICAR anti-malware test string (safe; every AV recognises it)."""
    return EICAR


@pytest.fixture()
def scan_dir(tmp_path: Path, sample_bytes: bytes) -> Path:
    """Directory with two clean files, one EICAR file and a sub-directory."""
    (tmp_path / "a.txt").write_bytes(sample_bytes)
    (tmp_path / "b.txt").write_bytes(b"another clean file")
    (tmp_path / "eicar.com").write_bytes(EICAR)
    sub = tmp_path / "nested"
    sub.mkdir()
    (sub / "ignored.txt").write_bytes(EICAR)
    return tmp_path
