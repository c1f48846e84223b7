"""Tests for the engine handle lifecycle (EngineHandle, open_engine)."""

from __future__ import annotations

import io

import pytest

from clamav_scan.engine import EngineHandle, EngineState, open_engine
from clamav_scan.exceptions import (
    ClamAVCompileError,
    ClamAVDatabaseLoadError,
    ClamAVEngineStateError,
    ClamAVError,
    ClamAVInitializationError,
)
from clamav_scan.models import ScanOptions, Verdict

from .fakes import FakeEngine


class _WrappedErrorEngine(FakeEngine):
    """Raises the generic base error so the handle has to classify it."""

    def __init__(self, step: str) -> None:
        super().__init__()
        self.step = step

    def initialize(self):
        if self.step == "init":
            raise ClamAVError("out of memory")
        return super().initialize()

    def load_database(self, engine, location):
        if self.step == "load":
            raise ClamAVError("no such directory")
        return super().load_database(engine, location)

    def compile(self, engine):
        if self.step == "compile":
            raise ClamAVError("bad bytecode")


class _CrashingEngine(FakeEngine):
    """Fails a setup step with an error outside the ClamAV hierarchy."""

    def __init__(self, step: str) -> None:
        super().__init__()
        self.step = step

    def initialize(self):
        if self.step == "init":
            raise RuntimeError("allocator exploded")
        return super().initialize()

    def load_database(self, engine, location):
        if self.step == "load":
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return super().load_database(engine, location)

    def compile(self, engine):
        if self.step == "compile":
            raise RuntimeError("compiler crashed")


class TestInitialize:
    def test_success(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        assert handle.state is EngineState.NEW
        assert handle.is_ready is False
        assert handle.engine_name == "fake"

    def test_failure(self):
        with pytest.raises(ClamAVInitializationError, match="Cannot create"):
            EngineHandle.initialize(FakeEngine(fail_init=True))

    def test_none_instance_is_failure(self):
        with pytest.raises(ClamAVInitializationError):
            EngineHandle.initialize(FakeEngine(return_none=True))

    def test_generic_error_wrapped(self):
        with pytest.raises(ClamAVInitializationError, match="out of memory"):
            EngineHandle.initialize(_WrappedErrorEngine("init"))

    def test_unexpected_error_wrapped(self):
        with pytest.raises(ClamAVInitializationError, match="allocator exploded") as info:
            EngineHandle.initialize(_CrashingEngine("init"))
        assert isinstance(info.value.__cause__, RuntimeError)


class TestLoadAndCompile:
    def test_success(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        assert handle.load_and_compile("/var/lib/clamav") == 42
        assert handle.is_ready
        assert handle.signatures_loaded == 42
        assert handle.options == ScanOptions.default()
        assert fake_engine.loaded_from == ["/var/lib/clamav"]

    def test_custom_options(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        opts = ScanOptions.default(heuristics=False)
        handle.load_and_compile(options=opts)
        assert handle.options is opts
        assert fake_engine.loaded_from == [None]

    def test_options_unset_before_compile(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        with pytest.raises(ClamAVEngineStateError):
            _ = handle.options

    def test_load_failure_releases_engine(self):
        engine = FakeEngine(fail_load=True)
        handle = EngineHandle.initialize(engine)
        with pytest.raises(ClamAVDatabaseLoadError, match="cl_load"):
            handle.load_and_compile()
        assert engine.release_calls == 1
        assert handle.state is EngineState.RELEASED

    def test_compile_failure_releases_engine(self):
        engine = FakeEngine(fail_compile=True)
        handle = EngineHandle.initialize(engine)
        with pytest.raises(ClamAVCompileError, match="Malformed"):
            handle.load_and_compile()
        assert engine.release_calls == 1
        assert handle.state is EngineState.RELEASED

    @pytest.mark.parametrize(
        ("step", "expected"),
        [("load", ClamAVDatabaseLoadError), ("compile", ClamAVCompileError)],
    )
    def test_generic_errors_classified(self, step, expected):
        engine = _WrappedErrorEngine(step)
        handle = EngineHandle.initialize(engine)
        with pytest.raises(expected):
            handle.load_and_compile()
        assert engine.release_calls == 1

    @pytest.mark.parametrize(
        ("step", "expected", "cause"),
        [
            ("load", ClamAVDatabaseLoadError, ValueError),
            ("compile", ClamAVCompileError, RuntimeError),
        ],
    )
    def test_unexpected_errors_release_engine(self, step, expected, cause):
        engine = _CrashingEngine(step)
        handle = EngineHandle.initialize(engine)
        with pytest.raises(expected) as info:
            handle.load_and_compile()
        assert isinstance(info.value.__cause__, cause)
        assert engine.release_calls == 1
        assert handle.state is EngineState.RELEASED

    def test_cannot_load_twice(self, ready_handle: EngineHandle):
        with pytest.raises(ClamAVEngineStateError):
            ready_handle.load_and_compile()


class TestScanStream:
    def test_scan_before_compile_rejected(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        with pytest.raises(ClamAVEngineStateError):
            handle.scan_stream(io.BytesIO(b"data"), "x")
        assert fake_engine.scan_calls == 0

    def test_scan_uses_configuration(self, ready_handle: EngineHandle, fake_engine: FakeEngine):
        reply = ready_handle.scan_stream(io.BytesIO(b"data"), "x")
        assert reply.verdict is Verdict.CLEAN
        assert fake_engine.seen_options == [ready_handle.options]

    def test_scan_after_teardown_rejected(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        handle.load_and_compile()
        handle.teardown()
        with pytest.raises(ClamAVEngineStateError):
            handle.scan_stream(io.BytesIO(b"data"), "x")


class TestTeardown:
    def test_releases_once(self, fake_engine: FakeEngine):
        handle = EngineHandle.initialize(fake_engine)
        handle.load_and_compile()
        handle.teardown()
        handle.teardown()
        assert fake_engine.release_calls == 1
        assert handle.state is EngineState.RELEASED

    def test_context_manager(self, fake_engine: FakeEngine):
        with EngineHandle.initialize(fake_engine) as handle:
            handle.load_and_compile()
        assert fake_engine.release_calls == 1

    def test_unloaded_handle_can_be_released(self, fake_engine: FakeEngine):
        EngineHandle.initialize(fake_engine).teardown()
        assert fake_engine.release_calls == 1


class TestOpenEngine:
    def test_normal_exit(self, fake_engine: FakeEngine):
        with open_engine(fake_engine, "/db") as handle:
            assert handle.is_ready
        assert fake_engine.release_calls == 1

    def test_exception_inside_block(self, fake_engine: FakeEngine):
        with pytest.raises(RuntimeError):
            with open_engine(fake_engine):
                raise RuntimeError("walker blew up")
        assert fake_engine.release_calls == 1

    def test_load_failure(self):
        engine = FakeEngine(fail_load=True)
        with pytest.raises(ClamAVDatabaseLoadError):
            with open_engine(engine):
                pass  # pragma: no cover
        assert engine.release_calls == 1

    def test_init_failure_releases_nothing(self):
        engine = FakeEngine(fail_init=True)
        with pytest.raises(ClamAVInitializationError):
            with open_engine(engine):
                pass  # pragma: no cover
        assert engine.release_calls == 0
