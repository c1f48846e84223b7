"""Tests for clamav_scan.models."""

import pytest

from clamav_scan.models import (
    ALL_PARSERS,
    Clean,
    EngineFailure,
    EngineReply,
    FileUnreadable,
    GeneralOption,
    Infected,
    ParseOption,
    RunStatistics,
    ScanOptions,
    StatisticsSnapshot,
    Verdict,
    scanned_size_in_units,
)


class TestScanOptions:
    def test_default_enables_all_parsers_and_heuristics(self):
        opts = ScanOptions.default()
        assert opts.parse == ALL_PARSERS
        assert opts.general & GeneralOption.HEURISTICS
        assert opts.heuristics_enabled is True

    def test_heuristics_can_be_disabled(self):
        opts = ScanOptions.default(heuristics=False)
        assert opts.heuristics_enabled is False
        assert opts.parse == ALL_PARSERS

    def test_all_parsers_covers_every_parse_option(self):
        assert ALL_PARSERS == ParseOption.ALL == 0xFFFFFFFF
        opts = ScanOptions.default()
        for parser in (ParseOption.ARCHIVE, ParseOption.PDF, ParseOption.MAIL, ParseOption.PE):
            assert opts.parse & parser == parser

    def test_constructor_defaults_match_default(self):
        assert ScanOptions() == ScanOptions.default()

    def test_frozen(self):
        opts = ScanOptions.default()
        with pytest.raises(AttributeError):
            opts.parse = 0  # type: ignore[misc]


class TestResults:
    def test_infected_requires_signature(self):
        with pytest.raises(ValueError):
            Infected(signature_name="")

    def test_infected_fields(self):
        r = Infected(signature_name="Eicar-Test-Signature", path="/tmp/eicar.com")
        assert r.signature_name == "Eicar-Test-Signature"
        assert r.path == "/tmp/eicar.com"

    def test_variants_are_distinct(self):
        assert Clean() != FileUnreadable(message="")
        assert EngineFailure(message="boom") != FileUnreadable(message="boom")

    def test_frozen(self):
        r = Clean(path="a")
        with pytest.raises(AttributeError):
            r.path = "b"  # type: ignore[misc]

    def test_engine_reply_defaults(self):
        reply = EngineReply(Verdict.CLEAN)
        assert reply.bytes_scanned == 0
        assert reply.signature == ""
        assert reply.message == ""


class TestRunStatistics:
    def test_starts_at_zero(self):
        stats = RunStatistics()
        assert (stats.files_scanned, stats.files_unreadable, stats.files_infected, stats.bytes_scanned) == (
            0,
            0,
            0,
            0,
        )

    def test_record_scan(self):
        stats = RunStatistics()
        stats.record_scan(10)
        stats.record_scan(5, infected=True)
        assert stats.files_scanned == 2
        assert stats.files_infected == 1
        assert stats.bytes_scanned == 15

    def test_record_unreadable_does_not_touch_scanned(self):
        stats = RunStatistics()
        stats.record_unreadable()
        assert stats.files_unreadable == 1
        assert stats.files_scanned == 0
        assert stats.bytes_scanned == 0

    def test_negative_bytes_rejected(self):
        with pytest.raises(ValueError):
            RunStatistics().record_scan(-1)

    def test_merge_is_order_independent(self):
        parts = [RunStatistics(), RunStatistics(), RunStatistics()]
        parts[0].record_scan(3, infected=True)
        parts[1].record_unreadable()
        parts[2].record_scan(7)

        forward = RunStatistics(signatures_loaded=9)
        for p in parts:
            forward.merge(p)
        backward = RunStatistics(signatures_loaded=9)
        for p in reversed(parts):
            backward.merge(p)

        assert forward == backward
        assert forward.signatures_loaded == 9
        assert forward.files_scanned == 2
        assert forward.files_unreadable == 1
        assert forward.files_infected == 1
        assert forward.bytes_scanned == 10

    def test_snapshot(self):
        stats = RunStatistics(signatures_loaded=100)
        stats.record_scan(256, infected=True)
        stats.record_unreadable()
        snap = stats.snapshot(count_precision=4096)
        assert snap == StatisticsSnapshot(
            signatures_loaded=100,
            files_scanned=1,
            files_unreadable=1,
            files_infected=1,
            bytes_scanned=256,
            count_precision=4096,
        )
        assert snap.files_total == 2
        assert snap.megabytes_scanned == pytest.approx(1.0)


class TestScannedSize:
    def test_libclamav_precision(self):
        # 256 blocks of 4 KiB
        assert scanned_size_in_units(256, 4096) == pytest.approx(1.0)

    def test_byte_precision(self):
        assert scanned_size_in_units(512 * 1024, 1) == pytest.approx(0.5)

    def test_custom_divisor(self):
        assert scanned_size_in_units(2, 4096, unit_divisor=1024) == pytest.approx(8.0)
