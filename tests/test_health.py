"""Tests for the Health Check Engine — freshness, storage, liveness."""

from __future__ import annotations

import os
import time
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from labwatch.config import WatchTarget
from labwatch.health.engine import (
    Check,
    CheckResult,
    Status,
    build_checks,
    execute_check,
    newest_file_age,
    run_freshness_check,
    run_liveness_check,
    run_storage_check,
)
from labwatch.health.probes import lower_priority, process_running
from labwatch.health.stop_signal import StopReason, StopSignal

NOW = 1_700_000_000.0


def _touch(path: Path, minutes_ago: float) -> Path:
    path.write_text("dsl")
    mtime = NOW - minutes_ago * 60
    os.utime(path, (mtime, mtime))
    return path


# ── CheckResult ──────────────────────────────────────────────────────────────


class TestCheckResult:
    def test_auto_timestamp(self) -> None:
        r = CheckResult(check_id="c1", status=Status.PASS)
        assert r.timestamp
        assert "T" in r.timestamp

    def test_failed(self) -> None:
        assert CheckResult(check_id="c1", status=Status.FAIL).failed
        assert not CheckResult(check_id="c1", status=Status.SKIPPED).failed


# ── Freshness ────────────────────────────────────────────────────────────────


class TestFreshnessCheck:
    def test_threshold_is_one_and_a_half_cycles(self, target: WatchTarget) -> None:
        assert target.freshness_threshold_minutes == 15

    def test_exactly_at_threshold_passes(self, target: WatchTarget, tmp_path: Path) -> None:
        _touch(tmp_path / "a.dsl", 15)
        result = run_freshness_check(target, now=NOW)
        assert result.status == Status.PASS
        assert result.details["minutes_since_newest"] == 15

    def test_one_minute_over_threshold_fails(self, target: WatchTarget, tmp_path: Path) -> None:
        _touch(tmp_path / "a.dsl", 16)
        result = run_freshness_check(target, now=NOW)
        assert result.status == Status.FAIL
        assert "16 min" in result.message

    def test_uses_newest_file(self, target: WatchTarget, tmp_path: Path) -> None:
        _touch(tmp_path / "old.dsl", 120)
        _touch(tmp_path / "new.dsl", 2)
        result = run_freshness_check(target, now=NOW)
        assert result.status == Status.PASS
        assert result.details["minutes_since_newest"] == 2

    def test_half_minute_rounds_up(self, target: WatchTarget, tmp_path: Path) -> None:
        _touch(tmp_path / "a.dsl", 15.5)
        result = run_freshness_check(target, now=NOW)
        assert result.details["minutes_since_newest"] == 16
        assert result.status == Status.FAIL

    def test_empty_directory_fails(self, target: WatchTarget) -> None:
        result = run_freshness_check(target, now=NOW)
        assert result.status == Status.FAIL
        assert "No files" in result.message

    def test_only_subdirectories_fails(self, target: WatchTarget, tmp_path: Path) -> None:
        (tmp_path / "session1").mkdir()
        _touch(tmp_path / "session1" / "nested.dsl", 0)
        result = run_freshness_check(target, now=NOW)
        assert result.status == Status.FAIL

    def test_missing_directory_fails(self, tmp_path: Path) -> None:
        target = WatchTarget(watch_path=tmp_path / "gone", volume_path=tmp_path)
        result = run_freshness_check(target, now=NOW)
        assert result.status == Status.FAIL
        assert "Cannot read" in result.message

    def test_future_mtime_counts_as_fresh(self, tmp_path: Path) -> None:
        _touch(tmp_path / "a.dsl", -5)
        assert newest_file_age(tmp_path, now=NOW) == 0.0

    def test_newest_file_age_none_when_empty(self, tmp_path: Path) -> None:
        assert newest_file_age(tmp_path) is None


# ── Storage ──────────────────────────────────────────────────────────────────


def _usage(free: int) -> SimpleNamespace:
    return SimpleNamespace(total=free * 2, used=free, free=free, percent=50.0)


class TestStorageCheck:
    @patch("labwatch.health.engine.psutil.disk_usage")
    def test_exactly_ten_gb_passes(self, mock_usage: MagicMock, target: WatchTarget) -> None:
        mock_usage.return_value = _usage(10_000_000_000)
        result = run_storage_check(target)
        assert result.status == Status.PASS
        assert result.details == {"free_bytes": 10_000_000_000}

    @patch("labwatch.health.engine.psutil.disk_usage")
    def test_one_byte_under_fails(self, mock_usage: MagicMock, target: WatchTarget) -> None:
        mock_usage.return_value = _usage(9_999_999_999)
        result = run_storage_check(target)
        assert result.status == Status.FAIL
        assert "GB free" in result.message

    @patch("labwatch.health.engine.psutil.disk_usage", side_effect=FileNotFoundError("no such volume"))
    def test_query_error_fails(self, mock_usage: MagicMock, target: WatchTarget) -> None:
        result = run_storage_check(target)
        assert result.status == Status.FAIL
        assert "FileNotFoundError" in result.message

    def test_real_volume(self, target: WatchTarget) -> None:
        result = run_storage_check(target)
        assert result.details["free_bytes"] > 0


# ── Liveness ─────────────────────────────────────────────────────────────────


class TestLivenessCheck:
    def test_running(self) -> None:
        result = run_liveness_check("dsview", "DSView", ("DSView",), probe=lambda names: True)
        assert result.status == Status.PASS

    def test_not_running(self) -> None:
        result = run_liveness_check("dsview", "DSView", ("DSView",), probe=lambda names: False)
        assert result.status == Status.FAIL
        assert result.message == "DSView is not running"

    def test_probe_error_fails(self) -> None:
        def broken(names):
            raise psutil.AccessDenied()

        result = run_liveness_check("power-automate", "Power Automate", ("PAD",), probe=broken)
        assert result.status == Status.FAIL
        assert "query failed" in result.message

    def test_probe_receives_configured_names(self, target: WatchTarget) -> None:
        seen: list[tuple[str, ...]] = []

        def probe(names):
            seen.append(tuple(names))
            return True

        checks = {c.id: c for c in build_checks(probe=probe)}
        checks["dsview"].run(target)
        checks["power-automate"].run(target)
        assert seen == [target.dsview_processes, target.power_automate_processes]


class TestProcessProbe:
    @staticmethod
    def _procs(*names: str | None) -> list[MagicMock]:
        procs = []
        for n in names:
            p = MagicMock()
            p.info = {"name": n}
            procs.append(p)
        return procs

    @patch("labwatch.health.probes.psutil.process_iter")
    def test_matches_ignoring_case_and_exe(self, mock_iter: MagicMock) -> None:
        mock_iter.return_value = self._procs("explorer.exe", None, "DSView.exe")
        assert process_running(["dsview"]) is True

    @patch("labwatch.health.probes.psutil.process_iter")
    def test_no_match(self, mock_iter: MagicMock) -> None:
        mock_iter.return_value = self._procs("explorer.exe", "python")
        assert process_running(["PAD.Console.Host.exe"]) is False

    def test_empty_names_never_match(self) -> None:
        assert process_running(["", "  "]) is False

    @patch("labwatch.health.probes.psutil.Process", side_effect=psutil.AccessDenied())
    def test_priority_hint_never_raises(self, mock_proc: MagicMock) -> None:
        assert lower_priority() is False


# ── execute_check / build_checks ─────────────────────────────────────────────


class TestExecuteCheck:
    def test_fixed_check_set(self) -> None:
        ids = [c.id for c in build_checks(probe=lambda names: True)]
        assert ids == ["freshness", "storage", "dsview", "power-automate"]

    def test_tags_result(self, target: WatchTarget) -> None:
        check = Check("renamed", lambda t: CheckResult(check_id="x", status=Status.PASS))
        assert execute_check(check, target).check_id == "renamed"

    def test_exception_becomes_fail(self, target: WatchTarget) -> None:
        def boom(t):
            raise ValueError("bad state")

        result = execute_check(Check("boom", boom), target)
        assert result.status == Status.FAIL
        assert "ValueError: bad state" in result.message

    def test_skips_when_already_stopped(self, target: WatchTarget) -> None:
        calls: list[int] = []

        def run(t):
            calls.append(1)
            return CheckResult(check_id="c", status=Status.PASS)

        signal = StopSignal()
        signal.trigger(StopReason.termination())
        result = execute_check(Check("c", run), target, signal)
        assert result.status == Status.SKIPPED
        assert calls == []
