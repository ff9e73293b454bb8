"""Health check engine — the fixed set of lab pipeline checks.

Supports: output freshness, free storage, external application liveness.
Each check is a plain function of the WatchTarget returning a CheckResult;
I/O errors inside a check become a FAIL result, never an exception.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import psutil

from ..config import WatchTarget
from .probes import LivenessProbe, process_running
from .stop_signal import StopSignal

logger = logging.getLogger(__name__)


# ── Models ───────────────────────────────────────────────────────────────────


class Status(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"  # stop already signalled, no I/O done


@dataclass
class CheckResult:
    """Result of a single check execution."""

    check_id: str
    status: Status
    message: str = ""
    latency_ms: float = 0.0
    details: dict[str, Any] | None = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def failed(self) -> bool:
        return self.status == Status.FAIL


@dataclass(frozen=True)
class Check:
    """A named health predicate over the watch target."""

    id: str
    run: Callable[[WatchTarget], CheckResult]


# ── Helpers ──────────────────────────────────────────────────────────────────


def newest_file_age(path: Path, now: float | None = None) -> float | None:
    """Minutes since the newest regular file in ``path`` was modified.

    Returns None when the directory holds no regular files. Raises OSError
    if the directory itself can't be listed.
    """
    newest: float | None = None
    for entry in path.iterdir():
        try:
            if not entry.is_file():
                continue
            mtime = entry.stat().st_mtime
        except OSError:
            # File vanished between listing and stat
            continue
        if newest is None or mtime > newest:
            newest = mtime

    if newest is None:
        return None
    now = time.time() if now is None else now
    return max(now - newest, 0.0) / 60


def free_bytes(path: Path) -> int:
    """Free bytes available on the volume holding ``path``."""
    return psutil.disk_usage(str(path)).free


def _whole_minutes(minutes: float) -> int:
    # Half rounds up (14.5 → 15), unlike round()
    return math.floor(minutes + 0.5)


# ── Check runners ────────────────────────────────────────────────────────────


def run_freshness_check(target: WatchTarget, now: float | None = None) -> CheckResult:
    """Fail if nothing new was logged for more than 1.5 logging cycles."""
    t0 = time.perf_counter()
    threshold = target.freshness_threshold_minutes
    try:
        age = newest_file_age(target.watch_path, now=now)
    except OSError as e:
        return CheckResult(
            check_id="freshness", status=Status.FAIL,
            latency_ms=_elapsed(t0),
            message=f"Cannot read {target.watch_path}: {type(e).__name__}: {e}",
        )

    if age is None:
        return CheckResult(
            check_id="freshness", status=Status.FAIL,
            latency_ms=_elapsed(t0),
            message=f"No files found in {target.watch_path}",
        )

    minutes = _whole_minutes(age)
    if minutes > threshold:
        status = Status.FAIL
        msg = f"No new file in {target.watch_path} for {minutes} min (limit {threshold:g} min)"
    else:
        status = Status.PASS
        msg = f"Newest file is {minutes} min old"

    return CheckResult(
        check_id="freshness", status=status, latency_ms=_elapsed(t0),
        message=msg, details={"minutes_since_newest": minutes, "threshold_minutes": threshold},
    )


def run_storage_check(target: WatchTarget) -> CheckResult:
    """Fail if free space on the target volume drops below the floor."""
    t0 = time.perf_counter()
    try:
        free = free_bytes(target.volume_path)
    except OSError as e:
        return CheckResult(
            check_id="storage", status=Status.FAIL, latency_ms=_elapsed(t0),
            message=f"Disk query failed for {target.volume_path}: {type(e).__name__}: {e}",
        )

    gb = free / 1e9
    if free < target.min_free_bytes:
        status = Status.FAIL
        msg = f"Only {gb:.1f} GB free on {target.volume_path} (minimum {target.min_free_bytes / 1e9:g} GB)"
    else:
        status = Status.PASS
        msg = f"{gb:.1f} GB free"

    return CheckResult(
        check_id="storage", status=status, latency_ms=_elapsed(t0),
        message=msg, details={"free_bytes": free},
    )


def run_liveness_check(
    check_id: str,
    label: str,
    process_names: tuple[str, ...],
    probe: LivenessProbe = process_running,
) -> CheckResult:
    """Fail if the external application isn't running or can't be queried."""
    t0 = time.perf_counter()
    try:
        running = probe(process_names)
    except Exception as e:
        return CheckResult(
            check_id=check_id, status=Status.FAIL, latency_ms=_elapsed(t0),
            message=f"{label} status query failed: {type(e).__name__}: {e}",
        )

    if running:
        return CheckResult(
            check_id=check_id, status=Status.PASS, latency_ms=_elapsed(t0),
            message=f"{label} is running",
        )
    return CheckResult(
        check_id=check_id, status=Status.FAIL, latency_ms=_elapsed(t0),
        message=f"{label} is not running",
    )


def _elapsed(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 1)


def build_checks(probe: LivenessProbe = process_running) -> list[Check]:
    """The fixed check set: freshness, storage, DSView, Power Automate."""
    return [
        Check("freshness", run_freshness_check),
        Check("storage", run_storage_check),
        Check("dsview", lambda t: run_liveness_check(
            "dsview", "DSView", t.dsview_processes, probe,
        )),
        Check("power-automate", lambda t: run_liveness_check(
            "power-automate", "Power Automate", t.power_automate_processes, probe,
        )),
    ]


def execute_check(check: Check, target: WatchTarget, signal: StopSignal | None = None) -> CheckResult:
    """Run one check, skipping it if stop was already signalled.

    Never raises: an unexpected exception becomes a FAIL for this check.
    """
    if signal is not None and signal.is_closed():
        return CheckResult(check_id=check.id, status=Status.SKIPPED, message="Stop already signalled")
    try:
        result = check.run(target)
    except Exception as e:
        logger.exception("Check %s raised", check.id)
        return CheckResult(
            check_id=check.id, status=Status.FAIL,
            message=f"Check error: {type(e).__name__}: {e}",
        )
    result.check_id = check.id
    return result

