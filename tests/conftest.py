"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import io
import time
from pathlib import Path

import pytest
from rich.console import Console

from labwatch.config import WatchTarget
from labwatch.health.engine import Check, CheckResult, Status


class FakeChannel:
    """Alert channel that records messages instead of posting them."""

    def __init__(self, ok: bool = True, delay: float = 0.0) -> None:
        self.ok = ok
        self.delay = delay
        self.messages: list[str] = []

    async def send(self, text: str) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.messages.append(text)
        return self.ok


def passing(check_id: str) -> Check:
    return Check(check_id, lambda t: CheckResult(check_id=check_id, status=Status.PASS, message="ok"))


def failing(check_id: str, message: str = "broken") -> Check:
    return Check(check_id, lambda t: CheckResult(check_id=check_id, status=Status.FAIL, message=message))


def sleeping(check_id: str, seconds: float) -> Check:
    def _run(t: WatchTarget) -> CheckResult:
        time.sleep(seconds)
        return CheckResult(check_id=check_id, status=Status.PASS)
    return Check(check_id, _run)


@pytest.fixture
def target(tmp_path: Path) -> WatchTarget:
    """Fast-cycling target rooted in a temp directory.

    Tests about timeouts build their own target.
    """
    return WatchTarget(
        watch_path=tmp_path,
        volume_path=tmp_path,
        check_interval_seconds=0.05,
        check_timeout_seconds=10.0,
    )


@pytest.fixture
def quiet_console() -> Console:
    return Console(file=io.StringIO(), force_terminal=False)
