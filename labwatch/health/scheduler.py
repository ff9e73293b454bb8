"""Check scheduler — runs the check set at a fixed interval.

Each cycle fans every check out to a thread pool and joins them (with a
per-check timeout) before deciding whether to schedule the next cycle.
Any FAIL closes the shared StopSignal; once closed, no further cycles run.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any

from ..config import WatchTarget
from .engine import Check, CheckResult, Status, execute_check
from .stop_signal import StopReason, StopSignal

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class CheckScheduler:
    """Drives the periodic check cycle until the stop signal closes.

    Uses a simple asyncio loop; each check runs in a thread pool so a slow
    directory listing or process scan never blocks its siblings.
    """

    def __init__(
        self,
        checks: list[Check],
        target: WatchTarget,
        signal: StopSignal,
        max_workers: int = 8,
    ) -> None:
        self.checks = checks
        self.target = target
        self.signal = signal
        self.state = SchedulerState.IDLE
        self.cycle = 0
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="labwatch-check")

    async def run(self) -> None:
        """Run cycles until stop is signalled (by a check or externally)."""
        if self.state != SchedulerState.IDLE:
            return
        logger.info(
            "Scheduler started: %d checks every %ss (timeout %ss)",
            len(self.checks), self.target.check_interval_seconds, self.target.check_timeout_seconds,
        )

        loop = asyncio.get_running_loop()
        while not self.signal.is_closed():
            deadline = loop.time() + self.target.check_interval_seconds
            await self.run_cycle()
            if self.signal.is_closed():
                break
            await self._sleep_until(deadline)

        self.state = SchedulerState.STOPPED
        logger.info("Scheduler stopped after %d cycles", self.cycle)

    async def run_cycle(self) -> list[CheckResult]:
        """Fan out every check concurrently and wait for all of them."""
        self.cycle += 1
        self.state = SchedulerState.RUNNING
        results = await asyncio.gather(*(self._run_check(c) for c in self.checks))

        failed = [r for r in results if r.status == Status.FAIL]
        logger.debug(
            "Cycle %d: %d passed, %d failed",
            self.cycle, sum(1 for r in results if r.status == Status.PASS), len(failed),
        )
        return list(results)

    async def stop(self) -> None:
        """Release the worker pool; stuck checks are abandoned, not joined."""
        self.state = SchedulerState.STOPPED
        self._executor.shutdown(wait=False, cancel_futures=True)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "cycle": self.cycle,
            "checks": [c.id for c in self.checks],
            "stopped": self.signal.is_closed(),
        }

    async def _run_check(self, check: Check) -> CheckResult:
        loop = asyncio.get_running_loop()
        timeout = self.target.check_timeout_seconds
        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(self._executor, execute_check, check, self.target, self.signal),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            result = CheckResult(
                check_id=check.id, status=Status.FAIL, latency_ms=timeout * 1000,
                message=f"Check {check.id} did not finish within {timeout:g}s",
            )
        except Exception as e:
            # e.g. the pool was shut down mid-cycle
            logger.exception("Health check error: %s", check.id)
            result = CheckResult(
                check_id=check.id, status=Status.FAIL,
                message=f"Check error: {type(e).__name__}: {e}",
            )

        if result.status == Status.FAIL:
            if self.signal.trigger(StopReason.failure(check.id, result.message)):
                logger.warning("Check %s failed: %s", check.id, result.message)
            else:
                logger.info("Check %s also failed: %s", check.id, result.message)
        return result

    async def _sleep_until(self, deadline: float) -> None:
        """Sleep to the next tick (measured from cycle start) or until stop."""
        delay = max(deadline - asyncio.get_running_loop().time(), 0.0)
        if delay == 0:
            logger.warning("Cycle %d overran the %ss interval", self.cycle, self.target.check_interval_seconds)
        sleeper = asyncio.ensure_future(asyncio.sleep(delay))
        stopper = asyncio.ensure_future(self.signal.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                task.cancel()
            await asyncio.gather(sleeper, stopper, return_exceptions=True)
