"""Watchdog lifecycle — starts scheduler + notifier, handles shutdown.

Both ways out go through the same StopSignal:
- a check fails → scheduler triggers it (automatic stoppage)
- SIGINT / SIGTERM → request_termination() triggers it (operator shutdown)

After the signal closes the notifier gets a bounded grace period to deliver
its message, then everything is torn down and an exit code is returned.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from rich.console import Console
from rich.panel import Panel

from labwatch.config import WatchTarget
from labwatch.health.engine import Check, build_checks
from labwatch.health.probes import lower_priority
from labwatch.health.scheduler import CheckScheduler
from labwatch.health.stop_signal import StopReason, StopSignal
from labwatch.notifications import NotificationManager
from labwatch.notifications.stoppage import StoppageNotifier

logger = logging.getLogger(__name__)

# Exit codes
EXIT_TERMINATED = 0     # operator / OS asked us to stop
EXIT_STOPPAGE = 1       # a check detected a stoppage
EXIT_CONFIG_ERROR = 2   # unusable configuration, never started

DEFAULT_GRACE_PERIOD = 1.0  # seconds


def exit_code_for(reason: StopReason) -> int:
    return EXIT_STOPPAGE if reason.is_failure else EXIT_TERMINATED


class Watchdog:
    """Owns one monitoring run from start to exit code.

    Lifecycle:
        watchdog = Watchdog(target, NotificationManager())
        code = asyncio.run(watchdog.run())
    """

    def __init__(
        self,
        target: WatchTarget,
        channel: NotificationManager,
        checks: list[Check] | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        low_priority: bool = False,
        handle_signals: bool = True,
        console: Console | None = None,
        label: str = "",
    ) -> None:
        self.target = target
        self.grace_period = grace_period
        self.low_priority = low_priority
        self.handle_signals = handle_signals
        self.console = console or Console()
        self.signal = StopSignal()
        self.scheduler = CheckScheduler(checks if checks is not None else build_checks(), target, self.signal)
        self.notifier = StoppageNotifier(self.signal, channel, label=label)
        self._fallback_handlers: dict[signal.Signals, Any] = {}
        self._loop_handlers: list[signal.Signals] = []

    def request_termination(self, source: str = "external termination") -> bool:
        """Stop monitoring on operator request. Safe to call repeatedly."""
        return self.signal.trigger(StopReason.termination(source))

    async def run(self) -> int:
        """Monitor until stop is signalled; return the process exit code."""
        if self.low_priority:
            lower_priority()

        loop = asyncio.get_running_loop()
        if self.handle_signals:
            self._install_signal_handlers(loop)

        self.console.print(Panel(
            f"Watching [bold]{self.target.watch_path}[/bold]\n"
            f"Every {self.target.check_interval_seconds:g}s, "
            f"freshness limit {self.target.freshness_threshold_minutes:g} min",
            title="labwatch", style="bold green",
        ))

        scheduler_task = asyncio.create_task(self.scheduler.run(), name="labwatch-scheduler")
        scheduler_task.add_done_callback(self._on_scheduler_done)
        notifier_task = asyncio.create_task(self.notifier.run(), name="labwatch-notifier")

        try:
            reason = await self.signal.wait()
            self._report(reason)
            done, _ = await asyncio.wait({notifier_task}, timeout=self.grace_period)
            if not done:
                logger.warning("Alert still pending after %ss grace period, exiting anyway", self.grace_period)
        finally:
            for task in (scheduler_task, notifier_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(scheduler_task, notifier_task, return_exceptions=True)
            await self.scheduler.stop()
            if self.handle_signals:
                self._restore_signal_handlers(loop)

        return exit_code_for(reason)

    def _report(self, reason: StopReason) -> None:
        if reason.is_failure:
            self.console.print(Panel(
                f"Stoppage detected by [bold]{reason.source}[/bold]\n{reason.message}",
                title="labwatch", style="bold red",
            ))
        else:
            self.console.print(Panel(
                f"Watchdog stopped by operator ({reason.source})",
                title="labwatch", style="yellow",
            ))

    def _on_scheduler_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduler crashed: %s", exc, exc_info=exc)
            self.signal.trigger(StopReason.failure("scheduler", f"Watchdog scheduler crashed: {exc}"))

    # -- signals ---------------------------------------------------------------

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_termination, sig.name)
                self._loop_handlers.append(sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops: plain handler, hop back onto the loop
                self._fallback_handlers[sig] = signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self.request_termination, signal.Signals(signum).name,
                    ),
                )

    def _restore_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._loop_handlers:
            loop.remove_signal_handler(sig)
        self._loop_handlers.clear()
        for sig, previous in self._fallback_handlers.items():
            signal.signal(sig, previous)
        self._fallback_handlers.clear()
