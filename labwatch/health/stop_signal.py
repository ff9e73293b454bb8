"""Stop signal — single-fire broadcast shared by checks, scheduler and notifier.

Any check (or an operator interrupt) may close the signal; only the first
close is recorded. Closing an already-closed signal is a no-op, so any
number of concurrent failures coalesce into one stoppage.

Safe to trigger from worker threads: waiters are asyncio futures resolved
on their own loop via ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class StopKind(str, Enum):
    FAILURE = "failure"          # a check detected a stoppage
    TERMINATION = "termination"  # operator / OS asked the watchdog to exit


@dataclass(frozen=True)
class StopReason:
    """Why monitoring stopped."""

    kind: StopKind
    source: str  # check id, or signal name for terminations
    message: str = ""

    @classmethod
    def failure(cls, check_id: str, message: str) -> StopReason:
        return cls(StopKind.FAILURE, check_id, message)

    @classmethod
    def termination(cls, source: str = "external termination") -> StopReason:
        return cls(StopKind.TERMINATION, source, "external termination")

    @property
    def is_failure(self) -> bool:
        return self.kind is StopKind.FAILURE


class StopSignal:
    """Open → Closed, exactly once.

    Lifecycle:
        signal = StopSignal()
        signal.trigger(StopReason.failure("storage", "3.1 GB free"))  # True
        signal.trigger(StopReason.failure("dsview", "not running"))   # False
        reason = await signal.wait()  # the storage reason
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reason: StopReason | None = None
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future[StopReason]]] = []

    @property
    def reason(self) -> StopReason | None:
        return self._reason

    def is_closed(self) -> bool:
        return self._reason is not None

    def trigger(self, reason: StopReason) -> bool:
        """Close the signal. Returns True only for the call that closed it."""
        with self._lock:
            if self._reason is not None:
                logger.debug("Stop already signalled, ignoring %s/%s", reason.kind.value, reason.source)
                return False
            self._reason = reason
            waiters, self._waiters = self._waiters, []

        logger.info("Stop signalled (%s) by %s: %s", reason.kind.value, reason.source, reason.message)
        for loop, fut in waiters:
            if loop.is_closed():
                continue
            try:
                loop.call_soon_threadsafe(_resolve, fut, reason)
            except RuntimeError:
                # Loop closed between the check and the call
                continue
        return True

    async def wait(self) -> StopReason:
        """Suspend until the signal is closed and return the first reason."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._reason is not None:
                return self._reason
            fut: asyncio.Future[StopReason] = loop.create_future()
            entry = (loop, fut)
            self._waiters.append(entry)
        try:
            return await fut
        finally:
            with self._lock:
                if entry in self._waiters:
                    self._waiters.remove(entry)


def _resolve(fut: asyncio.Future[StopReason], reason: StopReason) -> None:
    if not fut.done():
        fut.set_result(reason)
