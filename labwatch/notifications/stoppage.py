"""Stoppage notifier — waits for the stop signal and alerts exactly once."""

from __future__ import annotations

import getpass
import logging
import socket

from labwatch.health.stop_signal import StopReason, StopSignal

from . import NotificationManager

logger = logging.getLogger(__name__)


def machine_label() -> str:
    """``HOST/USER`` of the lab PC running the watchdog."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{socket.gethostname()}/{user}"


def format_alert(reason: StopReason, label: str) -> str:
    """Plain-text message for the alert channel."""
    if reason.is_failure:
        return (
            f":rotating_light: Lab logging stoppage detected on {label}\n"
            f"Check: {reason.source}\n"
            f"Reason: {reason.message}"
        )
    if reason.source == "SIGTERM":
        return f":warning: Watchdog on {label} was terminated (SIGTERM). Logging is no longer monitored."
    return f":wave: Watchdog on {label} was stopped by the user ({reason.source}). Logging is no longer monitored."


class StoppageNotifier:
    """Single long-lived observer of the stop signal."""

    def __init__(
        self,
        signal: StopSignal,
        channel: NotificationManager,
        label: str = "",
    ) -> None:
        self.signal = signal
        self.channel = channel
        self.label = label or machine_label()
        self.sent: list[str] = []
        self.delivered = False

    async def run(self) -> bool:
        """Wait for stop, send one message, return whether it was delivered."""
        reason = await self.signal.wait()
        text = format_alert(reason, self.label)
        self.sent.append(text)
        try:
            self.delivered = await self.channel.send(text)
        except Exception:
            logger.exception("Alert delivery raised")
            self.delivered = False

        if self.delivered:
            logger.info("Alert delivered (%s from %s)", reason.kind.value, reason.source)
        else:
            logger.error("Alert delivery FAILED, nobody was notified: %s", text)
        return self.delivered
