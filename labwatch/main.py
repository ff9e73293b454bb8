"""Entry point for the lab logging watchdog.

Usage:
    labwatch [--path PATH]

Watches the DSView output directory (default: $HOME) and posts to Slack the
first time logging appears to have stopped.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from labwatch.config import ConfigError, Settings, WatchTarget, get_settings
from labwatch.health.engine import Status, build_checks
from labwatch.health.scheduler import CheckScheduler
from labwatch.health.stop_signal import StopSignal
from labwatch.lifecycle import EXIT_CONFIG_ERROR, EXIT_STOPPAGE, EXIT_TERMINATED, Watchdog
from labwatch.notifications import NotificationManager

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="labwatch",
        description="Alert Slack when the unattended DSView / Power Automate logging setup stops.",
    )
    parser.add_argument(
        "--path", default=None,
        help="Absolute or relative path to the DSView output directory (default: $HOME)",
    )
    parser.add_argument("--volume", default=None, help="Path on the volume to check for free space")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between check cycles")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument(
        "--no-low-priority", action="store_true",
        help="Don't lower the process scheduling priority",
    )
    parser.add_argument(
        "--once", action="store_true",
        help="Run every check once, print the results and exit (no alert)",
    )
    return parser


def run_once(target: WatchTarget) -> int:
    """Single cycle with a results table; exit 0 if everything passes."""
    scheduler = CheckScheduler(build_checks(), target, StopSignal())

    async def _cycle():
        try:
            return await scheduler.run_cycle()
        finally:
            await scheduler.stop()

    results = asyncio.run(_cycle())

    table = Table(title=f"labwatch — {target.watch_path}")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")
    for r in results:
        style = "green" if r.status == Status.PASS else "red"
        table.add_row(r.check_id, f"[{style}]{r.status.value}[/{style}]", r.message)
    console.print(table)

    return EXIT_STOPPAGE if any(r.failed for r in results) else EXIT_TERMINATED


def main(argv: list[str] | None = None, cfg: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = cfg or get_settings()
    except ValidationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        return EXIT_CONFIG_ERROR
    if args.interval is not None:
        cfg = cfg.model_copy(update={"check_interval_seconds": args.interval})

    logging.basicConfig(
        level=getattr(logging, (args.log_level or cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        target = cfg.to_target(path=args.path, volume=args.volume)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        return EXIT_CONFIG_ERROR

    if args.once:
        return run_once(target)

    watchdog = Watchdog(
        target,
        NotificationManager.from_settings(cfg),
        grace_period=cfg.grace_period_seconds,
        low_priority=cfg.low_priority and not args.no_low_priority,
        console=console,
    )
    code = asyncio.run(watchdog.run())
    console.print(f"[dim]labwatch exited (code {code})[/dim]")
    return code


if __name__ == "__main__":
    sys.exit(main())
