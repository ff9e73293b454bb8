"""OS probes — process liveness and scheduling priority via psutil."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable

import psutil

logger = logging.getLogger(__name__)

# is_running(process_names) -> bool; raises if the process table can't be read
LivenessProbe = Callable[[Iterable[str]], bool]


def _normalize(name: str) -> str:
    name = name.strip().lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name


def process_running(names: Iterable[str]) -> bool:
    """True if any running process matches one of ``names``.

    Matching is case-insensitive and ignores a trailing ``.exe``.
    """
    wanted = {_normalize(n) for n in names if n.strip()}
    if not wanted:
        return False
    for proc in psutil.process_iter(["name"]):
        name = proc.info.get("name")
        if name and _normalize(name) in wanted:
            return True
    return False


def lower_priority() -> bool:
    """Ask the OS to run this process below normal priority.

    Returns False (never raises) where the platform or permissions refuse.
    """
    try:
        proc = psutil.Process()
        if sys.platform == "win32":
            proc.nice(psutil.BELOW_NORMAL_PRIORITY_CLASS)
        else:
            proc.nice(max(proc.nice(), 10))
    except (psutil.Error, AttributeError, OSError) as e:
        logger.debug("Priority hint not applied: %s", e)
        return False
    logger.info("Running at reduced scheduling priority")
    return True
